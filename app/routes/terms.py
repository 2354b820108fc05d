"""
Terms Routes - Terms and conditions sections shown on the public site
"""
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import Term, User
from ..schemas import envelope
from ..security_utils import sanitize_term_content, sanitize_text

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/terms", tags=["Terms"])

DEFAULT_TERMS = [
    {
        "title": "1. About Fieldsy",
        "content": "Fieldsy connects dog owners with private, secure dog walking fields offered by landowners. "
        "Users can search, book, and review fields, while landowners can list, manage, and earn from their land.",
    },
    {
        "title": "2. User Accounts",
        "is_list": True,
        "content": [
            "You must be 18+ to create an account.",
            "All information provided must be accurate and up-to-date.",
            "You are responsible for maintaining the security of your account and password.",
        ],
    },
    {
        "title": "3. Booking Fields (For Dog Owners)",
        "is_list": True,
        "content": [
            "You agree to follow the field owner's rules and the booking time strictly.",
            "Payment must be made in full at the time of booking.",
            "Fields are intended for private, non-commercial use unless otherwise agreed upon.",
            "Always pick up after your dog and leave the field as you found it.",
        ],
    },
    {
        "title": "4. Listing Fields (For Landowners)",
        "is_list": True,
        "content": [
            "You must have legal rights to list the field for use.",
            "Your listing must include accurate information about fencing, access, pricing, and availability.",
            "Fieldsy reserves the right to review, edit, or reject any listing that doesn't meet platform standards.",
            "Landowners are responsible for ensuring the safety, cleanliness, and accessibility of their fields.",
        ],
    },
    {
        "title": "5. Payments & Fees",
        "is_list": True,
        "content": [
            "Fieldsy securely processes payments on behalf of field owners.",
            "A small service fee may apply to each transaction.",
            "Landowners will receive payouts via the selected method (e.g., bank transfer, PayPal).",
            "All earnings must be reported in accordance with local tax laws.",
        ],
    },
    {
        "title": "6. Cancellations & Refunds",
        "is_list": True,
        "content": [
            "Users can cancel up to 24 hours before the booking for a full refund.",
            "Late cancellations may not be eligible for a refund.",
            "Landowners can set custom cancellation policies, which must be clearly stated in the listing.",
        ],
    },
    {
        "title": "7. Field Access & Conduct",
        "is_list": True,
        "content": [
            "Fieldsy is not responsible for the condition of the field or the behavior of users.",
            "Aggressive or unsafe behavior by dogs or humans may result in account suspension.",
            "Trespassing outside of the booked time is strictly prohibited.",
        ],
    },
    {
        "title": "8. Liability",
        "is_list": True,
        "content": [
            "Users enter fields at their own risk.",
            "Fieldsy is not liable for any injury, damage, or loss resulting from bookings, dog behavior, "
            "or field conditions.",
            "Field owners must have appropriate insurance for their land use.",
        ],
    },
    {
        "title": "9. Platform Rules",
        "is_list": True,
        "content": [
            "No illegal activity is permitted on or through Fieldsy.",
            "Do not use the platform to harass, spam, or misrepresent others.",
            "Violation of these terms may lead to account termination.",
        ],
    },
    {
        "title": "10. Changes to Terms",
        "content": "We may update these Terms at any time. Continued use of Fieldsy after changes means you "
        "accept the updated Terms.",
    },
    {
        "title": "11. Contact Us",
        "content": "For any questions, contact us at:\n📧 fieldsyz@gmail.com\n"
        "📍 Camden Town, London NW1 0LT, United Kingdom",
    },
]


class TermCreate(BaseModel):
    title: str
    content: Any
    isList: Optional[bool] = False
    order: Optional[int] = 0


class TermUpdate(BaseModel):
    title: Optional[str] = None
    content: Any = None
    isList: Optional[bool] = None
    order: Optional[int] = None


class BulkTermsUpdate(BaseModel):
    terms: Any = None


def serialize_term(term: Term) -> dict:
    return {
        "id": term.id,
        "title": term.title,
        "content": term.content,
        "isList": term.is_list,
        "order": term.order,
        "createdAt": term.created_at,
        "updatedAt": term.updated_at,
    }


def _get_term_or_404(db: Session, term_id: int) -> Term:
    term = db.query(Term).filter(Term.id == term_id).first()
    if not term:
        raise HTTPException(status_code=404, detail="Term not found")
    return term


@router.get("")
async def get_terms(db: Session = Depends(get_db)):
    """Public; seeds the default sections the first time the table is read empty"""
    terms = db.query(Term).order_by(Term.order, Term.id).all()
    if not terms:
        terms = [
            Term(
                title=section["title"],
                content=section["content"],
                is_list=section.get("is_list", False),
                order=index,
            )
            for index, section in enumerate(DEFAULT_TERMS)
        ]
        db.add_all(terms)
        db.commit()
        for term in terms:
            db.refresh(term)
        logger.info(f"📜 Seeded {len(terms)} default terms sections")

    return envelope([serialize_term(t) for t in terms])


@router.post("", status_code=201)
async def create_term(
    data: TermCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    term = Term(
        title=sanitize_text(data.title),
        content=sanitize_term_content(data.content),
        is_list=bool(data.isList),
        order=data.order or 0,
    )
    db.add(term)
    db.commit()
    db.refresh(term)
    return envelope(serialize_term(term), "Term section created successfully")


@router.put("/bulk")
async def bulk_update_terms(
    data: BulkTermsUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Update sections that carry an id, create the rest; list position becomes the order"""
    if not isinstance(data.terms, list):
        raise HTTPException(status_code=400, detail="Terms must be an array")

    results = []
    for index, item in enumerate(data.terms):
        if not isinstance(item, dict):
            raise HTTPException(status_code=400, detail="Each term must be an object")

        if item.get("id"):
            term = _get_term_or_404(db, item["id"])
        else:
            term = Term()
            db.add(term)

        term.title = sanitize_text(item.get("title") or "")
        term.content = sanitize_term_content(item.get("content"))
        term.is_list = bool(item.get("isList"))
        term.order = index
        results.append(term)

    db.commit()
    for term in results:
        db.refresh(term)
    return envelope([serialize_term(t) for t in results], "Terms updated successfully")


@router.put("/{term_id}")
async def update_term(
    term_id: int,
    data: TermUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    term = _get_term_or_404(db, term_id)
    provided = data.model_fields_set

    if data.title:
        term.title = sanitize_text(data.title)
    if "content" in provided and data.content is not None:
        term.content = sanitize_term_content(data.content)
    if data.isList is not None:
        term.is_list = data.isList
    if data.order is not None:
        term.order = data.order

    db.commit()
    db.refresh(term)
    return envelope(serialize_term(term), "Term section updated successfully")


@router.delete("/{term_id}")
async def delete_term(
    term_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    term = _get_term_or_404(db, term_id)
    db.delete(term)
    db.commit()
    return {"success": True, "message": "Term section deleted successfully"}
