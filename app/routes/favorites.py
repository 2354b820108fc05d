"""
Favorite Routes - saved fields for dog owners
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import Favorite, Field, FieldReview, User
from ..models_payout import Booking
from ..schemas import FieldSummary, envelope, pagination

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/favorites", tags=["Favorites"])


def _get_favorite(db: Session, user_id: int, field_id: int):
    return db.query(Favorite).filter(Favorite.user_id == user_id, Favorite.field_id == field_id).first()


@router.post("/toggle/{field_id}")
async def toggle_favorite(
    field_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    field = db.query(Field).filter(Field.id == field_id).first()
    if not field:
        raise HTTPException(status_code=404, detail="Field not found")

    existing = _get_favorite(db, current_user.id, field_id)
    if existing:
        db.delete(existing)
        db.commit()
        return {
            "success": True,
            "message": "Field removed from favorites",
            "isLiked": False,
            "isFavorited": False,
        }

    favorite = Favorite(user_id=current_user.id, field_id=field_id)
    db.add(favorite)
    db.commit()
    db.refresh(favorite)
    return {
        "success": True,
        "message": "Field added to favorites",
        "isLiked": True,
        "isFavorited": True,
        "data": {
            "id": favorite.id,
            "userId": favorite.user_id,
            "fieldId": favorite.field_id,
            "createdAt": favorite.created_at,
        },
    }


@router.get("/saved")
async def get_saved_fields(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Saved active fields, newest first, with rating and booking counts"""
    # Drop favorites pointing at deleted fields
    existing_field_ids = select(Field.id)
    orphaned = (
        db.query(Favorite)
        .filter(Favorite.user_id == current_user.id, ~Favorite.field_id.in_(existing_field_ids))
        .delete(synchronize_session=False)
    )
    if orphaned:
        logger.info(f"🧹 Removed {orphaned} orphaned favorite(s) for user {current_user.id}")
    db.commit()

    query = (
        db.query(Favorite)
        .join(Field, Favorite.field_id == Field.id)
        .filter(Favorite.user_id == current_user.id, Field.is_active.is_(True))
    )
    total = query.count()
    favorites = (
        query.order_by(Favorite.created_at.desc(), Favorite.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    items = []
    for favorite in favorites:
        field = favorite.field
        rating_avg, review_count = (
            db.query(func.avg(FieldReview.rating), func.count(FieldReview.id))
            .filter(FieldReview.field_id == field.id)
            .one()
        )
        booking_count = db.query(Booking).filter(Booking.field_id == field.id).count()
        owner = field.owner
        items.append(
            {
                **FieldSummary.from_field(field).model_dump(),
                "description": field.description,
                "owner": {"id": owner.id, "name": owner.name, "email": owner.email, "image": owner.image}
                if owner
                else None,
                "averageRating": float(rating_avg or 0),
                "reviewCount": review_count,
                "bookingCount": booking_count,
                "isLiked": True,
                "isFavorited": True,
            }
        )

    return envelope(items, pagination=pagination(page, limit, total))


@router.get("/check/{field_id}")
async def check_favorite(
    field_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    liked = _get_favorite(db, current_user.id, field_id) is not None
    return {"success": True, "isLiked": liked, "isFavorited": liked}


@router.delete("/{field_id}")
async def remove_favorite(
    field_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    favorite = _get_favorite(db, current_user.id, field_id)
    if not favorite:
        raise HTTPException(status_code=404, detail="Field not in favorites")

    db.delete(favorite)
    db.commit()
    return {"success": True, "message": "Field removed from favorites"}
