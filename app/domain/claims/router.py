"""Claim router - FastAPI endpoints for field claims"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import require_admin
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from ...schemas import envelope, pagination
from .schemas import ClaimCreate, ClaimResponse, ClaimStatusUpdate
from .service import ClaimService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/claims", tags=["Claims"])

claim_rate_limit = create_rate_limiter(limit=10, window_seconds=3600, key_prefix="claims")


def get_claim_service(db: Session = Depends(get_db)) -> ClaimService:
    """Dependency injection for ClaimService"""
    return ClaimService(db)


@router.post("", status_code=201)
async def submit_claim(
    data: ClaimCreate,
    _: None = Depends(claim_rate_limit),
    service: ClaimService = Depends(get_claim_service),
):
    """Submit a claim on an unclaimed field (public)"""
    claim = await service.submit_claim(data)
    return envelope(
        ClaimResponse.from_claim(claim).model_dump(mode="json"),
        "Claim submitted successfully. A confirmation email has been sent to your registered email address.",
    )


@router.get("")
async def list_claims(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: User = Depends(require_admin),
    service: ClaimService = Depends(get_claim_service),
):
    claims, total = service.list_claims(status, page, limit)
    return envelope(
        [ClaimResponse.from_claim(c).model_dump(mode="json") for c in claims],
        pagination=pagination(page, limit, total),
    )


@router.get("/check-eligibility/{field_id}")
async def check_claim_eligibility(
    field_id: int,
    email: Optional[str] = Query(None),
    service: ClaimService = Depends(get_claim_service),
):
    """Whether a field can still be claimed, optionally for a specific email (public)"""
    return {"success": True, **service.check_eligibility(field_id, email)}


@router.get("/field/{field_id}")
async def get_field_claims(
    field_id: int,
    current_user: User = Depends(require_admin),
    service: ClaimService = Depends(get_claim_service),
):
    claims = service.field_claims(field_id)
    return envelope([ClaimResponse.from_claim(c).model_dump(mode="json") for c in claims])


@router.get("/{claim_id}")
async def get_claim(
    claim_id: int,
    current_user: User = Depends(require_admin),
    service: ClaimService = Depends(get_claim_service),
):
    claim = service.get_claim(claim_id)
    return envelope(ClaimResponse.from_claim(claim, include_owner=True).model_dump(mode="json"))


@router.patch("/{claim_id}/status")
async def update_claim_status(
    claim_id: int,
    data: ClaimStatusUpdate,
    current_user: User = Depends(require_admin),
    service: ClaimService = Depends(get_claim_service),
):
    """Approve or reject a claim; approval provisions the owner account"""
    claim = await service.update_claim_status(claim_id, data.status, data.reviewNotes, current_user)
    return envelope(
        ClaimResponse.from_claim(claim).model_dump(mode="json"),
        f"Claim {claim.status.lower()} successfully. An email notification has been sent to the claimer.",
    )
