"""Earnings router - FastAPI endpoints for field owner earnings"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ...schemas import envelope
from .service import EarningsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/earnings", tags=["Earnings"])


def get_earnings_service(db: Session = Depends(get_db)) -> EarningsService:
    """Dependency injection for EarningsService"""
    return EarningsService(db)


@router.get("/dashboard")
async def get_earnings_dashboard(
    current_user: User = Depends(get_current_user),
    service: EarningsService = Depends(get_earnings_service),
):
    return envelope(service.get_dashboard(current_user))


@router.get("/payouts")
async def get_payout_history(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    status: Optional[str] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    service: EarningsService = Depends(get_earnings_service),
):
    return envelope(service.get_payout_history(current_user, page, limit, status, startDate, endDate))


@router.get("/held-payouts")
async def get_held_payouts(
    current_user: User = Depends(get_current_user),
    service: EarningsService = Depends(get_earnings_service),
):
    """Bookings whose payout is held until the owner can be paid"""
    return envelope(service.get_held_payouts(current_user))


@router.get("/export")
async def export_payout_history(
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    service: EarningsService = Depends(get_earnings_service),
):
    filename, content = service.export_payout_history(current_user, startDate, endDate)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/sync-payouts")
async def sync_payouts(
    current_user: User = Depends(get_current_user),
    service: EarningsService = Depends(get_earnings_service),
):
    """Pull the owner's payouts from Stripe into the local payout table"""
    result = service.sync_payouts_from_stripe(current_user)
    return envelope(result, "Successfully synced payouts from Stripe")
