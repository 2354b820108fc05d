"""
Payout Routes for Field Owner Earnings
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import ADMIN, FIELD_OWNER, User
from ..schemas import envelope
from ..services.payout_service import (
    PayoutService,
    serialize_payout,
    serialize_transaction,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payouts", tags=["Payouts"])

SUMMARY_PERIODS = ("week", "month", "year", "all")


def get_payout_service(db: Session = Depends(get_db)) -> PayoutService:
    return PayoutService(db)


@router.post("/process-pending")
async def process_pending_payouts(
    current_user: User = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    """Retry payouts held back while the owner's payment account was being set up"""
    if current_user.role != FIELD_OWNER:
        raise HTTPException(status_code=403, detail="Only field owners can process payouts")

    results = service.process_pending_payouts(current_user.id)
    failed = sum(1 for r in results if not r["success"])
    deferred = sum(1 for r in results if r["success"] and r["deferred"])
    processed = len(results) - failed - deferred

    message = f"Processed {processed} payouts successfully, {failed} failed"
    if deferred:
        message += f", {deferred} deferred"
    return envelope(
        {"processed": processed, "deferred": deferred, "failed": failed, "results": results},
        message,
    )


@router.get("/history")
async def get_payout_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: User = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    return envelope(service.get_payout_history(current_user.id, page, limit))


@router.post("/trigger/{booking_id}")
async def trigger_booking_payout(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    if current_user.role != ADMIN:
        raise HTTPException(status_code=403, detail="Only admins can manually trigger payouts")

    if service.get_booking(booking_id) is None:
        raise HTTPException(status_code=404, detail="Booking not found")

    try:
        payout = service.process_booking_payout(booking_id)
    except Exception as e:
        logger.error(f"❌ Manual payout trigger failed for booking {booking_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to trigger payout") from e

    logger.info(f"🔧 Admin {current_user.id} triggered payout for booking {booking_id}")
    return envelope(serialize_payout(payout) if payout else None, "Payout triggered successfully")


@router.get("/earnings/history")
async def get_earnings_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    status: Optional[str] = Query(None),
    startDate: Optional[datetime] = Query(None),
    endDate: Optional[datetime] = Query(None),
    current_user: User = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    return envelope(
        service.get_earnings_history(current_user.id, page, limit, status, startDate, endDate)
    )


@router.get("/earnings/summary")
async def get_earnings_summary(
    period: str = Query("all"),
    current_user: User = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    if period not in SUMMARY_PERIODS:
        raise HTTPException(status_code=400, detail="Invalid period")
    return envelope(service.get_earnings_summary(current_user.id, period))


@router.get("/transactions/{transaction_id}")
async def get_transaction_details(
    transaction_id: int,
    current_user: User = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    transaction = service.get_transaction(transaction_id)
    if transaction is None:
        raise HTTPException(status_code=404, detail="Transaction not found")

    field = transaction.booking.field if transaction.booking else None
    if field is None or field.owner_id != current_user.id:
        raise HTTPException(status_code=403, detail="Access denied")

    return envelope(serialize_transaction(transaction))
