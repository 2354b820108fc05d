"""
Automatic Payout Routes
Admin triggers for releasing payouts after the cancellation window, plus
owner summaries and refunds that claw back released payouts.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import ADMIN, FIELD_OWNER, User
from ..models_payout import Booking
from ..schemas import envelope
from ..services.auto_payout_service import AutomaticPayoutService, RefundError
from ..services.payout_service import serialize_payout

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auto-payouts", tags=["Automatic Payouts"])


class RefundRequest(BaseModel):
    reason: Optional[str] = None


def get_auto_payout_service(db: Session = Depends(get_db)) -> AutomaticPayoutService:
    return AutomaticPayoutService(db)


@router.post("/trigger")
async def trigger_payout_processing(
    current_user: User = Depends(get_current_user),
    service: AutomaticPayoutService = Depends(get_auto_payout_service),
):
    if current_user.role != ADMIN:
        raise HTTPException(status_code=403, detail="Only admins can trigger manual payout processing")

    results = service.process_eligible_payouts()
    return envelope(results, "Payout processing completed")


@router.post("/process/{booking_id}")
async def process_booking_payout(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    service: AutomaticPayoutService = Depends(get_auto_payout_service),
):
    if current_user.role != ADMIN:
        raise HTTPException(status_code=403, detail="Only admins can manually process payouts")

    try:
        payout = service.process_booking_payout_after_cancellation_window(booking_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e

    if payout is None:
        return {"success": False, "message": "Booking not eligible for payout or already processed"}

    return envelope(serialize_payout(payout), "Payout processed successfully")


@router.get("/summary")
async def get_payout_summary(
    current_user: User = Depends(get_current_user),
    service: AutomaticPayoutService = Depends(get_auto_payout_service),
):
    if current_user.role not in (FIELD_OWNER, ADMIN):
        raise HTTPException(status_code=403, detail="Only field owners can view payout summary")
    return envelope(service.get_payout_summary(current_user.id))


@router.post("/refund/{booking_id}")
async def process_refund_with_fees(
    booking_id: int,
    data: Optional[RefundRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: AutomaticPayoutService = Depends(get_auto_payout_service),
):
    """Full customer refund; a released owner payout is reversed with the processing fee"""
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if booking is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    if current_user.role != ADMIN and booking.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="You are not authorized to refund this booking")

    reason = (data.reason if data else None) or "Customer requested refund"
    try:
        refund = service.process_refund_with_fee_adjustment(booking, reason)
    except RefundError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"❌ Refund failed for booking {booking_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to process refund") from e

    return envelope(
        {"id": refund["id"], "amount": refund.get("amount"), "status": refund.get("status")},
        "Refund processed successfully. The amount will be credited to your account within 5-7 business days.",
    )
