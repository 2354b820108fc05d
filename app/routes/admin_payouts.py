"""
Admin Payout Routes
Platform-wide payout statistics, platform balance and a manual run of every payout flow.
"""
import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import User
from ..models_payout import BOOKING_COMPLETED, PAYMENT_PAID, PAYOUT_PENDING, Booking, Payout
from ..schemas import envelope
from ..services import stripe_service
from ..services.auto_payout_service import AutomaticPayoutService
from ..services.payout_service import PayoutService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/payouts", tags=["Admin Payouts"])


def _payout_sum(db: Session, status=None) -> float:
    query = db.query(func.coalesce(func.sum(Payout.amount), 0))
    if status:
        query = query.filter(Payout.status == status)
    return float(query.scalar() or 0)


@router.get("/stats")
async def get_payout_stats(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    def count(status=None) -> int:
        query = db.query(Payout)
        if status:
            query = query.filter(Payout.status == status)
        return query.count()

    cutoff = datetime.utcnow() - timedelta(hours=24)
    awaiting = (
        db.query(Booking)
        .filter(
            Booking.status == BOOKING_COMPLETED,
            Booking.payout_status.is_(None),
            Booking.date <= cutoff,
        )
        .count()
    )

    return envelope(
        {
            "payouts": {
                "total": count(),
                "pending": count("pending"),
                "paid": count("paid"),
                "failed": count("failed"),
            },
            "amounts": {
                "total": _payout_sum(db),
                "pending": _payout_sum(db, "pending"),
                "paid": _payout_sum(db, "paid"),
            },
            "bookingsAwaitingPayout": awaiting,
        }
    )


@router.get("/balance")
async def get_platform_balance(current_user: User = Depends(require_admin)):
    try:
        balance = stripe_service.get_platform_balance()
    except Exception as e:
        logger.error(f"❌ Failed to fetch platform balance: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch platform balance") from e
    return envelope({**balance, "currency": balance["currency"].upper()})


@router.post("/process")
async def process_payouts(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    """Run the automatic release, then retry completed bookings that never got a payout"""
    auto_results = AutomaticPayoutService(db).process_eligible_payouts()

    payout_service = PayoutService(db)
    completed = (
        db.query(Booking)
        .filter(
            Booking.status == BOOKING_COMPLETED,
            Booking.payment_status == PAYMENT_PAID,
            or_(Booking.payout_status.is_(None), Booking.payout_status == PAYOUT_PENDING),
        )
        .order_by(Booking.id)
        .all()
    )

    completion_results = {"processed": 0, "skipped": 0, "failed": 0}
    for booking in completed:
        try:
            payout = payout_service.process_booking_payout(booking.id)
        except Exception as e:
            logger.error(f"❌ Completion payout failed for booking {booking.id}: {e}")
            completion_results["failed"] += 1
            continue
        completion_results["processed" if payout else "skipped"] += 1

    logger.info(f"🔧 Admin {current_user.id} ran payout processing")
    return envelope(
        {"automatic": auto_results, "completedBookings": completion_results},
        "Payout processing triggered successfully",
    )
