"""
Automatic Payout Service
Releases field owner payouts for confirmed bookings once the cancellation
window has passed (or on weekends, depending on the admin schedule), and
handles refunds that claw back an already released payout.

There is no scheduler: admins trigger processing through the API.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..models import Field
from ..models_payout import (
    BOOKING_CANCELLED,
    BOOKING_CONFIRMED,
    PAYMENT_PAID,
    PAYMENT_REFUNDED,
    PAYOUT_COMPLETED,
    PAYOUT_HELD,
    PAYOUT_PENDING,
    PAYOUT_PROCESSING,
    PAYOUT_REFUNDED,
    RELEASE_AFTER_CANCELLATION_WINDOW,
    RELEASE_ON_WEEKEND,
    Booking,
    StripeAccount,
    Transaction,
)
from . import stripe_service
from .commission import calculate_payout_amounts, get_system_settings, owner_amount_for_booking
from .notification_service import create_notification
from .payout_service import SOURCE_AUTO_PAYOUT, booking_reference, execute_booking_payout

logger = logging.getLogger(__name__)

# Stripe fee structure (2.9% + 30 minor units per transaction)
STRIPE_PERCENTAGE_FEE = 0.029
STRIPE_FIXED_FEE_MINOR = 30

DEFAULT_CANCELLATION_WINDOW_HOURS = 24

# Friday, Saturday, Sunday (datetime.weekday numbering)
WEEKEND_RELEASE_DAYS = (4, 5, 6)


class RefundError(Exception):
    pass


def calculate_stripe_fee(amount_minor: int) -> int:
    return int(round(amount_minor * STRIPE_PERCENTAGE_FEE + STRIPE_FIXED_FEE_MINOR))


def parse_start_time(start_time: str) -> tuple[int, int]:
    """
    "9:00AM", "02:30 PM" or 24-hour "14:30" -> (hour, minute).
    12 AM is midnight and 12 PM is noon.
    """
    parts = re.split(r"(?=[AP]M)", start_time.strip().upper(), maxsplit=1)
    clock = parts[0].strip()
    period = parts[1] if len(parts) > 1 else None

    pieces = clock.split(":")
    hour = int(pieces[0])
    minute = int(pieces[1]) if len(pieces) > 1 and pieces[1].strip() else 0

    if period == "PM" and hour != 12:
        hour += 12
    if period == "AM" and hour == 12:
        hour = 0
    return hour, minute


def booking_start(booking: Booking) -> Optional[datetime]:
    """Start of the booking, or None when its start time cannot be read"""
    try:
        hour, minute = parse_start_time(booking.start_time or "")
        return booking.date.replace(hour=hour, minute=minute, second=0, microsecond=0)
    except (ValueError, AttributeError) as e:
        logger.warning(f"⚠️ Booking {booking.id} has an unreadable start time {booking.start_time!r}: {e}")
        return None


def has_cancellation_window_passed(
    booking: Booking,
    cancellation_window_hours: int = DEFAULT_CANCELLATION_WINDOW_HOURS,
    now: Optional[datetime] = None,
) -> bool:
    start = booking_start(booking)
    if start is None:
        return False
    deadline = start - timedelta(hours=cancellation_window_hours)
    return (now or datetime.utcnow()) > deadline


def should_release_payout(booking: Booking, settings, now: Optional[datetime] = None) -> bool:
    """Apply the admin payout release schedule to one booking"""
    schedule = (settings.payout_release_schedule if settings else None) or RELEASE_AFTER_CANCELLATION_WINDOW
    window_hours = (
        settings.cancellation_window_hours if settings else None
    ) or DEFAULT_CANCELLATION_WINDOW_HOURS
    now = now or datetime.utcnow()

    if schedule == RELEASE_ON_WEEKEND:
        return now.weekday() in WEEKEND_RELEASE_DAYS
    if schedule == RELEASE_AFTER_CANCELLATION_WINDOW:
        return has_cancellation_window_passed(booking, window_hours, now)
    return False


class AutomaticPayoutService:
    def __init__(self, db: Session):
        self.db = db

    def process_eligible_payouts(self) -> dict:
        """Release every confirmed, paid booking that meets the release schedule"""
        settings = get_system_settings(self.db)
        candidates = (
            self.db.query(Booking)
            .filter(
                Booking.status == BOOKING_CONFIRMED,
                Booking.payment_status == PAYMENT_PAID,
                or_(
                    Booking.payout_status.is_(None),
                    Booking.payout_status.in_([PAYOUT_PENDING, PAYOUT_HELD]),
                ),
            )
            .order_by(Booking.id)
            .all()
        )
        logger.info(
            f"📥 Automatic payouts: {len(candidates)} candidate booking(s), schedule "
            f"{(settings.payout_release_schedule if settings else None) or RELEASE_AFTER_CANCELLATION_WINDOW}"
        )

        results = {"processed": 0, "skipped": 0, "failed": 0, "details": []}
        for booking in candidates:
            if not should_release_payout(booking, settings):
                results["skipped"] += 1
                results["details"].append(
                    {"bookingId": booking.id, "status": "skipped", "reason": "Not meeting payout release criteria"}
                )
                continue

            try:
                payout = self.process_booking_payout_after_cancellation_window(booking.id)
            except Exception as e:
                logger.error(f"❌ Error processing payout for booking {booking.id}: {e}")
                results["failed"] += 1
                results["details"].append({"bookingId": booking.id, "status": "failed", "error": str(e)})
                continue

            if payout is not None:
                results["processed"] += 1
                results["details"].append(
                    {"bookingId": booking.id, "status": "processed", "payoutId": payout.id, "amount": payout.amount}
                )
            else:
                results["skipped"] += 1
                results["details"].append(
                    {"bookingId": booking.id, "status": "skipped", "reason": "Not eligible or already processed"}
                )

        logger.info(
            f"✅ Payout processing complete. Processed: {results['processed']}, "
            f"Skipped: {results['skipped']}, Failed: {results['failed']}"
        )
        return results

    def process_booking_payout_after_cancellation_window(self, booking_id: int):
        """Returns the Payout, or None when the booking is not releasable"""
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if booking is None:
            raise LookupError("Booking not found")

        settings = get_system_settings(self.db)
        if not should_release_payout(booking, settings):
            logger.info(f"Booking {booking_id} is not eligible for payout based on admin settings")
            return None
        if booking.payout_status in (PAYOUT_COMPLETED, PAYOUT_PROCESSING):
            logger.info(f"Payout already {booking.payout_status} for booking {booking_id}")
            return None
        if booking.status != BOOKING_CONFIRMED or booking.payment_status != PAYMENT_PAID:
            logger.info(
                f"Booking {booking_id} is not eligible for payout. "
                f"Status: {booking.status}, Payment: {booking.payment_status}"
            )
            return None

        return execute_booking_payout(self.db, booking, SOURCE_AUTO_PAYOUT)

    def process_refund_with_fee_adjustment(self, booking: Booking, refund_reason: str):
        """
        Refund the customer in full. If the owner was already paid, the owner
        amount plus the processor fee is reversed from their transfer first.
        """
        if not booking.payment_intent_id:
            raise RefundError("Booking has no payment to refund")

        ref = booking_reference(booking)
        field = booking.field
        owner_id = field.owner_id if field else None
        stripe_fee = calculate_stripe_fee(stripe_service.to_minor_units(booking.total_price or 0))

        if booking.payout_status == PAYOUT_COMPLETED and booking.payout_id and owner_id:
            stripe_account = self.db.query(StripeAccount).filter(StripeAccount.user_id == owner_id).first()
            if stripe_account is not None:
                try:
                    owner_amount = owner_amount_for_booking(self.db, booking)
                    recovery_minor = stripe_service.to_minor_units(owner_amount) + stripe_fee
                    transfer_txn = (
                        self.db.query(Transaction)
                        .filter(
                            Transaction.booking_id == booking.id,
                            Transaction.stripe_transfer_id.isnot(None),
                        )
                        .first()
                    )
                    if transfer_txn is None:
                        raise RefundError(f"No transfer recorded for booking {ref}")

                    stripe_service.reverse_transfer(
                        transfer_txn.stripe_transfer_id,
                        recovery_minor,
                        metadata={
                            "bookingId": str(booking.id),
                            "type": "refund_reversal",
                            "originalPayoutId": str(booking.payout_id),
                            "stripeFeeIncluded": str(stripe_fee),
                            "reason": refund_reason,
                        },
                    )
                    create_notification(
                        self.db,
                        owner_id,
                        "PAYOUT_REVERSED",
                        "Payout Reversed Due to Refund",
                        f"£{recovery_minor / 100:.2f} has been deducted from your account due to a booking "
                        "cancellation. This includes the Stripe processing fee.",
                        {
                            "bookingId": booking.id,
                            "reversalAmount": recovery_minor / 100,
                            "stripeFee": stripe_fee / 100,
                            "refundReason": refund_reason,
                        },
                    )
                    logger.info(f"↩️ Reversed £{recovery_minor / 100:.2f} from owner {owner_id} for booking {ref}")
                except Exception as e:
                    # Refund proceeds regardless
                    logger.error(f"❌ Error reversing field owner payout for booking {ref}: {e}")

        refund = stripe_service.create_refund(booking.payment_intent_id)

        now = datetime.utcnow()
        booking.status = BOOKING_CANCELLED
        booking.payout_status = PAYOUT_REFUNDED
        booking.payment_status = PAYMENT_REFUNDED
        booking.cancellation_reason = refund_reason
        booking.cancelled_at = now
        self.db.query(Transaction).filter(
            Transaction.booking_id == booking.id, Transaction.type == "PAYMENT"
        ).update({Transaction.status: "REFUNDED"}, synchronize_session=False)
        self.db.commit()

        create_notification(
            self.db,
            booking.user_id,
            "REFUND_PROCESSED",
            "Refund Processed",
            f"Your refund of £{booking.total_price:.2f} has been initiated and will be credited to your "
            "account within 5-7 business days.",
            {"bookingId": booking.id, "refundAmount": booking.total_price, "fieldName": field.name if field else None},
        )
        logger.info(f"💸 Refund {refund['id']} issued for booking {ref}")
        return refund

    def get_payout_summary(self, user_id: int, now: Optional[datetime] = None) -> dict:
        """Earnings split by payout state for the owner's paid bookings"""
        now = now or datetime.utcnow()
        settings = get_system_settings(self.db)
        window_hours = (
            settings.cancellation_window_hours if settings else None
        ) or DEFAULT_CANCELLATION_WINDOW_HOURS
        bookings = (
            self.db.query(Booking)
            .join(Field, Booking.field_id == Field.id)
            .filter(Field.owner_id == user_id, Booking.payment_status == PAYMENT_PAID)
            .order_by(Booking.date, Booking.id)
            .all()
        )

        summary = {
            "totalEarnings": 0.0,
            "pendingPayouts": 0.0,
            "completedPayouts": 0.0,
            "upcomingPayouts": 0.0,
            "bookingsInCancellationWindow": [],
        }

        for booking in bookings:
            amount = booking.field_owner_amount
            if amount is None:
                amount = calculate_payout_amounts(self.db, booking.total_price or 0, user_id)["fieldOwnerAmount"]

            if booking.payout_status == PAYOUT_COMPLETED:
                summary["completedPayouts"] += amount
                summary["totalEarnings"] += amount
            elif booking.payout_status == PAYOUT_PROCESSING:
                summary["pendingPayouts"] += amount
            elif booking.status == BOOKING_CONFIRMED:
                if should_release_payout(booking, settings, now):
                    summary["pendingPayouts"] += amount
                    continue

                start = booking_start(booking)
                if start is None:
                    continue
                summary["upcomingPayouts"] += amount
                summary["bookingsInCancellationWindow"].append(
                    {
                        "bookingId": booking.id,
                        "amount": amount,
                        "bookingDate": booking.date,
                        "bookingTime": booking.start_time,
                        "payoutAvailableAt": start - timedelta(hours=window_hours),
                    }
                )

        return summary
