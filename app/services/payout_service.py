"""
Payout Service
Transfers the field owner's share of a booking from the platform balance to
their connected account and pays it out to their bank.

Both the booking-completion flow and the automatic (cancellation window)
flow run the same pipeline, ``execute_booking_payout``.
"""

import logging
from calendar import monthrange
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from ..config import DEFAULT_CURRENCY
from ..models import Field, User
from ..models_payout import (
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    PAYMENT_PAID,
    PAYOUT_COMPLETED,
    PAYOUT_FAILED,
    PAYOUT_HELD,
    PAYOUT_PENDING,
    PAYOUT_PENDING_ACCOUNT,
    PAYOUT_PROCESSING,
    Booking,
    Payout,
    StripeAccount,
    Transaction,
)
from ..schemas import pagination
from . import stripe_service
from .commission import calculate_payout_amounts
from .notification_service import create_notification, notify_admins

logger = logging.getLogger(__name__)

SOURCE_BOOKING_COMPLETION = "booking_completion"
SOURCE_AUTO_PAYOUT = "auto_payout"


class PayoutProcessingError(Exception):
    """A payout could not be completed and needs admin attention"""


def booking_reference(booking: Booking) -> str:
    return booking.booking_id or str(booking.id)


def _set_transactions(db: Session, booking: Booking, **values) -> None:
    db.query(Transaction).filter(Transaction.booking_id == booking.id).update(
        values, synchronize_session=False
    )


def _notify_account_setup(db: Session, booking: Booking, owner: User, amount: float, has_account: bool, source: str):
    ref = booking_reference(booking)
    if not has_account:
        title = (
            "Set up payment account for automatic payouts"
            if source == SOURCE_AUTO_PAYOUT
            else "Set up payment account"
        )
        message = (
            f"You have a pending payout of £{amount:.2f} from booking {ref}. "
            "Please set up your payment account to receive funds."
        )
    else:
        title = "Complete payment account setup"
        message = f"Complete your payment account setup to receive £{amount:.2f} from booking {ref}."

    create_notification(
        db,
        owner.id,
        "PAYOUT_PENDING",
        title,
        message,
        {"bookingId": booking.id, "amount": amount, "fieldName": booking.field.name},
    )


def execute_booking_payout(db: Session, booking: Booking, source: str = SOURCE_BOOKING_COMPLETION) -> Optional[Payout]:
    """
    Run the transfer pipeline for one booking.

    Returns the Payout row, or None when the payout was deferred (no usable
    account, funds not settled, platform balance too low). Processor failures
    mark the booking FAILED, alert every admin and are re-raised.
    """
    field: Field = booking.field
    owner: Optional[User] = field.owner if field else None
    if owner is None:
        raise PayoutProcessingError("Field owner not found")

    ref = booking_reference(booking)
    stripe_account = db.query(StripeAccount).filter(StripeAccount.user_id == owner.id).first()

    amounts = calculate_payout_amounts(db, booking.total_price or 0, owner.id)
    payout_amount = booking.field_owner_amount
    platform_commission = booking.platform_commission
    if payout_amount is None:
        payout_amount = amounts["fieldOwnerAmount"]
        platform_commission = amounts["platformCommission"]

    if stripe_account is None or not stripe_account.fully_enabled:
        logger.info(f"⚠️ Field owner {owner.id} has no usable payment account (booking {ref})")
        _notify_account_setup(db, booking, owner, payout_amount, stripe_account is not None, source)
        booking.payout_status = PAYOUT_PENDING_ACCOUNT
        db.commit()
        return None

    amount_minor = stripe_service.to_minor_units(payout_amount)

    # Funds gate: the customer's payment must have settled
    payment_txn = (
        db.query(Transaction)
        .filter(Transaction.booking_id == booking.id, Transaction.type == "PAYMENT")
        .order_by(Transaction.id)
        .first()
    )
    if payment_txn is not None and payment_txn.stripe_charge_id:
        funds = stripe_service.check_charge_funds_available(payment_txn.stripe_charge_id)
        if not funds["is_available"]:
            available_on = funds["available_on"].isoformat() if funds["available_on"] else "unknown"
            logger.info(f"⏳ Funds not yet available for booking {ref}: {funds['message']}")
            booking.payout_status = PAYOUT_PENDING
            booking.payout_held_reason = f"Funds pending availability: {available_on}"
            _set_transactions(db, booking, lifecycle_stage="FUNDS_PENDING")
            db.commit()
            return None

        _set_transactions(
            db, booking, lifecycle_stage="FUNDS_AVAILABLE", funds_available_at=datetime.utcnow()
        )
        db.commit()

    # Platform balance gate
    balance = stripe_service.check_platform_balance(amount_minor, DEFAULT_CURRENCY)
    if not balance["can_transfer"]:
        logger.info(f"⏳ Insufficient platform balance for booking {ref}: {balance['message']}")
        booking.payout_status = PAYOUT_PENDING
        booking.payout_held_reason = (
            f"Insufficient platform balance: {balance['available_amount'] / 100} GBP available, "
            f"need {amount_minor / 100} GBP"
        )
        db.commit()
        return None

    booking.payout_status = PAYOUT_PROCESSING
    db.commit()

    automatic = source == SOURCE_AUTO_PAYOUT
    description = (
        f"Automatic payout for booking {ref} - Cancellation window passed"
        if automatic
        else f"Payout for booking {ref}"
    )

    try:
        transfer_result = stripe_service.safe_transfer_with_balance_gate(
            amount_minor=amount_minor,
            destination=stripe_account.stripe_account_id,
            currency=DEFAULT_CURRENCY,
            transfer_group=f"booking_{booking.id}",
            metadata={
                "bookingId": str(booking.id),
                "fieldId": str(field.id),
                "fieldOwnerId": str(owner.id),
                "type": "automatic_booking_payout" if automatic else "booking_payout",
            },
            description=f"{description} - {field.name}",
        )

        if not transfer_result["success"] and transfer_result["should_defer"]:
            logger.info(f"⏸️ Transfer deferred for booking {ref}: {transfer_result['reason']}")
            booking.payout_status = PAYOUT_PENDING
            booking.payout_held_reason = transfer_result["reason"]
            db.commit()
            return None

        if not transfer_result["success"]:
            raise PayoutProcessingError(transfer_result["reason"])

        transfer = transfer_result["transfer"]

        stripe_payout = None
        try:
            stripe_payout = stripe_service.create_connected_account_payout(
                stripe_account.stripe_account_id,
                amount_minor,
                description=description,
                metadata={
                    "bookingId": str(booking.id),
                    "fieldOwnerId": str(owner.id),
                    "transferId": transfer["id"],
                    "source": source,
                },
            )
        except Exception as e:
            logger.error(f"❌ Connected account payout failed for booking {ref}: {e}")

        now = datetime.utcnow()
        paid = stripe_payout is not None and stripe_payout.get("status") == "paid"
        arrival = stripe_payout.get("arrival_date") if stripe_payout is not None else None

        payout = Payout(
            stripe_account_id=stripe_account.id,
            stripe_payout_id=stripe_payout["id"] if stripe_payout is not None else transfer["id"],
            amount=payout_amount,
            currency=DEFAULT_CURRENCY,
            status=(stripe_payout.get("status") if stripe_payout is not None else None) or "processing",
            method=(stripe_payout.get("method") if stripe_payout is not None else None) or "standard",
            description=description,
            booking_ids=[booking.id],
            arrival_date=datetime.utcfromtimestamp(arrival) if arrival else now,
            failure_code=stripe_payout.get("failure_code") if stripe_payout is not None else None,
            failure_message=stripe_payout.get("failure_message") if stripe_payout is not None else None,
            created_at=now,
        )
        db.add(payout)
        db.flush()

        booking.payout_status = PAYOUT_COMPLETED if paid else PAYOUT_PROCESSING
        booking.payout_id = payout.id
        booking.payout_held_reason = None
        booking.field_owner_amount = payout_amount
        booking.platform_commission = platform_commission

        lifecycle = {
            "lifecycle_stage": "PAYOUT_COMPLETED" if paid else "PAYOUT_INITIATED",
            "stripe_transfer_id": transfer["id"],
            "stripe_payout_id": stripe_payout["id"] if stripe_payout is not None else None,
            "connected_account_id": stripe_account.stripe_account_id,
            "transferred_at": now,
            "payout_initiated_at": now,
        }
        if paid:
            lifecycle["payout_completed_at"] = now
        _set_transactions(db, booking, **lifecycle)
        db.commit()
        db.refresh(payout)
    except Exception as e:
        logger.error(f"❌ Payout failed for booking {ref}: {e}")
        db.rollback()
        booking.payout_status = PAYOUT_FAILED
        db.commit()
        notify_admins(
            db,
            "PAYOUT_FAILED",
            "Automatic Payout Failed" if automatic else "Payout Failed",
            f"Failed to process payout for booking {ref}. Error: {e}",
            {"bookingId": booking.id, "fieldOwnerId": owner.id, "error": str(e)},
        )
        raise

    customer = booking.user
    create_notification(
        db,
        owner.id,
        "PAYOUT_PROCESSED",
        "💰 Payment Received!",
        f"£{payout_amount:.2f} has been transferred to your account for the {field.name} booking.",
        {
            "bookingId": booking.id,
            "payoutId": payout.id,
            "amount": payout_amount,
            "fieldName": field.name,
            "customerName": (customer.name or customer.email) if customer else None,
        },
    )

    logger.info(f"💰 Payout {payout.id} processed for booking {ref}: £{payout_amount:.2f}")
    return payout


def serialize_payout(payout: Payout) -> dict:
    return {
        "id": payout.id,
        "stripePayoutId": payout.stripe_payout_id,
        "amount": payout.amount,
        "currency": payout.currency,
        "status": payout.status,
        "method": payout.method,
        "description": payout.description,
        "bookingIds": payout.booking_ids or [],
        "arrivalDate": payout.arrival_date,
        "failureCode": payout.failure_code,
        "failureMessage": payout.failure_message,
        "createdAt": payout.created_at,
    }


class PayoutService:
    """Payouts triggered by booking completion"""

    def __init__(self, db: Session):
        self.db = db

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        return self.db.query(Booking).filter(Booking.id == booking_id).first()

    def process_booking_payout(self, booking_id: int) -> Optional[Payout]:
        booking = self.get_booking(booking_id)
        if booking is None:
            raise PayoutProcessingError("Booking not found")

        if booking.payout_status in (PAYOUT_COMPLETED, PAYOUT_PROCESSING):
            logger.info(f"Payout already {booking.payout_status} for booking {booking_id}")
            return None
        if booking.payout_status == PAYOUT_HELD:
            logger.info(f"Payout is held for booking {booking_id}. Reason: {booking.payout_held_reason}")
            return None
        if booking.status != BOOKING_COMPLETED or booking.payment_status != PAYMENT_PAID:
            logger.info(
                f"Booking {booking_id} is not eligible for payout. "
                f"Status: {booking.status}, Payment: {booking.payment_status}"
            )
            return None

        return execute_booking_payout(self.db, booking, SOURCE_BOOKING_COMPLETION)

    def process_pending_payouts(self, user_id: int) -> list[dict]:
        """Retry every completed booking of the owner still waiting on a payout"""
        pending = (
            self.db.query(Booking)
            .join(Field, Booking.field_id == Field.id)
            .filter(
                Field.owner_id == user_id,
                Booking.status == BOOKING_COMPLETED,
                Booking.payment_status == PAYMENT_PAID,
                Booking.payout_status.in_([PAYOUT_PENDING, PAYOUT_PENDING_ACCOUNT]),
            )
            .order_by(Booking.id)
            .all()
        )
        logger.info(f"📥 Processing {len(pending)} pending payouts for user {user_id}")

        results = []
        for booking in pending:
            try:
                payout = self.process_booking_payout(booking.id)
                results.append(
                    {
                        "bookingId": booking.id,
                        "success": True,
                        "deferred": payout is None,
                        "payout": serialize_payout(payout) if payout else None,
                    }
                )
            except Exception as e:
                logger.error(f"❌ Failed to process payout for booking {booking.id}: {e}")
                results.append({"bookingId": booking.id, "success": False, "error": str(e)})
        return results

    def get_payout_history(self, user_id: int, page: int = 1, limit: int = 10) -> dict:
        stripe_account = self.db.query(StripeAccount).filter(StripeAccount.user_id == user_id).first()
        if stripe_account is None:
            return {"payouts": [], **pagination(page, limit, 0)}

        query = self.db.query(Payout).filter(Payout.stripe_account_id == stripe_account.id)
        total = query.count()
        payouts = (
            query.order_by(Payout.created_at.desc(), Payout.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        enhanced = []
        for payout in payouts:
            bookings = (
                self.db.query(Booking).filter(Booking.id.in_(payout.booking_ids or [])).all()
                if payout.booking_ids
                else []
            )
            enhanced.append(
                {
                    **serialize_payout(payout),
                    "bookings": [
                        {
                            "id": b.id,
                            "bookingId": b.booking_id,
                            "fieldName": b.field.name if b.field else None,
                            "customerName": (b.user.name or b.user.email) if b.user else None,
                            "date": b.date,
                            "amount": b.field_owner_amount
                            if b.field_owner_amount is not None
                            else calculate_payout_amounts(self.db, b.total_price or 0, user_id)[
                                "fieldOwnerAmount"
                            ],
                        }
                        for b in bookings
                    ],
                }
            )

        return {"payouts": enhanced, **pagination(page, limit, total)}

    # ---- Transaction based earnings ----

    def _owner_booking_ids(self, user_id: int, earning_only: bool = False) -> list[int]:
        query = self.db.query(Booking.id).join(Field, Booking.field_id == Field.id).filter(Field.owner_id == user_id)
        if earning_only:
            query = query.filter(
                or_(
                    Booking.status == BOOKING_COMPLETED,
                    and_(Booking.status == BOOKING_CANCELLED, Booking.payout_status.isnot(None)),
                )
            )
        return [row[0] for row in query.all()]

    def get_earnings_history(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict:
        """Transactions of completed bookings, and of cancelled ones that reached payout"""
        booking_ids = self._owner_booking_ids(user_id, earning_only=True)
        if not booking_ids:
            return {
                "transactions": [],
                "totalEarnings": 0,
                "stats": {"completed": 0, "refunded": 0, "failed": 0},
                "pagination": pagination(page, limit, 0),
            }

        base = self.db.query(Transaction).filter(Transaction.booking_id.in_(booking_ids))
        query = base
        if status:
            query = query.filter(Transaction.status == status)
        if start_date:
            query = query.filter(Transaction.created_at >= start_date)
        if end_date:
            query = query.filter(Transaction.created_at <= end_date)

        total = query.count()
        transactions = (
            query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

        total_earnings = (
            base.filter(Transaction.status == "COMPLETED")
            .with_entities(func.coalesce(func.sum(Transaction.amount), 0))
            .scalar()
        )
        counts = dict(
            base.with_entities(Transaction.status, func.count(Transaction.id)).group_by(Transaction.status).all()
        )

        return {
            "transactions": [serialize_transaction_row(t) for t in transactions],
            "totalEarnings": float(total_earnings or 0),
            "stats": {
                "completed": counts.get("COMPLETED", 0),
                "refunded": counts.get("REFUNDED", 0),
                "failed": counts.get("FAILED", 0),
            },
            "pagination": pagination(page, limit, total),
        }

    def get_earnings_summary(self, user_id: int, period: str = "all", now: Optional[datetime] = None) -> dict:
        now = now or datetime.utcnow()
        booking_ids = self._owner_booking_ids(user_id)
        if not booking_ids:
            return {
                "totalEarnings": 0,
                "currentBalance": 0,
                "pendingPayouts": 0,
                "lastPayout": None,
                "monthlyEarnings": [],
            }

        base = self.db.query(Transaction).filter(Transaction.booking_id.in_(booking_ids))
        completed = base.filter(Transaction.status == "COMPLETED")
        since = period_start(period, now)
        in_period = completed.filter(Transaction.created_at >= since) if since else completed

        total_earnings = sum(t.amount for t in in_period.all())
        pending = sum(t.amount for t in base.filter(Transaction.status == "PENDING").all())

        months = last_months(now, 6)
        recent = completed.filter(Transaction.created_at >= months[0]).all()
        monthly = []
        for start in months:
            amount = sum(
                t.amount
                for t in recent
                if t.created_at and t.created_at.year == start.year and t.created_at.month == start.month
            )
            monthly.append({"month": start.strftime("%b %Y"), "amount": amount})

        last_payout = None
        stripe_account = self.db.query(StripeAccount).filter(StripeAccount.user_id == user_id).first()
        if stripe_account is not None:
            latest = (
                self.db.query(Payout)
                .filter(Payout.stripe_account_id == stripe_account.id)
                .order_by(Payout.created_at.desc(), Payout.id.desc())
                .first()
            )
            last_payout = serialize_payout(latest) if latest else None

        return {
            "totalEarnings": total_earnings,
            "currentBalance": total_earnings - pending,
            "pendingPayouts": pending,
            "lastPayout": last_payout,
            "monthlyEarnings": monthly,
        }

    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return self.db.query(Transaction).filter(Transaction.id == transaction_id).first()


def period_start(period: str, now: datetime) -> Optional[datetime]:
    """Lower bound for week/month/year summaries; None for all time"""
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return shift_months(now, -1)
    if period == "year":
        return shift_months(now, -12)
    return None


def shift_months(moment: datetime, months: int) -> datetime:
    index = moment.year * 12 + (moment.month - 1) + months
    year, month = divmod(index, 12)
    day = min(moment.day, monthrange(year, month + 1)[1])
    return moment.replace(year=year, month=month + 1, day=day)


def last_months(now: datetime, count: int) -> list[datetime]:
    """First instant of each of the last ``count`` months, oldest first, current month included"""
    current = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return [shift_months(current, -offset) for offset in range(count - 1, -1, -1)]


def serialize_transaction_row(transaction: Transaction) -> dict:
    booking = transaction.booking
    field = booking.field if booking else None
    customer = booking.user if booking else None
    return {
        "id": transaction.id,
        "orderId": f"#{str(transaction.id)[-6:].upper()}",
        "paymentId": transaction.stripe_payment_intent_id or str(transaction.id),
        "date": transaction.created_at,
        "amount": transaction.amount,
        "status": (transaction.status or "").lower(),
        "type": transaction.type,
        "fieldName": field.name if field else None,
        "fieldAddress": field.address if field else None,
        "customerName": customer.name if customer else None,
        "customerEmail": customer.email if customer else None,
        "description": transaction.description,
    }


def serialize_transaction(transaction: Transaction) -> dict:
    """Full transaction with its booking, for the detail view"""
    booking = transaction.booking
    customer = booking.user if booking else None
    return {
        "id": transaction.id,
        "bookingId": transaction.booking_id,
        "userId": transaction.user_id,
        "amount": transaction.amount,
        "type": transaction.type,
        "status": transaction.status,
        "description": transaction.description,
        "stripePaymentIntentId": transaction.stripe_payment_intent_id,
        "stripeChargeId": transaction.stripe_charge_id,
        "stripeTransferId": transaction.stripe_transfer_id,
        "stripePayoutId": transaction.stripe_payout_id,
        "connectedAccountId": transaction.connected_account_id,
        "lifecycleStage": transaction.lifecycle_stage,
        "fundsAvailableAt": transaction.funds_available_at,
        "transferredAt": transaction.transferred_at,
        "payoutInitiatedAt": transaction.payout_initiated_at,
        "payoutCompletedAt": transaction.payout_completed_at,
        "createdAt": transaction.created_at,
        "booking": {
            "id": booking.id,
            "bookingId": booking.booking_id,
            "date": booking.date,
            "startTime": booking.start_time,
            "endTime": booking.end_time,
            "totalPrice": booking.total_price,
            "status": booking.status,
            "field": {"id": booking.field.id, "name": booking.field.name, "address": booking.field.address}
            if booking.field
            else None,
            "user": {"name": customer.name, "email": customer.email, "phone": customer.phone}
            if customer
            else None,
        }
        if booking
        else None,
    }
