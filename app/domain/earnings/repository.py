"""Earnings repository - Database reads behind the field owner earnings views"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Field
from ...models_payout import (
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    HELD_REASONS,
    PAYMENT_PAID,
    PAYOUT_COMPLETED,
    PAYOUT_HELD,
    SUCCESSFUL_PAYOUT_STATUSES,
    Booking,
    Payout,
    StripeAccount,
)


class EarningsRepository:
    """Repository for earnings database operations"""

    @staticmethod
    def owner_fields(db: Session, user_id: int) -> list[Field]:
        return db.query(Field).filter(Field.owner_id == user_id).order_by(Field.id).all()

    @staticmethod
    def stripe_account(db: Session, user_id: int) -> Optional[StripeAccount]:
        return db.query(StripeAccount).filter(StripeAccount.user_id == user_id).first()

    @staticmethod
    def successful_payouts(db: Session, stripe_account_id: int) -> list[Payout]:
        return (
            db.query(Payout)
            .filter(
                Payout.stripe_account_id == stripe_account_id,
                Payout.status.in_(SUCCESSFUL_PAYOUT_STATUSES),
            )
            .all()
        )

    @staticmethod
    def payouts_query(
        db: Session,
        stripe_account_id: int,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        query = db.query(Payout).filter(Payout.stripe_account_id == stripe_account_id)
        if status:
            query = query.filter(Payout.status == status)
        if start_date:
            query = query.filter(Payout.created_at >= start_date)
        if end_date:
            query = query.filter(Payout.created_at <= end_date)
        return query.order_by(Payout.created_at.desc(), Payout.id.desc())

    @staticmethod
    def bookings_by_ids(db: Session, booking_ids: list[int]) -> list[Booking]:
        if not booking_ids:
            return []
        return db.query(Booking).filter(Booking.id.in_(booking_ids)).order_by(Booking.id).all()

    @staticmethod
    def paid_bookings(db: Session, field_ids: list[int]) -> list[Booking]:
        """CONFIRMED or COMPLETED bookings that have been paid for"""
        return (
            db.query(Booking)
            .filter(
                Booking.field_id.in_(field_ids),
                Booking.status.in_([BOOKING_CONFIRMED, BOOKING_COMPLETED]),
                Booking.payment_status == PAYMENT_PAID,
            )
            .all()
        )

    @staticmethod
    def completed_payout_bookings(db: Session, field_ids: list[int]) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.field_id.in_(field_ids), Booking.payout_status == PAYOUT_COMPLETED)
            .all()
        )

    @staticmethod
    def held_bookings(db: Session, field_ids: list[int]) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(
                Booking.field_id.in_(field_ids),
                Booking.payout_status == PAYOUT_HELD,
                Booking.payout_held_reason.in_(HELD_REASONS),
                Booking.status.in_([BOOKING_CONFIRMED, BOOKING_COMPLETED]),
                Booking.payment_status == PAYMENT_PAID,
            )
            .order_by(Booking.date.desc(), Booking.id.desc())
            .all()
        )

    @staticmethod
    def payout_by_stripe_id(db: Session, stripe_payout_id: str) -> Optional[Payout]:
        return db.query(Payout).filter(Payout.stripe_payout_id == stripe_payout_id).first()
