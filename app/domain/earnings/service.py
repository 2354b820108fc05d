"""Earnings service - Field owner earnings dashboard, payout history and reconciliation"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import DEFAULT_CURRENCY
from ...models import ADMIN, FIELD_OWNER, User
from ...models_payout import HELD_NO_STRIPE_ACCOUNT, Booking, Payout
from ...schemas import pagination
from ...services import stripe_service
from ...services.auto_payout_service import AutomaticPayoutService
from ...services.commission import owner_amount_for_booking
from .calculations import (
    apportion_field_earnings,
    customer_label,
    export_filename,
    group_held_by_reason,
    held_action,
    hours_until,
    payouts_to_csv,
    period_earnings,
)
from .repository import EarningsRepository
from .schemas import FieldEarning, HeldBooking, PayoutBooking, SyncResult

logger = logging.getLogger(__name__)

RECENT_PAYOUTS_LIMIT = 10
STRIPE_SYNC_LIMIT = 100


def _empty_dashboard() -> dict:
    return {
        "totalEarnings": 0,
        "pendingPayouts": 0,
        "completedPayouts": 0,
        "upcomingPayouts": 0,
        "heldPayouts": 0,
        "heldBookingsCount": 0,
        "todayEarnings": 0,
        "weekEarnings": 0,
        "monthEarnings": 0,
        "yearEarnings": 0,
        "recentPayouts": [],
        "upcomingEarnings": [],
        "bookingsInCancellationWindow": [],
        "fieldEarnings": [],
        "hasStripeAccount": False,
        "stripeAccountComplete": False,
    }


class EarningsService:
    """Service layer for field owner earnings"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = EarningsRepository()

    @staticmethod
    def _require_owner_or_admin(user: User, action: str) -> None:
        if user.role not in (FIELD_OWNER, ADMIN):
            raise HTTPException(status_code=403, detail=f"Only field owners can {action}")

    def _booking_amount(self, booking: Booking) -> float:
        return owner_amount_for_booking(self.db, booking)

    def _payout_bookings(self, payout: Payout) -> list[Booking]:
        return self.repo.bookings_by_ids(self.db, list(payout.booking_ids or []))

    def _serialize_booking(self, booking: Booking) -> dict:
        user = booking.user
        return PayoutBooking(
            id=booking.id,
            bookingId=booking.booking_id,
            fieldName=booking.field.name if booking.field else None,
            customerName=(user.name or user.email) if user else None,
            date=booking.date,
            time=f"{booking.start_time} - {booking.end_time}",
            amount=self._booking_amount(booking),
            status=booking.status,
        ).model_dump()

    # ---- Dashboard ----

    def get_dashboard(self, user: User, now: Optional[datetime] = None) -> dict:
        self._require_owner_or_admin(user, "view earnings dashboard")
        now = now or datetime.utcnow()

        fields = self.repo.owner_fields(self.db, user.id)
        if not fields:
            return _empty_dashboard()
        field_ids = [f.id for f in fields]

        stripe_account = self.repo.stripe_account(self.db, user.id)
        successful = self.repo.successful_payouts(self.db, stripe_account.id) if stripe_account else []
        periods = period_earnings(successful, now)

        completed_bookings = self.repo.completed_payout_bookings(self.db, field_ids)
        completed_amount = sum(self._booking_amount(b) for b in completed_bookings)

        summary = AutomaticPayoutService(self.db).get_payout_summary(user.id, now)

        recent_payouts = []
        if stripe_account:
            recent = (
                self.repo.payouts_query(self.db, stripe_account.id).limit(RECENT_PAYOUTS_LIMIT).all()
            )
            for payout in recent:
                recent_payouts.append(
                    {
                        "id": payout.id,
                        "amount": payout.amount,
                        "status": payout.status,
                        "createdAt": payout.created_at,
                        "arrivalDate": payout.arrival_date,
                        "bookings": [self._serialize_booking(b) for b in self._payout_bookings(payout)],
                    }
                )

        paid_bookings = self.repo.paid_bookings(self.db, field_ids)
        field_earnings = []
        for field in fields:
            booking_count = sum(1 for b in paid_bookings if b.field_id == field.id)
            completed_ids = [b.id for b in completed_bookings if b.field_id == field.id]
            field_total = apportion_field_earnings(completed_ids, successful)
            field_earnings.append(
                FieldEarning(
                    fieldId=field.id,
                    fieldName=field.name,
                    totalEarnings=field_total,
                    totalBookings=booking_count,
                    averageEarning=field_total / booking_count if booking_count else 0,
                ).model_dump()
            )

        upcoming = [
            {**item, "hoursUntilPayout": hours_until(item["payoutAvailableAt"], now)}
            for item in summary["bookingsInCancellationWindow"]
        ]

        held = self.repo.held_bookings(self.db, field_ids)

        return {
            "totalEarnings": sum(p.amount or 0 for p in successful),
            "pendingPayouts": summary["pendingPayouts"],
            "completedPayouts": completed_amount,
            "upcomingPayouts": summary["upcomingPayouts"],
            "heldPayouts": sum(self._booking_amount(b) for b in held),
            "heldBookingsCount": len(held),
            **periods,
            "recentPayouts": recent_payouts,
            "upcomingEarnings": upcoming,
            "fieldEarnings": field_earnings,
            "hasStripeAccount": stripe_account is not None,
            "stripeAccountComplete": bool(stripe_account and stripe_account.fully_enabled),
        }

    # ---- Payout history ----

    def get_payout_history(
        self,
        user: User,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> dict:
        self._require_owner_or_admin(user, "view payout history")

        stripe_account = self.repo.stripe_account(self.db, user.id)
        if stripe_account is None:
            return {"payouts": [], **pagination(page, limit, 0)}

        query = self.repo.payouts_query(self.db, stripe_account.id, status, start_date, end_date)
        total = query.count()
        payouts = query.offset((page - 1) * limit).limit(limit).all()

        enhanced = []
        for payout in payouts:
            bookings = self._payout_bookings(payout)
            first = bookings[0] if bookings else None
            enhanced.append(
                {
                    "id": payout.id,
                    "stripePayoutId": payout.stripe_payout_id,
                    "amount": payout.amount,
                    "currency": payout.currency,
                    "status": payout.status,
                    "method": payout.method,
                    "description": payout.description,
                    "arrivalDate": payout.arrival_date,
                    "createdAt": payout.created_at,
                    "bookingCount": len(bookings),
                    "fieldName": first.field.name if first and first.field else None,
                    "customerName": customer_label(bookings),
                    "humanReadableBookingId": first.booking_id if first else None,
                    "bookings": [self._serialize_booking(b) for b in bookings],
                }
            )

        return {"payouts": enhanced, **pagination(page, limit, total)}

    # ---- Held payouts ----

    def get_held_payouts(self, user: User) -> dict:
        self._require_owner_or_admin(user, "view held payouts")

        fields = self.repo.owner_fields(self.db, user.id)
        if not fields:
            return {
                "totalHeldAmount": 0,
                "heldBookingsCount": 0,
                "heldBookings": [],
                "hasStripeAccount": False,
                "requiresAction": True,
                "message": "Connect your bank account to receive payments",
            }

        stripe_account = self.repo.stripe_account(self.db, user.id)
        has_account = stripe_account is not None
        fully_enabled = bool(stripe_account and stripe_account.fully_enabled)

        held = []
        for booking in self.repo.held_bookings(self.db, [f.id for f in fields]):
            customer = booking.user
            held.append(
                HeldBooking(
                    id=booking.id,
                    fieldId=booking.field_id,
                    fieldName=booking.field.name if booking.field else None,
                    customerName=(customer.name or customer.email) if customer else None,
                    date=booking.date,
                    startTime=booking.start_time,
                    endTime=booking.end_time,
                    totalPrice=booking.total_price,
                    fieldOwnerAmount=self._booking_amount(booking),
                    platformCommission=booking.platform_commission,
                    payoutHeldReason=booking.payout_held_reason,
                    status=booking.status,
                    createdAt=booking.created_at,
                ).model_dump()
            )

        by_reason = group_held_by_reason(held)
        no_account_count = sum(1 for h in held if h["payoutHeldReason"] == HELD_NO_STRIPE_ACCOUNT)
        requires_action, action_message = held_action(has_account, fully_enabled, no_account_count, len(held))

        return {
            "totalHeldAmount": sum(h["fieldOwnerAmount"] for h in held),
            "heldBookingsCount": len(held),
            "heldBookings": held,
            "heldByReason": by_reason,
            "hasStripeAccount": has_account,
            "stripeAccountFullyEnabled": fully_enabled,
            "requiresAction": requires_action,
            "actionMessage": action_message,
        }

    # ---- Export ----

    def export_payout_history(
        self,
        user: User,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> tuple[str, str]:
        """Returns (filename, csv content)"""
        self._require_owner_or_admin(user, "export payout history")

        stripe_account = self.repo.stripe_account(self.db, user.id)
        if stripe_account is None:
            raise HTTPException(status_code=404, detail="No Stripe account found")

        payouts = self.repo.payouts_query(
            self.db, stripe_account.id, start_date=start_date, end_date=end_date
        ).all()
        return export_filename(now or datetime.utcnow()), payouts_to_csv(payouts)

    # ---- Sync ----

    def sync_payouts_from_stripe(self, user: User) -> dict:
        """Upsert the connected account's processor payouts by their payout id"""
        stripe_account = self.repo.stripe_account(self.db, user.id)
        if stripe_account is None:
            raise HTTPException(
                status_code=404,
                detail="No Stripe account found. Please connect your Stripe account first.",
            )

        result = SyncResult()
        try:
            stripe_payouts = stripe_service.list_connected_payouts(
                stripe_account.stripe_account_id, limit=STRIPE_SYNC_LIMIT
            )
            result.total = len(stripe_payouts)

            for item in stripe_payouts:
                arrival = item.get("arrival_date")
                values = {
                    "amount": (item.get("amount") or 0) / 100,
                    "currency": item.get("currency") or DEFAULT_CURRENCY,
                    "status": item.get("status"),
                    "method": item.get("method") or "standard",
                    "description": item.get("description"),
                    "arrival_date": datetime.utcfromtimestamp(arrival) if arrival else None,
                    "failure_code": item.get("failure_code"),
                    "failure_message": item.get("failure_message"),
                }

                existing = self.repo.payout_by_stripe_id(self.db, item["id"])
                if existing is not None:
                    for key, value in values.items():
                        setattr(existing, key, value)
                    result.updated += 1
                else:
                    self.db.add(
                        Payout(
                            stripe_account_id=stripe_account.id,
                            stripe_payout_id=item["id"],
                            booking_ids=[],
                            **values,
                        )
                    )
                    result.synced += 1

            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"❌ Error syncing payouts from Stripe for user {user.id}: {e}")
            raise HTTPException(
                status_code=500, detail="Failed to sync payouts from Stripe. Please try again."
            ) from e

        logger.info(
            f"🔄 Synced payouts for user {user.id}: {result.synced} new, {result.updated} updated"
        )
        return result.model_dump()
