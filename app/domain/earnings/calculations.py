"""
Earnings calculations - pure helpers used by the earnings service.

Nothing in here touches the database; amounts are major units (GBP).
"""

import csv
import io
import math
from datetime import datetime, timedelta
from typing import Iterable, Optional

from ...models_payout import (
    HELD_NO_STRIPE_ACCOUNT,
    HELD_WAITING_FOR_WEEKEND,
    HELD_WITHIN_CANCELLATION_WINDOW,
    SUCCESSFUL_PAYOUT_STATUSES,
)

CSV_HEADER = [
    "Date",
    "Payout ID",
    "Amount",
    "Currency",
    "Status",
    "Method",
    "Description",
    "Arrival Date",
    "Booking Count",
]

NOT_AVAILABLE = "N/A"


def is_successful_payout(status: Optional[str]) -> bool:
    return status in SUCCESSFUL_PAYOUT_STATUSES


def period_starts(now: datetime) -> dict[str, datetime]:
    """Start of today, the week (Sunday 00:00), the month and the year"""
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    # weekday(): Monday=0 ... Sunday=6
    week = today - timedelta(days=(today.weekday() + 1) % 7)
    return {
        "today": today,
        "week": week,
        "month": today.replace(day=1),
        "year": today.replace(month=1, day=1),
    }


def period_earnings(payouts: Iterable, now: datetime) -> dict[str, float]:
    """Sum successful payout amounts created since each period start"""
    starts = period_starts(now)
    totals = {"todayEarnings": 0.0, "weekEarnings": 0.0, "monthEarnings": 0.0, "yearEarnings": 0.0}
    for payout in payouts:
        created = payout.created_at
        if created is None:
            continue
        amount = payout.amount or 0
        if created >= starts["today"]:
            totals["todayEarnings"] += amount
        if created >= starts["week"]:
            totals["weekEarnings"] += amount
        if created >= starts["month"]:
            totals["monthEarnings"] += amount
        if created >= starts["year"]:
            totals["yearEarnings"] += amount
    return totals


def apportion_field_earnings(field_booking_ids: Iterable[int], payouts: Iterable) -> float:
    """
    A field's share of successful payouts.

    Each payout that covers some of the field's completed bookings
    contributes amount * (field bookings in payout / bookings in payout).
    Payouts without booking ids contribute nothing.
    """
    wanted = set(field_booking_ids)
    if not wanted:
        return 0.0

    total = 0.0
    for payout in payouts:
        ids = payout.booking_ids or []
        if not ids:
            continue
        matched = sum(1 for booking_id in ids if booking_id in wanted)
        if matched:
            total += (payout.amount or 0) * (matched / len(ids))
    return total


def hours_until(moment: datetime, now: datetime) -> int:
    return max(0, math.floor((moment - now).total_seconds() / 3600))


def customer_label(bookings: list) -> Optional[str]:
    """Who a payout was for: the customer, "N bookings", or None"""
    if not bookings:
        return None
    if len(bookings) > 1:
        return f"{len(bookings)} bookings"
    user = bookings[0].user
    if user is None:
        return None
    return user.name or user.email


def group_held_by_reason(held: list[dict]) -> dict:
    """Count and owner amount per held reason"""

    def bucket(reason: str) -> dict:
        items = [h for h in held if h["payoutHeldReason"] == reason]
        return {"count": len(items), "amount": sum(h["fieldOwnerAmount"] for h in items)}

    return {
        "noStripeAccount": bucket(HELD_NO_STRIPE_ACCOUNT),
        "withinCancellationWindow": bucket(HELD_WITHIN_CANCELLATION_WINDOW),
        "waitingForWeekend": bucket(HELD_WAITING_FOR_WEEKEND),
    }


def held_action(
    has_account: bool, fully_enabled: bool, no_account_count: int, held_count: int
) -> tuple[bool, str]:
    """(requiresAction, actionMessage) for the held payouts screen; first match wins"""
    if not has_account:
        return True, "Connect your bank account to receive your pending payments"
    if not fully_enabled:
        return True, "Complete your bank account setup to unlock your pending payments"
    if no_account_count > 0:
        return True, "Some payments require manual review"
    if held_count > 0:
        return False, "Payments are held per your payout schedule settings"
    return False, "No pending payments awaiting release"


def _iso(value: Optional[datetime]) -> str:
    return value.isoformat() if value else NOT_AVAILABLE


def payouts_to_csv(payouts: Iterable) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for payout in payouts:
        writer.writerow(
            [
                _iso(payout.created_at),
                payout.stripe_payout_id or NOT_AVAILABLE,
                payout.amount,
                payout.currency,
                payout.status,
                payout.method,
                payout.description or NOT_AVAILABLE,
                _iso(payout.arrival_date),
                len(payout.booking_ids or []),
            ]
        )
    return buffer.getvalue()


def export_filename(now: datetime) -> str:
    return f"payouts_{now.strftime('%Y-%m-%d')}.csv"
