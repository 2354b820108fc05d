from datetime import datetime
from types import SimpleNamespace

import pytest

from app.domain.earnings.calculations import (
    apportion_field_earnings,
    customer_label,
    export_filename,
    group_held_by_reason,
    held_action,
    hours_until,
    payouts_to_csv,
    period_earnings,
    period_starts,
)


def payout(amount, created_at=None, booking_ids=None, **kwargs):
    return SimpleNamespace(
        amount=amount,
        created_at=created_at,
        booking_ids=booking_ids,
        stripe_payout_id=kwargs.get("stripe_payout_id"),
        currency=kwargs.get("currency", "gbp"),
        status=kwargs.get("status", "paid"),
        method=kwargs.get("method", "standard"),
        description=kwargs.get("description"),
        arrival_date=kwargs.get("arrival_date"),
    )


def test_week_starts_on_sunday():
    # Wednesday 2024-05-15
    starts = period_starts(datetime(2024, 5, 15, 13, 30))

    assert starts["today"] == datetime(2024, 5, 15)
    assert starts["week"] == datetime(2024, 5, 12)
    assert starts["month"] == datetime(2024, 5, 1)
    assert starts["year"] == datetime(2024, 1, 1)


def test_sunday_is_its_own_week_start():
    assert period_starts(datetime(2024, 5, 12, 8))["week"] == datetime(2024, 5, 12)


def test_period_earnings_buckets_are_cumulative():
    now = datetime(2024, 5, 15, 12)
    payouts = [
        payout(10, datetime(2024, 5, 15, 9)),
        payout(20, datetime(2024, 5, 13)),
        payout(30, datetime(2024, 5, 2)),
        payout(40, datetime(2024, 2, 1)),
        payout(50, datetime(2023, 12, 31)),
        payout(60, None),
    ]

    totals = period_earnings(payouts, now)

    assert totals == {
        "todayEarnings": 10,
        "weekEarnings": 30,
        "monthEarnings": 60,
        "yearEarnings": 100,
    }


def test_apportion_field_earnings_splits_multi_booking_payouts():
    payouts = [
        payout(90, booking_ids=[1, 2, 3]),
        payout(50, booking_ids=[4]),
        payout(70, booking_ids=[]),
    ]

    assert apportion_field_earnings([1, 2], payouts) == pytest.approx(60)
    assert apportion_field_earnings([4], payouts) == 50
    assert apportion_field_earnings([], payouts) == 0


def test_hours_until_never_negative():
    now = datetime(2024, 5, 15, 12)

    assert hours_until(datetime(2024, 5, 16, 11, 59), now) == 23
    assert hours_until(datetime(2024, 5, 14), now) == 0


def test_customer_label():
    alice = SimpleNamespace(user=SimpleNamespace(name="Alice", email="alice@example.com"))
    nameless = SimpleNamespace(user=SimpleNamespace(name=None, email="bob@example.com"))

    assert customer_label([]) is None
    assert customer_label([alice]) == "Alice"
    assert customer_label([nameless]) == "bob@example.com"
    assert customer_label([alice, nameless]) == "2 bookings"


def test_group_held_by_reason():
    held = [
        {"payoutHeldReason": "NO_STRIPE_ACCOUNT", "fieldOwnerAmount": 40},
        {"payoutHeldReason": "NO_STRIPE_ACCOUNT", "fieldOwnerAmount": 10},
        {"payoutHeldReason": "WAITING_FOR_WEEKEND", "fieldOwnerAmount": 25},
    ]

    grouped = group_held_by_reason(held)

    assert grouped["noStripeAccount"] == {"count": 2, "amount": 50}
    assert grouped["withinCancellationWindow"] == {"count": 0, "amount": 0}
    assert grouped["waitingForWeekend"] == {"count": 1, "amount": 25}


def test_held_action_first_match_wins():
    assert held_action(False, False, 3, 3) == (True, "Connect your bank account to receive your pending payments")
    assert held_action(True, False, 0, 1)[1] == "Complete your bank account setup to unlock your pending payments"
    assert held_action(True, True, 1, 2) == (True, "Some payments require manual review")
    assert held_action(True, True, 0, 2) == (False, "Payments are held per your payout schedule settings")
    assert held_action(True, True, 0, 0) == (False, "No pending payments awaiting release")


def test_payouts_to_csv_fills_missing_values():
    rows = [
        payout(
            42.5,
            datetime(2024, 5, 1, 10),
            booking_ids=[1, 2],
            stripe_payout_id="po_123",
            description="Weekly payout",
            arrival_date=datetime(2024, 5, 3),
        ),
        payout(10, None, booking_ids=None),
    ]

    lines = payouts_to_csv(rows).splitlines()

    assert lines[0] == "Date,Payout ID,Amount,Currency,Status,Method,Description,Arrival Date,Booking Count"
    assert lines[1] == "2024-05-01T10:00:00,po_123,42.5,gbp,paid,standard,Weekly payout,2024-05-03T00:00:00,2"
    assert lines[2] == "N/A,N/A,10,gbp,paid,standard,N/A,N/A,0"


def test_export_filename():
    assert export_filename(datetime(2024, 5, 15, 23, 59)) == "payouts_2024-05-15.csv"
