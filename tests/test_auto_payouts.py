from datetime import datetime, timedelta
from itertools import count
from types import SimpleNamespace

import pytest
import stripe

from app.models import Notification
from app.models_payout import (
    BOOKING_CANCELLED,
    BOOKING_COMPLETED,
    PAYMENT_REFUNDED,
    PAYOUT_COMPLETED,
    PAYOUT_REFUNDED,
    RELEASE_AFTER_CANCELLATION_WINDOW,
    RELEASE_ON_WEEKEND,
    Booking,
    Payout,
    SystemSettings,
)
from app.services import stripe_service
from app.services.auto_payout_service import (
    calculate_stripe_fee,
    has_cancellation_window_passed,
    parse_start_time,
    should_release_payout,
)


def midnight(moment):
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


@pytest.mark.parametrize(
    "start_time, expected",
    [
        ("9:00AM", (9, 0)),
        ("02:30 PM", (14, 30)),
        ("12:00AM", (0, 0)),
        ("12:15PM", (12, 15)),
        ("14:30", (14, 30)),
        ("7PM", (19, 0)),
    ],
)
def test_parse_start_time(start_time, expected):
    assert parse_start_time(start_time) == expected


def test_cancellation_window():
    booking = SimpleNamespace(date=datetime(2024, 5, 20), start_time="10:00AM")

    assert has_cancellation_window_passed(booking, 24, now=datetime(2024, 5, 19, 10, 1)) is True
    assert has_cancellation_window_passed(booking, 24, now=datetime(2024, 5, 19, 9, 59)) is False


def test_should_release_payout_schedules():
    booking = SimpleNamespace(date=datetime(2024, 5, 20), start_time="10:00AM")
    window = SimpleNamespace(payout_release_schedule=RELEASE_AFTER_CANCELLATION_WINDOW, cancellation_window_hours=48)
    weekend = SimpleNamespace(payout_release_schedule=RELEASE_ON_WEEKEND, cancellation_window_hours=24)
    unknown = SimpleNamespace(payout_release_schedule="monthly", cancellation_window_hours=24)

    assert should_release_payout(booking, window, now=datetime(2024, 5, 18, 11)) is True
    assert should_release_payout(booking, window, now=datetime(2024, 5, 18, 9)) is False
    # 2024-05-17 is a Friday, 2024-05-16 a Thursday
    assert should_release_payout(booking, weekend, now=datetime(2024, 5, 17, 9)) is True
    assert should_release_payout(booking, weekend, now=datetime(2024, 5, 16, 9)) is False
    assert should_release_payout(booking, unknown, now=datetime(2024, 5, 19)) is False
    assert should_release_payout(booking, None, now=datetime(2024, 5, 19, 11)) is True


def test_stripe_fee():
    assert calculate_stripe_fee(10000) == 320


@pytest.fixture()
def stripe_ok(monkeypatch):
    ids = count(1)

    def payout(account_id, amount_minor, **kwargs):
        return {"id": f"po_auto_{next(ids)}", "status": "in_transit", "arrival_date": None}

    monkeypatch.setattr(
        stripe_service,
        "check_platform_balance",
        lambda amount_minor, currency="gbp": {"can_transfer": True, "available_amount": 100000, "message": "ok"},
    )
    monkeypatch.setattr(
        stripe_service,
        "safe_transfer_with_balance_gate",
        lambda **kwargs: {"success": True, "transfer": {"id": "tr_auto"}, "reason": "ok", "should_defer": False},
    )
    monkeypatch.setattr(stripe_service, "create_connected_account_payout", payout)


@pytest.fixture()
def owner_field(field_owner, make_field, make_stripe_account):
    make_stripe_account(field_owner)
    return make_field(owner=field_owner)


def test_trigger_releases_bookings_past_the_window(
    client, db, admin, auth_headers, owner_field, make_user, make_booking, stripe_ok
):
    customer = make_user()
    yesterday = make_booking(owner_field, customer, date=midnight(datetime.utcnow() - timedelta(days=1)))
    next_week = make_booking(owner_field, customer, date=midnight(datetime.utcnow() + timedelta(days=7)))

    body = client.post("/auto-payouts/trigger", headers=auth_headers(admin)).json()

    assert body["message"] == "Payout processing completed"
    assert body["data"]["processed"] == 1
    assert body["data"]["skipped"] == 1
    details = {d["bookingId"]: d for d in body["data"]["details"]}
    assert details[yesterday.id]["status"] == "processed"
    assert details[next_week.id]["reason"] == "Not meeting payout release criteria"

    db.expire_all()
    released = db.get(Booking, yesterday.id)
    assert released.payout_status == "PROCESSING"
    assert db.get(Payout, released.payout_id).description.startswith("Automatic payout for booking")


def test_trigger_is_admin_only(client, field_owner, auth_headers):
    response = client.post("/auto-payouts/trigger", headers=auth_headers(field_owner))

    assert response.status_code == 403
    assert response.json()["message"] == "Only admins can trigger manual payout processing"


def test_process_single_booking(client, admin, auth_headers, owner_field, make_user, make_booking, stripe_ok):
    booking = make_booking(owner_field, make_user(), date=midnight(datetime.utcnow() - timedelta(days=2)))

    body = client.post(f"/auto-payouts/process/{booking.id}", headers=auth_headers(admin)).json()

    assert body["success"] is True
    assert body["data"]["stripePayoutId"] == "po_auto_1"


def test_process_single_booking_not_eligible(client, admin, auth_headers, owner_field, make_user, make_booking):
    booking = make_booking(owner_field, make_user(), status=BOOKING_COMPLETED)

    body = client.post(f"/auto-payouts/process/{booking.id}", headers=auth_headers(admin)).json()

    assert body == {"success": False, "message": "Booking not eligible for payout or already processed"}
    assert client.post("/auto-payouts/process/999", headers=auth_headers(admin)).status_code == 404


def test_unknown_release_schedule_releases_nothing(
    client, db, admin, auth_headers, owner_field, make_user, make_booking, stripe_ok
):
    db.add(SystemSettings(default_commission_rate=20, payout_release_schedule="never", cancellation_window_hours=24))
    db.commit()
    make_booking(owner_field, make_user(), date=midnight(datetime.utcnow() - timedelta(days=2)))

    body = client.post("/auto-payouts/trigger", headers=auth_headers(admin)).json()

    assert body["data"]["processed"] == 0
    assert body["data"]["skipped"] == 1


def test_payout_summary(client, field_owner, auth_headers, owner_field, make_user, make_booking):
    customer = make_user()
    make_booking(owner_field, customer, payout_status=PAYOUT_COMPLETED, field_owner_amount=80.0)
    make_booking(owner_field, customer, date=midnight(datetime.utcnow() + timedelta(days=5)), total_price=50.0)

    data = client.get("/auto-payouts/summary", headers=auth_headers(field_owner)).json()["data"]

    assert data["completedPayouts"] == 80
    assert data["totalEarnings"] == 80
    assert data["upcomingPayouts"] == 40
    assert len(data["bookingsInCancellationWindow"]) == 1


def test_payout_summary_forbidden_for_dog_owners(client, make_user, auth_headers):
    assert client.get("/auto-payouts/summary", headers=auth_headers(make_user())).status_code == 403


def test_refund_reverses_released_payout(
    client, db, field_owner, owner_field, make_user, make_booking, make_transaction, auth_headers, monkeypatch
):
    customer = make_user()
    booking = make_booking(
        owner_field,
        customer,
        payment_intent_id="pi_123",
        payout_status=PAYOUT_COMPLETED,
        payout_id=1,
        field_owner_amount=80.0,
    )
    make_transaction(booking, stripe_transfer_id="tr_done")
    reversals = []
    monkeypatch.setattr(
        stripe_service,
        "reverse_transfer",
        lambda transfer_id, amount_minor, metadata=None: reversals.append((transfer_id, amount_minor, metadata)),
    )
    monkeypatch.setattr(
        stripe_service,
        "create_refund",
        lambda payment_intent_id, amount_minor=None, reason="requested_by_customer": {
            "id": "re_1",
            "amount": 10000,
            "status": "succeeded",
        },
    )

    response = client.post(
        f"/auto-payouts/refund/{booking.id}", json={"reason": "Rained off"}, headers=auth_headers(customer)
    )

    assert response.status_code == 200
    assert response.json()["data"] == {"id": "re_1", "amount": 10000, "status": "succeeded"}
    assert reversals[0][0] == "tr_done"
    assert reversals[0][1] == 8000 + 320
    assert reversals[0][2]["reason"] == "Rained off"

    db.expire_all()
    refunded = db.get(Booking, booking.id)
    assert refunded.status == BOOKING_CANCELLED
    assert refunded.payout_status == PAYOUT_REFUNDED
    assert refunded.payment_status == PAYMENT_REFUNDED
    assert refunded.cancellation_reason == "Rained off"
    types = {n.type for n in db.query(Notification).all()}
    assert types == {"PAYOUT_REVERSED", "REFUND_PROCESSED"}


def test_refund_by_someone_else_is_forbidden(client, owner_field, make_user, make_booking, auth_headers):
    booking = make_booking(owner_field, make_user(), payment_intent_id="pi_1")

    response = client.post(f"/auto-payouts/refund/{booking.id}", headers=auth_headers(make_user()))

    assert response.status_code == 403
    assert response.json()["message"] == "You are not authorized to refund this booking"


def test_refund_without_payment(client, owner_field, make_user, make_booking, auth_headers, admin):
    booking = make_booking(owner_field, make_user())

    response = client.post(f"/auto-payouts/refund/{booking.id}", headers=auth_headers(admin))

    assert response.status_code == 400
    assert response.json()["message"] == "Booking has no payment to refund"


def test_admin_payout_stats(client, db, admin, auth_headers, field_owner, make_stripe_account, make_field, make_user, make_booking):
    account = make_stripe_account(field_owner)
    db.add_all(
        [
            Payout(stripe_account_id=account.id, amount=50, status="paid", booking_ids=[]),
            Payout(stripe_account_id=account.id, amount=20, status="pending", booking_ids=[]),
            Payout(stripe_account_id=account.id, amount=5, status="failed", booking_ids=[]),
        ]
    )
    db.commit()
    make_booking(
        make_field(owner=field_owner),
        make_user(),
        status=BOOKING_COMPLETED,
        date=midnight(datetime.utcnow() - timedelta(days=3)),
    )

    data = client.get("/admin/payouts/stats", headers=auth_headers(admin)).json()["data"]

    assert data["payouts"] == {"total": 3, "pending": 1, "paid": 1, "failed": 1}
    assert data["amounts"] == {"total": 75, "pending": 20, "paid": 50}
    assert data["bookingsAwaitingPayout"] == 1


def test_admin_balance(client, admin, auth_headers, monkeypatch):
    monkeypatch.setattr(
        stripe_service,
        "get_platform_balance",
        lambda currency="gbp": {"available": 12.5, "pending": 3.0, "currency": "gbp"},
    )

    data = client.get("/admin/payouts/balance", headers=auth_headers(admin)).json()["data"]

    assert data == {"available": 12.5, "pending": 3.0, "currency": "GBP"}


def test_admin_process_runs_both_flows(
    client, admin, auth_headers, owner_field, make_user, make_booking, stripe_ok
):
    customer = make_user()
    make_booking(owner_field, customer, date=midnight(datetime.utcnow() - timedelta(days=1)))
    make_booking(owner_field, customer, status=BOOKING_COMPLETED)

    data = client.post("/admin/payouts/process", headers=auth_headers(admin)).json()["data"]

    assert data["automatic"]["processed"] == 1
    assert data["completedBookings"] == {"processed": 1, "skipped": 0, "failed": 0}


def test_admin_payout_routes_require_admin(client, field_owner, auth_headers):
    assert client.get("/admin/payouts/stats", headers=auth_headers(field_owner)).status_code == 403


def test_unreadable_start_time_is_never_released():
    tbc = SimpleNamespace(id=1, date=datetime(2024, 5, 20), start_time="TBC")
    late = SimpleNamespace(id=2, date=datetime(2024, 5, 20), start_time="25:00")

    assert has_cancellation_window_passed(tbc, 24, now=datetime(2024, 6, 1)) is False
    assert has_cancellation_window_passed(late, 24, now=datetime(2024, 6, 1)) is False


def test_trigger_skips_unreadable_start_time_and_continues(
    client, db, admin, auth_headers, owner_field, make_user, make_booking, stripe_ok
):
    customer = make_user()
    past = midnight(datetime.utcnow() - timedelta(days=2))
    unreadable = make_booking(owner_field, customer, date=past, start_time="TBC")
    valid = make_booking(owner_field, customer, date=past)

    body = client.post("/auto-payouts/trigger", headers=auth_headers(admin)).json()

    assert body["data"]["processed"] == 1
    assert body["data"]["skipped"] == 1
    details = {d["bookingId"]: d["status"] for d in body["data"]["details"]}
    assert details == {unreadable.id: "skipped", valid.id: "processed"}


def test_summary_leaves_out_unreadable_start_time(
    client, field_owner, auth_headers, owner_field, make_user, make_booking
):
    customer = make_user()
    make_booking(owner_field, customer, date=midnight(datetime.utcnow() + timedelta(days=5)), start_time="TBC")
    make_booking(owner_field, customer, date=midnight(datetime.utcnow() + timedelta(days=5)), total_price=50.0)

    data = client.get("/auto-payouts/summary", headers=auth_headers(field_owner)).json()["data"]

    assert data["upcomingPayouts"] == 40
    assert len(data["bookingsInCancellationWindow"]) == 1


def test_refund_with_sdk_responses(
    client, db, field_owner, owner_field, make_user, make_booking, make_transaction, auth_headers, monkeypatch
):
    customer = make_user()
    booking = make_booking(
        owner_field,
        customer,
        payment_intent_id="pi_sdk",
        payout_status=PAYOUT_COMPLETED,
        payout_id=1,
        field_owner_amount=80.0,
    )
    make_transaction(booking, stripe_transfer_id="tr_done")
    reversals = []

    def create_reversal(transfer_id, **kwargs):
        reversals.append((transfer_id, kwargs["amount"]))
        return stripe.StripeObject.construct_from({"id": "trr_1", "amount": kwargs["amount"]}, "sk_test_fieldsy")

    monkeypatch.setattr(stripe.Transfer, "create_reversal", create_reversal)
    monkeypatch.setattr(
        stripe.Refund,
        "create",
        lambda **kwargs: stripe.StripeObject.construct_from(
            {"id": "re_sdk", "amount": 10000, "status": "succeeded"}, "sk_test_fieldsy"
        ),
    )

    response = client.post(f"/auto-payouts/refund/{booking.id}", headers=auth_headers(customer))

    assert response.status_code == 200
    assert response.json()["data"] == {"id": "re_sdk", "amount": 10000, "status": "succeeded"}
    assert reversals == [("tr_done", 8320)]
