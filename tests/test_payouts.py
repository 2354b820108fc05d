from datetime import datetime, timedelta, timezone

import pytest
import stripe

from app.models import Notification
from app.models_payout import (
    BOOKING_COMPLETED,
    PAYOUT_COMPLETED,
    PAYOUT_FAILED,
    PAYOUT_PENDING,
    PAYOUT_PENDING_ACCOUNT,
    Booking,
    Payout,
    Transaction,
)
from app.services import stripe_service
from app.services.payout_service import last_months, period_start, serialize_transaction_row, shift_months


@pytest.fixture()
def stripe_ok(monkeypatch):
    """Processor stubs for a payout that goes straight through"""
    calls = {"transfers": [], "payouts": []}

    def transfer(**kwargs):
        calls["transfers"].append(kwargs)
        return {"success": True, "transfer": {"id": "tr_1"}, "reason": "ok", "should_defer": False}

    def payout(account_id, amount_minor, **kwargs):
        calls["payouts"].append({"account": account_id, "amount": amount_minor, **kwargs})
        return {"id": "po_1", "status": "paid", "method": "standard", "arrival_date": None}

    monkeypatch.setattr(
        stripe_service,
        "check_platform_balance",
        lambda amount_minor, currency="gbp": {"can_transfer": True, "available_amount": 100000, "message": "ok"},
    )
    monkeypatch.setattr(stripe_service, "safe_transfer_with_balance_gate", transfer)
    monkeypatch.setattr(stripe_service, "create_connected_account_payout", payout)
    return calls


@pytest.fixture()
def completed_booking(field_owner, make_user, make_field, make_booking, make_transaction):
    field = make_field(owner=field_owner)
    booking = make_booking(field, make_user(), status=BOOKING_COMPLETED, booking_id="2001")
    make_transaction(booking)
    return booking


def test_admin_trigger_runs_transfer_pipeline(
    client, db, admin, field_owner, auth_headers, make_stripe_account, completed_booking, stripe_ok
):
    make_stripe_account(field_owner)

    response = client.post(f"/payouts/trigger/{completed_booking.id}", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json()["data"]["amount"] == 80
    assert stripe_ok["transfers"][0]["amount_minor"] == 8000
    assert stripe_ok["transfers"][0]["destination"] == f"acct_{field_owner.id}"
    assert stripe_ok["payouts"][0]["amount"] == 8000

    db.expire_all()
    booking = db.get(Booking, completed_booking.id)
    assert booking.payout_status == PAYOUT_COMPLETED
    assert booking.field_owner_amount == 80
    assert booking.platform_commission == 20
    payout = db.get(Payout, booking.payout_id)
    assert payout.booking_ids == [booking.id]
    txn = db.query(Transaction).filter(Transaction.booking_id == booking.id).one()
    assert txn.stripe_transfer_id == "tr_1"
    assert txn.lifecycle_stage == "PAYOUT_COMPLETED"
    notification = db.query(Notification).filter(Notification.user_id == field_owner.id).one()
    assert notification.type == "PAYOUT_PROCESSED"


def test_trigger_without_payment_account_marks_pending_account(
    client, db, admin, field_owner, auth_headers, completed_booking, pushes
):
    response = client.post(f"/payouts/trigger/{completed_booking.id}", headers=auth_headers(admin))

    assert response.status_code == 200
    assert "data" not in response.json()
    db.expire_all()
    assert db.get(Booking, completed_booking.id).payout_status == PAYOUT_PENDING_ACCOUNT
    notification = db.query(Notification).filter(Notification.user_id == field_owner.id).one()
    assert notification.title == "Set up payment account"
    assert "£80.00" in notification.message
    assert pushes[0]["userId"] == field_owner.id


def test_insufficient_platform_balance_defers(
    client, db, admin, field_owner, auth_headers, make_stripe_account, completed_booking, monkeypatch
):
    make_stripe_account(field_owner)
    monkeypatch.setattr(
        stripe_service,
        "check_platform_balance",
        lambda amount_minor, currency="gbp": {"can_transfer": False, "available_amount": 500, "message": "low"},
    )

    client.post(f"/payouts/trigger/{completed_booking.id}", headers=auth_headers(admin))

    db.expire_all()
    booking = db.get(Booking, completed_booking.id)
    assert booking.payout_status == PAYOUT_PENDING
    assert booking.payout_held_reason == "Insufficient platform balance: 5.0 GBP available, need 80.0 GBP"


def test_transfer_failure_marks_failed_and_alerts_admins(
    client, db, admin, field_owner, auth_headers, make_stripe_account, completed_booking, stripe_ok, monkeypatch
):
    make_stripe_account(field_owner)
    monkeypatch.setattr(
        stripe_service,
        "safe_transfer_with_balance_gate",
        lambda **kwargs: {"success": False, "transfer": None, "reason": "account closed", "should_defer": False},
    )

    response = client.post(f"/payouts/trigger/{completed_booking.id}", headers=auth_headers(admin))

    assert response.status_code == 500
    assert response.json()["message"] == "Failed to trigger payout"
    db.expire_all()
    assert db.get(Booking, completed_booking.id).payout_status == PAYOUT_FAILED
    alert = db.query(Notification).filter(Notification.user_id == admin.id).one()
    assert alert.type == "PAYOUT_FAILED"
    assert "account closed" in alert.message


def test_trigger_is_admin_only(client, field_owner, auth_headers, completed_booking):
    response = client.post(f"/payouts/trigger/{completed_booking.id}", headers=auth_headers(field_owner))

    assert response.status_code == 403
    assert response.json()["message"] == "Only admins can manually trigger payouts"


def test_trigger_unknown_booking(client, admin, auth_headers):
    assert client.post("/payouts/trigger/999", headers=auth_headers(admin)).status_code == 404


def test_process_pending_retries_owner_bookings(
    client, db, field_owner, auth_headers, make_stripe_account, completed_booking, stripe_ok
):
    completed_booking.payout_status = PAYOUT_PENDING_ACCOUNT
    db.commit()
    make_stripe_account(field_owner)

    body = client.post("/payouts/process-pending", headers=auth_headers(field_owner)).json()

    assert body["message"] == "Processed 1 payouts successfully, 0 failed"
    assert body["data"]["results"][0]["payout"]["stripePayoutId"] == "po_1"


def test_process_pending_is_for_field_owners(client, admin, auth_headers):
    response = client.post("/payouts/process-pending", headers=auth_headers(admin))

    assert response.status_code == 403


def test_payout_history(client, db, field_owner, auth_headers, make_stripe_account, completed_booking):
    account = make_stripe_account(field_owner)
    db.add(
        Payout(stripe_account_id=account.id, amount=80, status="paid", booking_ids=[completed_booking.id])
    )
    db.commit()

    body = client.get("/payouts/history", headers=auth_headers(field_owner)).json()

    payout = body["data"]["payouts"][0]
    assert payout["bookings"][0]["bookingId"] == "2001"
    assert payout["bookings"][0]["amount"] == 80
    assert body["data"]["total"] == 1


def test_earnings_history_and_stats(
    client, field_owner, auth_headers, completed_booking, make_transaction
):
    make_transaction(completed_booking, status="REFUNDED", amount=10, created_at=datetime.utcnow())

    body = client.get("/payouts/earnings/history", headers=auth_headers(field_owner)).json()

    data = body["data"]
    assert data["totalEarnings"] == 100
    assert data["stats"] == {"completed": 1, "refunded": 1, "failed": 0}
    first = data["transactions"][0]
    assert first["status"] == "refunded"
    assert first["orderId"].startswith("#")
    assert first["fieldName"] == "Meadow Run"


def test_earnings_summary_periods(client, field_owner, auth_headers, completed_booking):
    body = client.get("/payouts/earnings/summary", params={"period": "month"}, headers=auth_headers(field_owner))

    data = body.json()["data"]
    assert data["totalEarnings"] == 100
    assert len(data["monthlyEarnings"]) == 6
    assert data["monthlyEarnings"][-1]["amount"] == 100
    assert data["lastPayout"] is None

    invalid = client.get("/payouts/earnings/summary", params={"period": "decade"}, headers=auth_headers(field_owner))
    assert invalid.status_code == 400


def test_transaction_details_access(client, field_owner, make_user, auth_headers, completed_booking, db):
    txn = db.query(Transaction).filter(Transaction.booking_id == completed_booking.id).one()

    mine = client.get(f"/payouts/transactions/{txn.id}", headers=auth_headers(field_owner))
    assert mine.status_code == 200
    assert mine.json()["data"]["bookingId"] == completed_booking.id

    other = client.get(f"/payouts/transactions/{txn.id}", headers=auth_headers(make_user()))
    assert other.status_code == 403
    assert other.json()["message"] == "Access denied"

    assert client.get("/payouts/transactions/999", headers=auth_headers(field_owner)).status_code == 404


def test_month_helpers():
    now = datetime(2024, 3, 31, 15)

    assert shift_months(now, -1) == datetime(2024, 2, 29, 15)
    assert period_start("week", now) == now - timedelta(days=7)
    assert period_start("all", now) is None
    assert [m.strftime("%b %Y") for m in last_months(now, 3)] == ["Jan 2024", "Feb 2024", "Mar 2024"]


def test_order_id_uses_last_six_characters():
    from types import SimpleNamespace

    row = serialize_transaction_row(
        SimpleNamespace(
            id=12345678,
            booking=None,
            stripe_payment_intent_id=None,
            created_at=None,
            amount=5,
            status="COMPLETED",
            type="PAYMENT",
            description=None,
        )
    )

    assert row["orderId"] == "#345678"
    assert row["paymentId"] == "12345678"
    assert row["status"] == "completed"


def stripe_object(values):
    return stripe.StripeObject.construct_from(values, "sk_test_fieldsy")


def utc_timestamp(moment):
    return int(moment.replace(tzinfo=timezone.utc).timestamp())


@pytest.fixture()
def stripe_sdk(monkeypatch):
    """Stub the SDK itself so responses come back as real StripeObjects"""
    state = {"balance_transaction": {"id": "txn_1", "status": "available", "available_on": 1700000000}}

    monkeypatch.setattr(
        stripe.Balance,
        "retrieve",
        lambda *args, **kwargs: stripe_object(
            {"available": [{"amount": 100000, "currency": "gbp"}], "pending": [{"amount": 0, "currency": "gbp"}]}
        ),
    )
    monkeypatch.setattr(
        stripe.Charge,
        "retrieve",
        lambda charge_id, **kwargs: stripe_object({"id": charge_id, "balance_transaction": "txn_1"}),
    )
    monkeypatch.setattr(
        stripe.BalanceTransaction,
        "retrieve",
        lambda txn_id, **kwargs: stripe_object(state["balance_transaction"]),
    )
    monkeypatch.setattr(stripe.Transfer, "create", lambda **kwargs: stripe_object({"id": "tr_sdk", "amount": 8000}))
    monkeypatch.setattr(
        stripe.Payout,
        "create",
        lambda **kwargs: stripe_object(
            {"id": "po_sdk", "status": "paid", "method": "standard", "arrival_date": 1700086400}
        ),
    )
    return state


def test_pipeline_with_sdk_responses(
    client, db, admin, field_owner, auth_headers, make_stripe_account, completed_booking, stripe_sdk
):
    make_stripe_account(field_owner)
    db.query(Transaction).update({Transaction.stripe_charge_id: "ch_1"})
    db.commit()

    response = client.post(f"/payouts/trigger/{completed_booking.id}", headers=auth_headers(admin))

    assert response.status_code == 200
    assert response.json()["data"]["stripePayoutId"] == "po_sdk"
    db.expire_all()
    booking = db.get(Booking, completed_booking.id)
    assert booking.payout_status == PAYOUT_COMPLETED
    payout = db.get(Payout, booking.payout_id)
    assert payout.status == "paid"
    assert payout.arrival_date == datetime(2023, 11, 15, 22, 13, 20)
    txn = db.query(Transaction).filter(Transaction.booking_id == booking.id).one()
    assert txn.stripe_transfer_id == "tr_sdk"
    assert txn.funds_available_at is not None
    assert txn.lifecycle_stage == "PAYOUT_COMPLETED"


def test_unsettled_funds_defer_payout(
    client, db, admin, field_owner, auth_headers, make_stripe_account, completed_booking, stripe_sdk
):
    make_stripe_account(field_owner)
    db.query(Transaction).update({Transaction.stripe_charge_id: "ch_1"})
    db.commit()
    stripe_sdk["balance_transaction"] = {
        "id": "txn_1",
        "status": "pending",
        "available_on": utc_timestamp(datetime(2099, 1, 2)),
    }

    client.post(f"/payouts/trigger/{completed_booking.id}", headers=auth_headers(admin))

    db.expire_all()
    booking = db.get(Booking, completed_booking.id)
    assert booking.payout_status == PAYOUT_PENDING
    assert booking.payout_held_reason == "Funds pending availability: 2099-01-02T00:00:00"
    txn = db.query(Transaction).filter(Transaction.booking_id == booking.id).one()
    assert txn.lifecycle_stage == "FUNDS_PENDING"
    assert db.query(Payout).count() == 0


def test_charge_funds_check_reads_sdk_objects(stripe_sdk):
    funds = stripe_service.check_charge_funds_available("ch_1")

    assert funds["is_available"] is True
    assert funds["available_on"] == datetime(2023, 11, 14, 22, 13, 20)


def test_process_pending_reports_deferred_bookings(
    client, db, field_owner, auth_headers, make_stripe_account, completed_booking, monkeypatch
):
    completed_booking.payout_status = PAYOUT_PENDING_ACCOUNT
    db.commit()
    make_stripe_account(field_owner)
    monkeypatch.setattr(
        stripe_service,
        "check_platform_balance",
        lambda amount_minor, currency="gbp": {"can_transfer": False, "available_amount": 0, "message": "low"},
    )

    body = client.post("/payouts/process-pending", headers=auth_headers(field_owner)).json()

    assert body["data"]["processed"] == 0
    assert body["data"]["deferred"] == 1
    assert body["message"] == "Processed 0 payouts successfully, 0 failed, 1 deferred"
    assert body["data"]["results"][0]["deferred"] is True
