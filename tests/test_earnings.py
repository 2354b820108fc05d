from datetime import datetime, timedelta

import pytest
import stripe

from app.models_payout import (
    BOOKING_COMPLETED,
    HELD_NO_STRIPE_ACCOUNT,
    HELD_WITHIN_CANCELLATION_WINDOW,
    PAYOUT_COMPLETED,
    PAYOUT_HELD,
    Payout,
)
from app.services import stripe_service


@pytest.fixture()
def owner_setup(db, field_owner, make_user, make_field, make_stripe_account, make_booking):
    customer = make_user(name="Carl Customer")
    field = make_field(owner=field_owner)
    account = make_stripe_account(field_owner)
    now = datetime.utcnow()

    completed = make_booking(
        field,
        customer,
        status=BOOKING_COMPLETED,
        payout_status=PAYOUT_COMPLETED,
        field_owner_amount=80.0,
        booking_id="1042",
    )
    in_three_days = (now + timedelta(days=3)).replace(hour=0, minute=0, second=0, microsecond=0)
    upcoming = make_booking(field, customer, date=in_three_days, start_time="10:00AM")
    held = make_booking(
        field,
        customer,
        payout_status=PAYOUT_HELD,
        payout_held_reason=HELD_NO_STRIPE_ACCOUNT,
        field_owner_amount=40.0,
    )

    payout = Payout(
        stripe_account_id=account.id,
        stripe_payout_id="po_first",
        amount=80.0,
        currency="gbp",
        status="paid",
        booking_ids=[completed.id],
        created_at=now,
    )
    db.add(payout)
    db.commit()
    return {"field": field, "account": account, "completed": completed, "upcoming": upcoming, "held": held}


def test_dashboard_for_owner_without_fields(client, field_owner, auth_headers):
    body = client.get("/earnings/dashboard", headers=auth_headers(field_owner)).json()

    assert body["data"]["totalEarnings"] == 0
    assert body["data"]["fieldEarnings"] == []
    assert body["data"]["hasStripeAccount"] is False


def test_dashboard_is_for_field_owners(client, make_user, auth_headers):
    response = client.get("/earnings/dashboard", headers=auth_headers(make_user()))

    assert response.status_code == 403
    assert response.json()["message"] == "Only field owners can view earnings dashboard"


def test_dashboard_totals(client, field_owner, auth_headers, owner_setup):
    data = client.get("/earnings/dashboard", headers=auth_headers(field_owner)).json()["data"]

    assert data["totalEarnings"] == 80
    assert data["todayEarnings"] == 80
    assert data["completedPayouts"] == 80
    assert data["upcomingPayouts"] == 80
    assert data["heldPayouts"] == 40
    assert data["heldBookingsCount"] == 1
    assert data["hasStripeAccount"] is True
    assert data["stripeAccountComplete"] is True

    recent = data["recentPayouts"][0]
    assert recent["bookings"][0]["bookingId"] == "1042"
    assert recent["bookings"][0]["customerName"] == "Carl Customer"
    assert recent["bookings"][0]["time"] == "9:00AM - 10:00AM"

    field_earning = data["fieldEarnings"][0]
    assert field_earning["totalEarnings"] == 80
    assert field_earning["totalBookings"] == 3

    upcoming = data["upcomingEarnings"][0]
    assert upcoming["bookingId"] == owner_setup["upcoming"].id
    assert upcoming["hoursUntilPayout"] > 0


def test_payout_history_with_booking_details(client, field_owner, auth_headers, owner_setup):
    body = client.get("/earnings/payouts", headers=auth_headers(field_owner)).json()

    payout = body["data"]["payouts"][0]
    assert payout["stripePayoutId"] == "po_first"
    assert payout["bookingCount"] == 1
    assert payout["customerName"] == "Carl Customer"
    assert payout["humanReadableBookingId"] == "1042"
    assert body["data"]["total"] == 1


def test_payout_history_status_filter(client, field_owner, auth_headers, owner_setup):
    body = client.get("/earnings/payouts", params={"status": "failed"}, headers=auth_headers(field_owner)).json()

    assert body["data"]["payouts"] == []


def test_held_payouts(client, field_owner, auth_headers, owner_setup, make_booking, make_user):
    make_booking(
        owner_setup["field"],
        make_user(),
        payout_status=PAYOUT_HELD,
        payout_held_reason=HELD_WITHIN_CANCELLATION_WINDOW,
        field_owner_amount=25.0,
    )

    data = client.get("/earnings/held-payouts", headers=auth_headers(field_owner)).json()["data"]

    assert data["totalHeldAmount"] == 65
    assert data["heldBookingsCount"] == 2
    assert data["heldByReason"]["noStripeAccount"] == {"count": 1, "amount": 40}
    assert data["heldByReason"]["withinCancellationWindow"] == {"count": 1, "amount": 25}
    assert data["requiresAction"] is True
    assert data["actionMessage"] == "Some payments require manual review"


def test_held_payouts_without_fields(client, field_owner, auth_headers):
    data = client.get("/earnings/held-payouts", headers=auth_headers(field_owner)).json()["data"]

    assert data["heldBookings"] == []
    assert data["requiresAction"] is True
    assert data["message"] == "Connect your bank account to receive payments"


def test_export_csv(client, field_owner, auth_headers, owner_setup):
    response = client.get("/earnings/export", headers=auth_headers(field_owner))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=\"payouts_" in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0].startswith("Date,Payout ID,Amount")
    assert ",po_first,80.0,gbp,paid," in lines[1]


def test_export_requires_stripe_account(client, field_owner, auth_headers):
    response = client.get("/earnings/export", headers=auth_headers(field_owner))

    assert response.status_code == 404
    assert response.json()["message"] == "No Stripe account found"


def test_sync_payouts_upserts_by_payout_id(client, db, field_owner, auth_headers, owner_setup, monkeypatch):
    arrival = int(datetime(2024, 6, 1).timestamp())
    monkeypatch.setattr(
        stripe_service,
        "list_connected_payouts",
        lambda account_id, limit=100: [
            {"id": "po_first", "amount": 8000, "currency": "gbp", "status": "paid", "arrival_date": arrival},
            {"id": "po_new", "amount": 1250, "currency": "gbp", "status": "in_transit", "method": "instant"},
        ],
    )

    body = client.post("/earnings/sync-payouts", headers=auth_headers(field_owner)).json()

    assert body["message"] == "Successfully synced payouts from Stripe"
    assert body["data"] == {"total": 2, "synced": 1, "updated": 1, "skipped": 0}
    db.expire_all()
    created = db.query(Payout).filter(Payout.stripe_payout_id == "po_new").one()
    assert created.amount == 12.5
    assert created.method == "instant"
    existing = db.query(Payout).filter(Payout.stripe_payout_id == "po_first").one()
    assert existing.booking_ids == [owner_setup["completed"].id]


def test_sync_payouts_failure(client, field_owner, auth_headers, owner_setup, monkeypatch):
    def boom(account_id, limit=100):
        raise RuntimeError("stripe unavailable")

    monkeypatch.setattr(stripe_service, "list_connected_payouts", boom)

    response = client.post("/earnings/sync-payouts", headers=auth_headers(field_owner))

    assert response.status_code == 500
    assert response.json()["message"] == "Failed to sync payouts from Stripe. Please try again."


def test_sync_requires_stripe_account(client, field_owner, auth_headers):
    response = client.post("/earnings/sync-payouts", headers=auth_headers(field_owner))

    assert response.status_code == 404


def test_sync_payouts_from_sdk_list(client, db, field_owner, auth_headers, owner_setup, monkeypatch):
    listing = stripe.StripeObject.construct_from(
        {
            "object": "list",
            "data": [
                {"id": "po_first", "amount": 8000, "currency": "gbp", "status": "paid"},
                {"id": "po_sdk", "amount": 2550, "currency": "gbp", "status": "pending", "method": "standard"},
            ],
        },
        "sk_test_fieldsy",
    )
    monkeypatch.setattr(stripe.Payout, "list", lambda **kwargs: listing)

    body = client.post("/earnings/sync-payouts", headers=auth_headers(field_owner)).json()

    assert body["data"] == {"total": 2, "synced": 1, "updated": 1, "skipped": 0}
    db.expire_all()
    assert db.query(Payout).filter(Payout.stripe_payout_id == "po_sdk").one().amount == 25.5
