"""Shared pytest fixtures for API tests."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.database import Base, SessionLocal, engine  # noqa: E402
from app.domain.claims import service as claim_service_module  # noqa: E402
from app.main import app  # noqa: E402
from app.models import ADMIN, DOG_OWNER, FIELD_OWNER, Field, User  # noqa: E402
from app.models_payout import (  # noqa: E402
    BOOKING_CONFIRMED,
    PAYMENT_PAID,
    Booking,
    StripeAccount,
    Transaction,
)
from app.routes import commission as commission_routes  # noqa: E402
from app.security_utils import create_jwt_token, hash_password_bcrypt  # noqa: E402
from app.services import notification_service, otp_service  # noqa: E402


@pytest.fixture()
def db():
    """Fresh schema per test on the shared in-memory connection"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db):
    return TestClient(app)


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Record outgoing mail instead of calling the email provider"""
    sent = []

    def recorder(kind):
        async def _send(*args, **kwargs):
            sent.append({"kind": kind, "args": args, **kwargs})
            return {"id": f"email_{len(sent)}"}

        return _send

    monkeypatch.setattr(claim_service_module, "send_field_claim_email", recorder("claim"))
    monkeypatch.setattr(claim_service_module, "send_field_claim_status_email", recorder("claim_status"))
    monkeypatch.setattr(otp_service, "send_otp_email", recorder("otp"))
    monkeypatch.setattr(commission_routes, "send_commission_change_email", recorder("commission"))
    return sent


@pytest.fixture(autouse=True)
def pushes(monkeypatch):
    sent = []

    def fake_push(db, user_id, title, body, data=None):
        sent.append({"userId": user_id, "title": title, "body": body, "data": data})
        return {"success_count": 1, "failure_count": 0, "invalid_tokens": []}

    monkeypatch.setattr(notification_service, "send_push_to_user", fake_push)
    return sent


@pytest.fixture()
def make_user(db):
    counter = {"n": 0}

    def _make(role=DOG_OWNER, email=None, password=None, **kwargs):
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            role=role,
            name=kwargs.pop("name", f"User {counter['n']}"),
            password=hash_password_bcrypt(password) if password else None,
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_jwt_token({'userId': user.id})}"}

    return _headers


@pytest.fixture()
def make_field(db):
    def _make(owner=None, **kwargs):
        field = Field(
            owner_id=owner.id if owner else None,
            name=kwargs.pop("name", "Meadow Run"),
            address=kwargs.pop("address", "1 Green Lane"),
            city=kwargs.pop("city", "Leeds"),
            **kwargs,
        )
        db.add(field)
        db.commit()
        db.refresh(field)
        return field

    return _make


@pytest.fixture()
def make_booking(db):
    def _make(field, customer, **kwargs):
        booking = Booking(
            field_id=field.id,
            user_id=customer.id,
            date=kwargs.pop("date", datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)),
            start_time=kwargs.pop("start_time", "9:00AM"),
            end_time=kwargs.pop("end_time", "10:00AM"),
            total_price=kwargs.pop("total_price", 100.0),
            status=kwargs.pop("status", BOOKING_CONFIRMED),
            payment_status=kwargs.pop("payment_status", PAYMENT_PAID),
            **kwargs,
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)
        return booking

    return _make


@pytest.fixture()
def make_stripe_account(db):
    def _make(user, enabled=True, account_id=None):
        account = StripeAccount(
            user_id=user.id,
            stripe_account_id=account_id or f"acct_{user.id}",
            charges_enabled=enabled,
            payouts_enabled=enabled,
            details_submitted=enabled,
        )
        db.add(account)
        db.commit()
        db.refresh(account)
        return account

    return _make


@pytest.fixture()
def make_transaction(db):
    def _make(booking, **kwargs):
        txn = Transaction(
            booking_id=booking.id,
            user_id=kwargs.pop("user_id", booking.user_id),
            amount=kwargs.pop("amount", booking.total_price),
            type=kwargs.pop("type", "PAYMENT"),
            status=kwargs.pop("status", "COMPLETED"),
            created_at=kwargs.pop("created_at", datetime.utcnow() - timedelta(minutes=5)),
            **kwargs,
        )
        db.add(txn)
        db.commit()
        db.refresh(txn)
        return txn

    return _make


@pytest.fixture()
def field_owner(make_user):
    return make_user(role=FIELD_OWNER, name="Olivia Owner")


@pytest.fixture()
def admin(make_user):
    return make_user(role=ADMIN, name="Ada Admin")
