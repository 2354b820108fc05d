import asyncio
from datetime import datetime, timedelta

import pytest

from app.models import OtpVerification
from app.services import otp_service
from app.services.otp_service import OtpError, OtpResendTooSoon, OtpService


def test_create_replaces_unverified_codes(db):
    service = OtpService(db)

    service.create_otp("a@example.com", "SIGNUP")
    latest = service.create_otp("a@example.com", "SIGNUP")

    rows = db.query(OtpVerification).all()
    assert [r.otp for r in rows] == [latest]
    assert len(latest) == 6 and latest.isdigit()


def test_unknown_type_is_rejected(db):
    with pytest.raises(OtpError):
        OtpService(db).create_otp("a@example.com", "LOTTERY")


def test_verify_consumes_code(db):
    service = OtpService(db)
    code = service.create_otp("a@example.com", "RESET_PASSWORD")

    assert service.check_otp_validity("a@example.com", code, "RESET_PASSWORD") is True
    assert service.verify_otp("a@example.com", code, "SIGNUP") is False
    assert service.verify_otp("a@example.com", code, "RESET_PASSWORD") is True
    assert service.verify_otp("a@example.com", code, "RESET_PASSWORD") is False


def test_expired_code_does_not_verify(db):
    db.add(
        OtpVerification(
            email="a@example.com",
            otp="123456",
            type="SIGNUP",
            expires_at=datetime.utcnow() - timedelta(minutes=1),
        )
    )
    db.commit()
    service = OtpService(db)

    assert service.verify_otp("a@example.com", "123456", "SIGNUP") is False
    assert service.has_pending_verification("a@example.com", "SIGNUP") is False


def test_send_and_resend_cooldown(db, sent_emails):
    service = OtpService(db)

    asyncio.run(service.send_otp("a@example.com", "EMAIL_CHANGE", "Ann"))
    assert sent_emails[0]["kind"] == "otp"
    assert sent_emails[0]["args"][0] == "a@example.com"
    assert sent_emails[0]["args"][2] == "EMAIL_CHANGE"

    with pytest.raises(OtpResendTooSoon):
        asyncio.run(service.resend_otp("a@example.com", "EMAIL_CHANGE"))


def test_send_failure_raises_otp_error(db, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("smtp down")

    monkeypatch.setattr(otp_service, "send_otp_email", broken)

    with pytest.raises(OtpError):
        asyncio.run(OtpService(db).send_otp("a@example.com", "SIGNUP"))


def test_cleanup_removes_stale_codes(db):
    now = datetime.utcnow()
    db.add_all(
        [
            OtpVerification(email="a@example.com", otp="1", type="SIGNUP", expires_at=now - timedelta(minutes=5)),
            OtpVerification(
                email="b@example.com",
                otp="2",
                type="SIGNUP",
                expires_at=now + timedelta(minutes=5),
                verified=True,
                updated_at=now - timedelta(hours=25),
            ),
            OtpVerification(email="c@example.com", otp="3", type="SIGNUP", expires_at=now + timedelta(minutes=5)),
        ]
    )
    db.commit()

    assert OtpService(db).cleanup_expired_otps() == 2
    assert [r.email for r in db.query(OtpVerification).all()] == ["c@example.com"]
