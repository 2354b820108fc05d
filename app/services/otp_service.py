"""
OTP Service
One-time email codes for signup, password reset, social login and email change
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..email_service import send_otp_email
from ..models import OTP_TYPES, OtpVerification
from ..security_utils import generate_otp

logger = logging.getLogger(__name__)

OTP_LENGTH = 6
OTP_EXPIRY_MINUTES = 10
RESEND_COOLDOWN_SECONDS = 60
VERIFIED_RETENTION_HOURS = 24


class OtpError(Exception):
    """Raised when a code cannot be issued or delivered"""


class OtpResendTooSoon(OtpError):
    """A fresh code was issued less than a minute ago"""


class OtpService:
    def __init__(self, db: Session):
        self.db = db

    def create_otp(self, email: str, otp_type: str) -> str:
        """Replace any unverified code for (email, type) with a new one"""
        if otp_type not in OTP_TYPES:
            raise OtpError(f"Unknown OTP type: {otp_type}")

        self.db.query(OtpVerification).filter(
            OtpVerification.email == email,
            OtpVerification.type == otp_type,
            OtpVerification.verified.is_(False),
        ).delete(synchronize_session=False)

        now = datetime.utcnow()
        otp = generate_otp(OTP_LENGTH)
        self.db.add(
            OtpVerification(
                email=email,
                otp=otp,
                type=otp_type,
                expires_at=now + timedelta(minutes=OTP_EXPIRY_MINUTES),
                created_at=now,
                updated_at=now,
            )
        )
        self.db.commit()
        return otp

    def _active_query(self, email: str, otp_type: str):
        return self.db.query(OtpVerification).filter(
            OtpVerification.email == email,
            OtpVerification.type == otp_type,
            OtpVerification.verified.is_(False),
            OtpVerification.expires_at > datetime.utcnow(),
        )

    def check_otp_validity(self, email: str, otp: str, otp_type: str) -> bool:
        """Check a code without consuming it"""
        return self._active_query(email, otp_type).filter(OtpVerification.otp == otp).first() is not None

    def verify_otp(self, email: str, otp: str, otp_type: str) -> bool:
        """Consume a matching, unexpired code"""
        record = self._active_query(email, otp_type).filter(OtpVerification.otp == otp).first()
        if not record:
            logger.warning(f"⚠️ Invalid or expired {otp_type} code for {email}")
            return False

        record.verified = True
        record.updated_at = datetime.utcnow()
        self.db.commit()
        logger.info(f"✅ {otp_type} code verified for {email}")
        return True

    async def send_otp(self, email: str, otp_type: str, name: Optional[str] = None) -> None:
        otp = self.create_otp(email, otp_type)
        try:
            await send_otp_email(email, otp, otp_type, name)
        except Exception as e:
            logger.error(f"❌ Error sending {otp_type} code to {email}: {e}")
            raise OtpError("Failed to send OTP") from e
        logger.info(f"📧 {otp_type} code sent to {email}")

    async def resend_otp(self, email: str, otp_type: str, name: Optional[str] = None) -> None:
        cutoff = datetime.utcnow() - timedelta(seconds=RESEND_COOLDOWN_SECONDS)
        recent = (
            self.db.query(OtpVerification)
            .filter(
                OtpVerification.email == email,
                OtpVerification.type == otp_type,
                OtpVerification.verified.is_(False),
                OtpVerification.created_at > cutoff,
            )
            .first()
        )
        if recent:
            raise OtpResendTooSoon("Please wait a minute before requesting a new OTP")

        await self.send_otp(email, otp_type, name)

    def has_pending_verification(self, email: str, otp_type: str) -> bool:
        return self._active_query(email, otp_type).first() is not None

    def cleanup_expired_otps(self) -> int:
        """Delete expired codes and verified codes older than a day"""
        now = datetime.utcnow()
        deleted = (
            self.db.query(OtpVerification)
            .filter(
                or_(
                    OtpVerification.expires_at < now,
                    and_(
                        OtpVerification.verified.is_(True),
                        OtpVerification.updated_at < now - timedelta(hours=VERIFIED_RETENTION_HOURS),
                    ),
                )
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        if deleted:
            logger.info(f"🧹 Removed {deleted} stale OTP record(s)")
        return deleted
