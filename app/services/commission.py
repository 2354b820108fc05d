"""
Commission Service
Resolves the platform commission for a field owner and splits booking totals
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import DEFAULT_COMMISSION_RATE
from ..models import User
from ..models_payout import SystemSettings

logger = logging.getLogger(__name__)


def get_system_settings(db: Session, create: bool = False):
    """The single settings row; optionally created with defaults"""
    settings = db.query(SystemSettings).order_by(SystemSettings.id).first()
    if settings is None and create:
        settings = SystemSettings(default_commission_rate=DEFAULT_COMMISSION_RATE)
        db.add(settings)
        db.commit()
        db.refresh(settings)
        logger.info(f"⚙️ Created system settings with {DEFAULT_COMMISSION_RATE}% commission")
    return settings


def get_effective_commission_rate(db: Session, user_id: int) -> dict:
    """
    The field owner's custom rate when set, otherwise the platform default

    Returns:
        {"effective_rate", "is_custom_rate", "default_rate"}
    """
    try:
        user = db.query(User).filter(User.id == user_id).first()
        settings = get_system_settings(db)
        default_rate = (
            settings.default_commission_rate
            if settings and settings.default_commission_rate
            else DEFAULT_COMMISSION_RATE
        )

        if user is not None and user.commission_rate is not None:
            return {
                "effective_rate": user.commission_rate,
                "is_custom_rate": True,
                "default_rate": default_rate,
            }

        return {"effective_rate": default_rate, "is_custom_rate": False, "default_rate": default_rate}
    except SQLAlchemyError as e:
        logger.error(f"❌ Error getting commission rate for user {user_id}: {e}")
        return {
            "effective_rate": DEFAULT_COMMISSION_RATE,
            "is_custom_rate": False,
            "default_rate": DEFAULT_COMMISSION_RATE,
        }


def split_amount(total_amount: float, rate: float) -> tuple[float, float]:
    """(field_owner_amount, platform_fee) for a platform rate in percent"""
    platform_fee = (total_amount * rate) / 100
    return total_amount - platform_fee, platform_fee


def calculate_payout_amounts(db: Session, total_amount: float, field_owner_id: int) -> dict:
    """
    Split a booking total between the field owner and the platform.
    The commission rate is what the platform keeps: on £100 at 20% the owner gets £80.
    """
    rate_info = get_effective_commission_rate(db, field_owner_id)
    field_owner_amount, platform_fee = split_amount(total_amount, rate_info["effective_rate"])

    return {
        "fieldOwnerAmount": field_owner_amount,
        "platformFeeAmount": platform_fee,
        "platformCommission": platform_fee,
        "commissionRate": rate_info["effective_rate"],
        "isCustomCommission": rate_info["is_custom_rate"],
        "defaultCommissionRate": rate_info["default_rate"],
    }


def owner_amount_for_booking(db: Session, booking) -> float:
    """Stored owner share, or the commission split when the booking predates it"""
    if booking.field_owner_amount is not None:
        return booking.field_owner_amount
    owner_id = booking.field.owner_id if booking.field else None
    if owner_id is None:
        return split_amount(booking.total_price or 0, DEFAULT_COMMISSION_RATE)[0]
    return calculate_payout_amounts(db, booking.total_price or 0, owner_id)["fieldOwnerAmount"]
