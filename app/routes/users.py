"""
User Routes - profiles, dashboard stats, password and email changes
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin
from ..database import get_db
from ..models import ADMIN, DOG_OWNER, FIELD_OWNER, Favorite, Field, FieldReview, User
from ..models_payout import (
    BOOKING_COMPLETED,
    BOOKING_CONFIRMED,
    BOOKING_PENDING,
    PAYMENT_PAID,
    Booking,
)
from ..rate_limiter import create_rate_limiter
from ..schemas import UserResponse, envelope, pagination
from ..security_utils import hash_password_bcrypt, verify_password_bcrypt
from ..services.commission import owner_amount_for_booking
from ..services.otp_service import OtpError, OtpResendTooSoon, OtpService
from ..shared.validators import validate_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

email_change_rate_limit = create_rate_limiter(limit=5, window_seconds=900, key_prefix="email-change")

EMAIL_CHANGE = "EMAIL_CHANGE"

# Profile fields a user may edit
UPDATABLE_FIELDS = {
    "name": "name",
    "phone": "phone",
    "image": "image",
    "googleImage": "google_image",
    "bio": "bio",
    "address": "address",
}


class ChangePasswordRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None


class EmailChangeRequest(BaseModel):
    newEmail: Optional[str] = None


class VerifyEmailChangeRequest(BaseModel):
    newEmail: Optional[str] = None
    otp: Optional[str] = None


def _user_json(user: User) -> dict:
    return UserResponse.from_user(user).model_dump(mode="json")


def _ensure_self_or_admin(current_user: User, user_id: int, detail: str) -> None:
    if current_user.id != user_id and current_user.role != ADMIN:
        raise HTTPException(status_code=403, detail=detail)


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _email_taken(db: Session, email: str, role: str) -> bool:
    return db.query(User).filter(User.email == email, User.role == role).first() is not None


def dog_owner_stats(db: Session, user: User) -> dict:
    bookings = db.query(Booking).filter(Booking.user_id == user.id)
    today = datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    total_spent = (
        db.query(func.coalesce(func.sum(Booking.total_price), 0))
        .filter(Booking.user_id == user.id, Booking.payment_status == PAYMENT_PAID)
        .scalar()
    )
    return {
        "totalBookings": bookings.count(),
        "upcomingBookings": bookings.filter(
            Booking.status.in_([BOOKING_PENDING, BOOKING_CONFIRMED]), Booking.date >= today
        ).count(),
        "savedFields": db.query(Favorite).filter(Favorite.user_id == user.id).count(),
        "totalSpent": float(total_spent or 0),
    }


def field_owner_stats(db: Session, user: User) -> dict:
    fields = db.query(Field).filter(Field.owner_id == user.id).all()
    field_ids = [f.id for f in fields]
    if not field_ids:
        return {"totalFields": 0, "activeFields": 0, "totalBookings": 0, "totalRevenue": 0, "averageRating": 0}

    earning_bookings = (
        db.query(Booking)
        .filter(
            Booking.field_id.in_(field_ids),
            Booking.status.in_([BOOKING_CONFIRMED, BOOKING_COMPLETED]),
            Booking.payment_status == PAYMENT_PAID,
        )
        .all()
    )
    average_rating = (
        db.query(func.avg(FieldReview.rating)).filter(FieldReview.field_id.in_(field_ids)).scalar()
    )
    return {
        "totalFields": len(fields),
        "activeFields": sum(1 for f in fields if f.is_active),
        "totalBookings": db.query(Booking).filter(Booking.field_id.in_(field_ids)).count(),
        "totalRevenue": sum(owner_amount_for_booking(db, b) for b in earning_bookings),
        "averageRating": round(float(average_rating or 0), 2),
    }


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(User)
    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return envelope([_user_json(u) for u in users], pagination=pagination(page, limit, total))


@router.get("/me/stats")
async def get_user_stats(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Dashboard numbers shaped by the caller's role"""
    stats = {"userId": current_user.id, "role": current_user.role}
    if current_user.role == DOG_OWNER:
        stats.update(dog_owner_stats(db, current_user))
    elif current_user.role == FIELD_OWNER:
        stats.update(field_owner_stats(db, current_user))
    return envelope(stats)


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not data.currentPassword or not data.newPassword:
        raise HTTPException(status_code=400, detail="Current password and new password are required")
    if not current_user.password:
        raise HTTPException(status_code=404, detail="User not found")
    if not verify_password_bcrypt(data.currentPassword, current_user.password):
        raise HTTPException(status_code=401, detail="Current password is incorrect")

    current_user.password = hash_password_bcrypt(data.newPassword)
    db.commit()
    logger.info(f"🔑 Password changed for user {current_user.id}")
    return {"success": True, "message": "Password changed successfully"}


@router.post("/request-email-change")
async def request_email_change(
    data: EmailChangeRequest,
    _: None = Depends(email_change_rate_limit),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Send a verification code to the new address"""
    if not data.newEmail:
        raise HTTPException(status_code=400, detail="New email address is required")
    try:
        new_email = validate_email(data.newEmail)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if new_email == current_user.email.lower():
        raise HTTPException(status_code=400, detail="New email must be different from your current email")
    if _email_taken(db, new_email, current_user.role):
        raise HTTPException(status_code=409, detail="This email is already registered")

    try:
        await OtpService(db).send_otp(new_email, EMAIL_CHANGE, current_user.name)
    except OtpError as e:
        raise HTTPException(status_code=500, detail="Failed to send verification code") from e

    return {"success": True, "message": "Verification code sent to your new email address"}


@router.post("/resend-email-change-otp")
async def resend_email_change_otp(
    data: EmailChangeRequest,
    _: None = Depends(email_change_rate_limit),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not data.newEmail:
        raise HTTPException(status_code=400, detail="New email address is required")
    try:
        new_email = validate_email(data.newEmail)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    try:
        await OtpService(db).resend_otp(new_email, EMAIL_CHANGE, current_user.name)
    except OtpResendTooSoon as e:
        raise HTTPException(status_code=429, detail=str(e)) from e
    except OtpError as e:
        raise HTTPException(status_code=500, detail="Failed to send verification code") from e

    return {"success": True, "message": "Verification code resent to your new email address"}


@router.post("/verify-email-change")
async def verify_email_change(
    data: VerifyEmailChangeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not data.newEmail or not data.otp:
        raise HTTPException(status_code=400, detail="New email and verification code are required")

    new_email = data.newEmail.strip().lower()
    # Re-checked here since the address may have been taken since the code was sent
    if _email_taken(db, new_email, current_user.role):
        raise HTTPException(status_code=409, detail="This email is already registered")

    if not OtpService(db).verify_otp(new_email, data.otp, EMAIL_CHANGE):
        raise HTTPException(status_code=400, detail="Invalid or expired verification code")

    previous = current_user.email
    current_user.email = new_email
    db.commit()
    db.refresh(current_user)
    logger.info(f"📧 User {current_user.id} changed email from {previous} to {new_email}")
    return envelope(_user_json(current_user), "Email updated successfully")


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    user = _get_user_or_404(db, user_id)
    _ensure_self_or_admin(current_user, user_id, "You can only view your own profile")
    return envelope(_user_json(user))


@router.patch("/{user_id}")
async def update_user(
    user_id: int,
    data: dict,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_self_or_admin(current_user, user_id, "You can only update your own profile")
    user = _get_user_or_404(db, user_id)

    updates = {UPDATABLE_FIELDS[k]: v for k, v in data.items() if k in UPDATABLE_FIELDS}
    if not updates:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    for column, value in updates.items():
        setattr(user, column, value)
    db.commit()
    db.refresh(user)
    return envelope(_user_json(user), "Profile updated successfully")


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _ensure_self_or_admin(current_user, user_id, "You can only delete your own account")
    user = _get_user_or_404(db, user_id)

    db.delete(user)
    db.commit()
    logger.info(f"🗑️ User {user_id} deleted by {current_user.id}")
    return Response(status_code=204)
