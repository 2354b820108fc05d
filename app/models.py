from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# User roles
DOG_OWNER = "DOG_OWNER"
FIELD_OWNER = "FIELD_OWNER"
ADMIN = "ADMIN"
USER_ROLES = (DOG_OWNER, FIELD_OWNER, ADMIN)

# Claim statuses
CLAIM_PENDING = "PENDING"
CLAIM_APPROVED = "APPROVED"
CLAIM_REJECTED = "REJECTED"

# OTP purposes
OTP_TYPES = ("SIGNUP", "RESET_PASSWORD", "EMAIL_VERIFICATION", "SOCIAL_LOGIN", "EMAIL_CHANGE")


class User(Base):
    __tablename__ = "users"
    # Same email may hold one account per role
    __table_args__ = (UniqueConstraint("email", "role", name="uq_users_email_role"),)

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), index=True, nullable=False)
    role = Column(String(20), default=DOG_OWNER, nullable=False)
    name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    image = Column(String(500), nullable=True)
    google_image = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)
    address = Column(String(500), nullable=True)
    password = Column(String(255), nullable=True)  # bcrypt hash, null for social-only accounts
    provider = Column(String(50), default="general", nullable=True)  # general, google, apple
    email_verified = Column(DateTime, nullable=True)
    has_field = Column(Boolean, default=False, nullable=False)
    commission_rate = Column(Integer, nullable=True)  # null = use platform default
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owned_fields = relationship("Field", back_populates="owner")
    favorites = relationship("Favorite", back_populates="user", cascade="all, delete-orphan")
    device_tokens = relationship("DeviceToken", back_populates="user", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")


class Field(Base):
    __tablename__ = "fields"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    images = Column(JSON, default=list, nullable=True)
    is_claimed = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="owned_fields")
    claims = relationship("FieldClaim", back_populates="field")
    reviews = relationship("FieldReview", back_populates="field", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="field")

    def full_address(self) -> str:
        """Address line used in claim emails"""
        if not self.address:
            return "Address not specified"
        parts = [self.address]
        if self.city:
            parts.append(self.city)
        if self.state:
            parts.append(self.state)
        return ", ".join(parts)


class FieldReview(Base):
    __tablename__ = "field_reviews"

    id = Column(Integer, primary_key=True, index=True)
    field_id = Column(Integer, ForeignKey("fields.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)  # 1-5
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    field = relationship("Field", back_populates="reviews")


class FieldClaim(Base):
    __tablename__ = "field_claims"

    id = Column(Integer, primary_key=True, index=True)
    field_id = Column(Integer, ForeignKey("fields.id"), nullable=False, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone_code = Column(String(10), nullable=True)
    phone_number = Column(String(50), nullable=False)
    is_legal_owner = Column(Boolean, nullable=False)
    documents = Column(JSON, default=list, nullable=False)  # list of uploaded document URLs
    status = Column(String(20), default=CLAIM_PENDING, nullable=False)
    review_notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    field = relationship("Field", back_populates="claims")


class Favorite(Base):
    __tablename__ = "favorites"
    __table_args__ = (UniqueConstraint("user_id", "field_id", name="uq_favorites_user_field"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # No FK: favorites may outlive a deleted field and are cleaned up lazily
    field_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="favorites")
    field = relationship(
        "Field",
        primaryjoin="foreign(Favorite.field_id) == Field.id",
        viewonly=True,
    )


class Term(Base):
    __tablename__ = "terms"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    content = Column(JSON, nullable=False)  # a paragraph string, or a list of bullet strings
    is_list = Column(Boolean, default=False, nullable=False)
    order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class DeviceToken(Base):
    __tablename__ = "device_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    token = Column(String(500), unique=True, nullable=False)
    platform = Column(String(20), nullable=False)  # web, ios, android
    device_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_used = Column(DateTime, server_default=func.now())
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="device_tokens")


class OtpVerification(Base):
    __tablename__ = "otp_verifications"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    otp = Column(String(10), nullable=False)
    type = Column(String(30), nullable=False)
    verified = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)  # PAYOUT_PENDING, PAYOUT_PROCESSED, PAYOUT_FAILED, ...
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="notifications")
