"""
Booking, Transaction and Payout Models for Field Owner Earnings
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Booking statuses
BOOKING_PENDING = "PENDING"
BOOKING_CONFIRMED = "CONFIRMED"
BOOKING_COMPLETED = "COMPLETED"
BOOKING_CANCELLED = "CANCELLED"

# Booking payment statuses
PAYMENT_PENDING = "PENDING"
PAYMENT_PAID = "PAID"
PAYMENT_REFUNDED = "REFUNDED"

# Booking payout statuses (null = not yet considered)
PAYOUT_PENDING = "PENDING"
PAYOUT_PENDING_ACCOUNT = "PENDING_ACCOUNT"
PAYOUT_HELD = "HELD"
PAYOUT_PROCESSING = "PROCESSING"
PAYOUT_COMPLETED = "COMPLETED"
PAYOUT_FAILED = "FAILED"
PAYOUT_REFUNDED = "REFUNDED"

# Reasons a payout sits in HELD
HELD_NO_STRIPE_ACCOUNT = "NO_STRIPE_ACCOUNT"
HELD_WITHIN_CANCELLATION_WINDOW = "WITHIN_CANCELLATION_WINDOW"
HELD_WAITING_FOR_WEEKEND = "WAITING_FOR_WEEKEND"
HELD_REASONS = (HELD_NO_STRIPE_ACCOUNT, HELD_WITHIN_CANCELLATION_WINDOW, HELD_WAITING_FOR_WEEKEND)

# Processor payout statuses that count as money delivered
SUCCESSFUL_PAYOUT_STATUSES = ("paid", "PAID", "completed", "COMPLETED")

# Payout release schedules
RELEASE_AFTER_CANCELLATION_WINDOW = "after_cancellation_window"
RELEASE_ON_WEEKEND = "on_weekend"


class Booking(Base):
    """A paid slot on a field; the unit of owner earnings"""

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(String(20), unique=True, nullable=True, index=True)  # human readable, e.g. "1042"
    field_id = Column(Integer, ForeignKey("fields.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)  # dog owner

    date = Column(DateTime, nullable=False)  # calendar day at 00:00
    start_time = Column(String(20), nullable=False)  # "9:00AM", "02:30 PM" or "14:30"
    end_time = Column(String(20), nullable=True)
    number_of_dogs = Column(Integer, default=1)

    # Pricing
    total_price = Column(Float, nullable=False)
    field_owner_amount = Column(Float, nullable=True)
    platform_commission = Column(Float, nullable=True)

    # Status
    status = Column(String(20), default=BOOKING_PENDING, nullable=False)
    payment_status = Column(String(20), default=PAYMENT_PENDING, nullable=False)
    payment_intent_id = Column(String(255), nullable=True)

    # Payout tracking
    payout_status = Column(String(30), nullable=True)
    payout_held_reason = Column(String(500), nullable=True)
    payout_id = Column(Integer, ForeignKey("payouts.id"), nullable=True)

    # Cancellation
    cancellation_reason = Column(Text, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    field = relationship("Field", back_populates="bookings")
    user = relationship("User")
    transactions = relationship("Transaction", back_populates="booking")


class Transaction(Base):
    """Money movement tied to a booking (payment, refund, payout)"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    amount = Column(Float, nullable=False)
    type = Column(String(20), default="PAYMENT", nullable=False)  # PAYMENT, REFUND, PAYOUT
    status = Column(String(20), default="PENDING", nullable=False)  # PENDING, COMPLETED, REFUNDED, FAILED
    description = Column(Text, nullable=True)

    # Processor references
    stripe_payment_intent_id = Column(String(255), nullable=True)
    stripe_charge_id = Column(String(255), nullable=True)
    stripe_transfer_id = Column(String(255), nullable=True)
    stripe_payout_id = Column(String(255), nullable=True)
    connected_account_id = Column(String(255), nullable=True)

    # Lifecycle: PAYMENT_RECEIVED -> FUNDS_PENDING -> FUNDS_AVAILABLE -> PAYOUT_INITIATED -> PAYOUT_COMPLETED
    lifecycle_stage = Column(String(30), nullable=True)
    funds_available_at = Column(DateTime, nullable=True)
    transferred_at = Column(DateTime, nullable=True)
    payout_initiated_at = Column(DateTime, nullable=True)
    payout_completed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    booking = relationship("Booking", back_populates="transactions")


class StripeAccount(Base):
    """Connected payment account of a field owner"""

    __tablename__ = "stripe_accounts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    stripe_account_id = Column(String(255), unique=True, nullable=False)  # acct_xxx
    charges_enabled = Column(Boolean, default=False, nullable=False)
    payouts_enabled = Column(Boolean, default=False, nullable=False)
    details_submitted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    payouts = relationship("Payout", back_populates="stripe_account")

    @property
    def fully_enabled(self) -> bool:
        return bool(self.charges_enabled and self.payouts_enabled)


class Payout(Base):
    """Funds sent to a connected account, covering one or more bookings"""

    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    stripe_account_id = Column(Integer, ForeignKey("stripe_accounts.id"), nullable=False, index=True)
    stripe_payout_id = Column(String(255), unique=True, nullable=True)  # po_xxx or tr_xxx
    amount = Column(Float, nullable=False)  # major units
    currency = Column(String(10), default="gbp")
    status = Column(String(30), default="pending")  # pending, in_transit, paid, failed, processing
    method = Column(String(30), default="standard")
    description = Column(Text, nullable=True)
    booking_ids = Column(JSON, default=list, nullable=False)
    arrival_date = Column(DateTime, nullable=True)
    failure_code = Column(String(100), nullable=True)
    failure_message = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    stripe_account = relationship("StripeAccount", back_populates="payouts")


class SystemSettings(Base):
    """Single-row platform settings edited by admins"""

    __tablename__ = "system_settings"

    id = Column(Integer, primary_key=True, index=True)
    default_commission_rate = Column(Integer, default=20, nullable=False)
    payout_release_schedule = Column(
        String(50), default=RELEASE_AFTER_CANCELLATION_WINDOW, nullable=False
    )
    cancellation_window_hours = Column(Integer, default=24, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
