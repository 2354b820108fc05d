"""Earnings domain schemas - Pydantic models for earnings responses"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class FieldEarning(BaseModel):
    fieldId: int
    fieldName: Optional[str] = None
    totalEarnings: float = 0
    totalBookings: int = 0
    averageEarning: float = 0


class PayoutBooking(BaseModel):
    """A booking as listed under a payout"""

    id: int
    bookingId: Optional[str] = None
    fieldName: Optional[str] = None
    customerName: Optional[str] = None
    date: Optional[datetime] = None
    time: Optional[str] = None
    amount: float = 0
    status: Optional[str] = None


class HeldBooking(BaseModel):
    id: int
    fieldId: int
    fieldName: Optional[str] = None
    customerName: Optional[str] = None
    date: Optional[datetime] = None
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    totalPrice: float
    fieldOwnerAmount: float
    platformCommission: Optional[float] = None
    payoutHeldReason: Optional[str] = None
    status: str
    createdAt: Optional[datetime] = None


class SyncResult(BaseModel):
    total: int = 0
    synced: int = 0
    updated: int = 0
    skipped: int = 0
