from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from .shared.validators import total_pages


def pagination(page: int, limit: int, total: int) -> dict:
    """Pagination block attached to list responses"""
    return {"page": page, "limit": limit, "total": total, "totalPages": total_pages(total, limit)}


def envelope(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    """Standard success envelope"""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    body.update(extra)
    return body


class UserResponse(BaseModel):
    """Public view of a user; the password hash is never part of it"""

    id: int
    email: str
    role: str
    name: Optional[str] = None
    phone: Optional[str] = None
    image: Optional[str] = None
    googleImage: Optional[str] = None
    bio: Optional[str] = None
    address: Optional[str] = None
    provider: Optional[str] = None
    emailVerified: Optional[datetime] = None
    hasField: bool = False
    commissionRate: Optional[int] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            name=user.name,
            phone=user.phone,
            image=user.image,
            googleImage=user.google_image,
            bio=user.bio,
            address=user.address,
            provider=user.provider,
            emailVerified=user.email_verified,
            hasField=bool(user.has_field),
            commissionRate=user.commission_rate,
            createdAt=user.created_at,
            updatedAt=user.updated_at,
        )


class FieldSummary(BaseModel):
    id: int
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    images: Optional[list] = None
    isClaimed: bool = False
    isActive: bool = True
    ownerId: Optional[int] = None

    @classmethod
    def from_field(cls, field) -> "FieldSummary":
        return cls(
            id=field.id,
            name=field.name,
            address=field.address,
            city=field.city,
            state=field.state,
            images=field.images or [],
            isClaimed=bool(field.is_claimed),
            isActive=bool(field.is_active),
            ownerId=field.owner_id,
        )


class MessageResponse(BaseModel):
    message: str
