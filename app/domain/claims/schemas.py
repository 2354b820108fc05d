"""Claim domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class ClaimCreate(BaseModel):
    """Schema for submitting a field claim; completeness is checked by the service"""

    fieldId: Optional[int] = None
    fullName: Optional[str] = None
    email: Optional[str] = None
    phoneCode: Optional[str] = None
    phoneNumber: Optional[str] = None
    isLegalOwner: Optional[bool] = None
    documents: Optional[list[str]] = None


class ClaimStatusUpdate(BaseModel):
    status: Optional[str] = None
    reviewNotes: Optional[str] = None


class ClaimResponse(BaseModel):
    """Schema for claim response"""

    id: int
    fieldId: int
    fullName: str
    email: str
    phoneCode: Optional[str]
    phoneNumber: str
    isLegalOwner: bool
    documents: list[str]
    status: str
    reviewNotes: Optional[str] = None
    reviewedAt: Optional[datetime] = None
    reviewedBy: Optional[int] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None
    field: Optional[dict[str, Any]] = None

    @classmethod
    def from_claim(cls, claim, include_owner: bool = False) -> "ClaimResponse":
        field = None
        if claim.field is not None:
            field = {
                "id": claim.field.id,
                "name": claim.field.name,
                "address": claim.field.address,
                "city": claim.field.city,
                "state": claim.field.state,
            }
            if include_owner:
                owner = claim.field.owner
                field["owner"] = (
                    {"id": owner.id, "name": owner.name, "email": owner.email} if owner else None
                )

        return cls(
            id=claim.id,
            fieldId=claim.field_id,
            fullName=claim.full_name,
            email=claim.email,
            phoneCode=claim.phone_code,
            phoneNumber=claim.phone_number,
            isLegalOwner=claim.is_legal_owner,
            documents=claim.documents or [],
            status=claim.status,
            reviewNotes=claim.review_notes,
            reviewedAt=claim.reviewed_at,
            reviewedBy=claim.reviewed_by,
            createdAt=claim.created_at,
            updatedAt=claim.updated_at,
            field=field,
        )
