"""Claim service - Business logic for field claims and ownership transfer"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import send_field_claim_email, send_field_claim_status_email
from ...models import CLAIM_APPROVED, CLAIM_REJECTED, FIELD_OWNER, FieldClaim, User
from ...security_utils import generate_account_password, hash_password_bcrypt
from ...shared.validators import join_phone
from .repository import ClaimRepository
from .schemas import ClaimCreate

logger = logging.getLogger(__name__)

REVIEW_STATUSES = (CLAIM_APPROVED, CLAIM_REJECTED)


class ClaimService:
    """Service layer for field claim business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClaimRepository()

    def _get_field_or_404(self, field_id: int):
        field = self.repo.get_field(self.db, field_id)
        if not field:
            raise HTTPException(status_code=404, detail="Field not found")
        return field

    def get_claim(self, claim_id: int) -> FieldClaim:
        claim = self.repo.get_claim(self.db, claim_id)
        if not claim:
            raise HTTPException(status_code=404, detail="Claim not found")
        return claim

    async def submit_claim(self, data: ClaimCreate) -> FieldClaim:
        """Create a PENDING claim and send the claimer a confirmation"""
        if (
            not data.fieldId
            or not data.fullName
            or not data.email
            or not data.phoneNumber
            or data.isLegalOwner is None
            or not data.documents
        ):
            raise HTTPException(status_code=400, detail="All fields are required")

        field = self._get_field_or_404(data.fieldId)

        if field.is_claimed:
            raise HTTPException(
                status_code=400, detail="This field has already been claimed and verified"
            )

        if self.repo.get_pending_claim(self.db, field.id, data.email):
            raise HTTPException(
                status_code=400,
                detail="You already have a pending claim for this field. Please wait for the review to complete.",
            )

        logger.info(f"📥 New claim for field {field.id} from {data.email}")
        claim = self.repo.create_claim(
            self.db,
            field_id=field.id,
            full_name=data.fullName,
            email=data.email,
            phone_code=data.phoneCode,
            phone_number=data.phoneNumber,
            is_legal_owner=data.isLegalOwner,
            documents=data.documents,
        )

        try:
            await send_field_claim_email(
                to=claim.email,
                full_name=claim.full_name,
                field_name=field.name or "Unnamed Field",
                field_address=field.full_address(),
                is_legal_owner=claim.is_legal_owner,
                documents=claim.documents,
                submitted_at=claim.created_at,
            )
        except Exception as e:
            logger.error(f"❌ Failed to send field claim email to {claim.email}: {e}")

        return claim

    def list_claims(self, status: Optional[str], page: int, limit: int) -> tuple[list[FieldClaim], int]:
        return self.repo.list_claims(self.db, status, page, limit)

    def _provision_owner_account(self, claim: FieldClaim) -> tuple[User, str]:
        """
        Give the approved claimant a password login for the field.
        Returns (owner account, generated plain password).
        """
        field = claim.field
        password = generate_account_password()
        hashed = hash_password_bcrypt(password)
        now = datetime.utcnow()

        if field.owner is not None:
            owner = field.owner
            owner.password = hashed
            owner.email_verified = now
            owner.provider = "general"
            field.is_claimed = True
            logger.info(f"🔑 Reset credentials for existing owner {owner.id} of field {field.id}")
        else:
            owner = self.repo.get_field_owner_account(self.db, claim.email)
            if owner is None:
                owner = User(
                    email=claim.email,
                    name=claim.full_name,
                    password=hashed,
                    role=FIELD_OWNER,
                    phone=join_phone(claim.phone_code, claim.phone_number),
                    provider="general",
                    has_field=True,
                    email_verified=now,
                )
                self.db.add(owner)
                self.db.flush()
                logger.info(f"👤 Created field owner account {owner.id} for {claim.email}")
            else:
                owner.password = hashed
                owner.email_verified = now

            field.owner_id = owner.id
            field.is_claimed = True

        self.db.commit()
        self.db.refresh(owner)
        return owner, password

    async def update_claim_status(
        self, claim_id: int, status: Optional[str], review_notes: Optional[str], reviewer: User
    ) -> FieldClaim:
        if status not in REVIEW_STATUSES:
            raise HTTPException(status_code=400, detail="Invalid status")

        claim = self.get_claim(claim_id)

        claim.status = status
        claim.review_notes = review_notes
        claim.reviewed_at = datetime.utcnow()
        claim.reviewed_by = reviewer.id
        self.db.commit()
        self.db.refresh(claim)
        logger.info(f"📝 Claim {claim.id} marked {status} by admin {reviewer.id}")

        credentials = None
        if status == CLAIM_APPROVED:
            # Only a best-effort check guards concurrent approvals of one field
            try:
                owner, password = self._provision_owner_account(claim)
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Failed to process field owner account for claim {claim.id}: {e}")
                raise HTTPException(status_code=500, detail="Failed to process field owner account") from e
            credentials = {"email": owner.email, "password": password}

        try:
            await send_field_claim_status_email(
                to=claim.email,
                full_name=claim.full_name,
                field_name=claim.field.name or "Unnamed Field",
                field_address=claim.field.full_address(),
                status=status,
                review_notes=review_notes,
                credentials=credentials,
            )
        except Exception as e:
            logger.error(f"❌ Failed to send claim status email to {claim.email}: {e}")

        return claim

    def check_eligibility(self, field_id: int, email: Optional[str]) -> dict:
        field = self._get_field_or_404(field_id)

        if field.is_claimed:
            return {
                "canClaim": False,
                "reason": "This field has already been claimed and verified",
                "fieldName": field.name,
            }

        if email and self.repo.get_pending_claim(self.db, field.id, email):
            return {
                "canClaim": False,
                "reason": "You already have a pending claim for this field",
                "userHasPendingClaim": True,
                "fieldName": field.name,
            }

        pending = self.repo.count_pending_claims(self.db, field.id)
        return {
            "canClaim": True,
            "pendingClaimsCount": pending,
            "fieldName": field.name,
            "message": f"This field has {pending} pending claim(s) under review. You can still submit your claim."
            if pending > 0
            else "You can claim this field",
        }

    def field_claims(self, field_id: int) -> list[FieldClaim]:
        return self.repo.claims_for_field(self.db, field_id)
