"""Claim repository - Database operations for field claims"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import CLAIM_PENDING, FIELD_OWNER, Field, FieldClaim, User


class ClaimRepository:
    """Repository for field claim database operations"""

    @staticmethod
    def get_field(db: Session, field_id: int) -> Optional[Field]:
        return db.query(Field).filter(Field.id == field_id).first()

    @staticmethod
    def get_claim(db: Session, claim_id: int) -> Optional[FieldClaim]:
        return db.query(FieldClaim).filter(FieldClaim.id == claim_id).first()

    @staticmethod
    def get_pending_claim(db: Session, field_id: int, email: str) -> Optional[FieldClaim]:
        """A claimant's open claim on a field"""
        return (
            db.query(FieldClaim)
            .filter(
                FieldClaim.field_id == field_id,
                FieldClaim.email == email,
                FieldClaim.status == CLAIM_PENDING,
            )
            .first()
        )

    @staticmethod
    def count_pending_claims(db: Session, field_id: int) -> int:
        return (
            db.query(FieldClaim)
            .filter(FieldClaim.field_id == field_id, FieldClaim.status == CLAIM_PENDING)
            .count()
        )

    @staticmethod
    def create_claim(db: Session, **claim_data) -> FieldClaim:
        now = datetime.utcnow()
        claim = FieldClaim(status=CLAIM_PENDING, created_at=now, updated_at=now, **claim_data)
        db.add(claim)
        db.commit()
        db.refresh(claim)
        return claim

    @staticmethod
    def list_claims(
        db: Session, status: Optional[str], page: int, limit: int
    ) -> tuple[list[FieldClaim], int]:
        """Newest first; returns (page of claims, total)"""
        query = db.query(FieldClaim)
        if status:
            query = query.filter(FieldClaim.status == status)

        total = query.count()
        claims = (
            query.order_by(FieldClaim.created_at.desc(), FieldClaim.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return claims, total

    @staticmethod
    def claims_for_field(db: Session, field_id: int) -> list[FieldClaim]:
        return (
            db.query(FieldClaim)
            .filter(FieldClaim.field_id == field_id)
            .order_by(FieldClaim.created_at.desc(), FieldClaim.id.desc())
            .all()
        )

    @staticmethod
    def get_field_owner_account(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email, User.role == FIELD_OWNER).first()
