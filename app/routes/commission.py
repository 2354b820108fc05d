"""
Commission Routes
Admin management of the platform default commission and per field owner overrides.
"""
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..config import DEFAULT_COMMISSION_RATE
from ..database import get_db
from ..email_service import send_commission_change_email
from ..models import FIELD_OWNER, Field, User
from ..schemas import envelope, pagination
from ..services.commission import get_effective_commission_rate, get_system_settings
from ..shared.validators import validate_commission_rate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/commission", tags=["Commission"])


class CommissionSettingsUpdate(BaseModel):
    defaultCommissionRate: Any = None


class FieldOwnerCommissionUpdate(BaseModel):
    commissionRate: Any = None
    useDefault: Optional[bool] = False


def _serialize_settings(settings) -> dict:
    return {
        "id": settings.id,
        "defaultCommissionRate": settings.default_commission_rate,
        "payoutReleaseSchedule": settings.payout_release_schedule,
        "cancellationWindowHours": settings.cancellation_window_hours,
        "createdAt": settings.created_at,
        "updatedAt": settings.updated_at,
    }


def _owner_commission(user: User, default_rate: int) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "commissionRate": user.commission_rate,
        "effectiveCommissionRate": user.commission_rate if user.commission_rate is not None else default_rate,
        "isUsingDefault": user.commission_rate is None,
    }


def _default_rate(db: Session) -> int:
    settings = get_system_settings(db)
    return settings.default_commission_rate if settings else DEFAULT_COMMISSION_RATE


@router.get("/settings")
async def get_commission_settings(current_user: User = Depends(require_admin), db: Session = Depends(get_db)):
    settings = get_system_settings(db, create=True)
    return envelope(_serialize_settings(settings))


@router.put("/settings")
async def update_commission_settings(
    data: CommissionSettingsUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        rate = validate_commission_rate(data.defaultCommissionRate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    settings = get_system_settings(db, create=True)
    previous = settings.default_commission_rate
    settings.default_commission_rate = rate
    db.commit()
    db.refresh(settings)

    logger.info(f"⚙️ Default commission changed from {previous}% to {rate}% by admin {current_user.id}")
    return envelope(_serialize_settings(settings), "Default commission rate updated successfully")


@router.get("/field-owner/{user_id}")
async def get_field_owner_commission(
    user_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="Field owner not found")
    return envelope(_owner_commission(user, _default_rate(db)))


@router.put("/field-owner/{user_id}")
async def update_field_owner_commission(
    user_id: int,
    data: FieldOwnerCommissionUpdate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=404, detail="Field owner not found")

    previous_rate = get_effective_commission_rate(db, user.id)["effective_rate"]

    if data.useDefault:
        user.commission_rate = None
        db.commit()
        db.refresh(user)
        return envelope(_owner_commission(user, _default_rate(db)), "Field owner set to use default commission rate")

    try:
        rate = validate_commission_rate(data.commissionRate)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    user.commission_rate = rate
    db.commit()
    db.refresh(user)
    logger.info(f"⚙️ Commission for field owner {user.id} set to {rate}% (was {previous_rate}%)")

    if previous_rate != rate:
        try:
            await send_commission_change_email(
                to=user.email,
                owner_name=user.name or "Field Owner",
                previous_rate=previous_rate,
                new_rate=rate,
            )
        except Exception as e:
            logger.error(f"❌ Failed to send commission change email to {user.email}: {e}")

    return envelope(_owner_commission(user, _default_rate(db)), "Field owner commission rate updated successfully")


@router.get("/field-owners")
async def list_field_owners(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str = Query(""),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(User).filter(User.role == FIELD_OWNER)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(User.name.ilike(pattern), User.email.ilike(pattern)))

    total = query.count()
    owners = (
        query.order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    field_counts = dict(
        db.query(Field.owner_id, func.count(Field.id))
        .filter(Field.owner_id.in_([o.id for o in owners]))
        .group_by(Field.owner_id)
        .all()
    ) if owners else {}

    default_rate = _default_rate(db)
    return envelope(
        {
            "fieldOwners": [
                {
                    **_owner_commission(owner, default_rate),
                    "phone": owner.phone,
                    "createdAt": owner.created_at,
                    "fieldsCount": field_counts.get(owner.id, 0),
                }
                for owner in owners
            ],
            "defaultCommissionRate": default_rate,
            "pagination": pagination(page, limit, total),
        }
    )
