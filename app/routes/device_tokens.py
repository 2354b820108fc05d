"""
Device Token Routes
Registration of FCM push tokens for web and mobile clients.
"""
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import DeviceToken, User
from ..schemas import envelope
from ..shared.validators import validate_platform

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/device-tokens", tags=["Device Tokens"])


class DeviceTokenRegister(BaseModel):
    token: Optional[str] = None
    platform: Optional[str] = None
    deviceName: Optional[str] = None


class DeviceTokenRemove(BaseModel):
    token: Optional[str] = None


@router.post("")
async def register_token(
    data: DeviceTokenRegister,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Register a token, or move an existing one to the current user"""
    if not data.token:
        raise HTTPException(status_code=400, detail="Token is required")
    try:
        platform = validate_platform(data.platform)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    device_token = db.query(DeviceToken).filter(DeviceToken.token == data.token).first()
    if device_token is None:
        device_token = DeviceToken(token=data.token)
        db.add(device_token)

    device_token.user_id = current_user.id
    device_token.platform = platform
    device_token.device_name = data.deviceName or None
    device_token.is_active = True
    device_token.last_used = datetime.utcnow()
    db.commit()
    db.refresh(device_token)

    logger.info(f"📱 Registered {platform} device token {device_token.id} for user {current_user.id}")
    return envelope({"id": device_token.id}, "Device token registered successfully")


@router.delete("/all")
async def remove_all_tokens(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = (
        db.query(DeviceToken)
        .filter(DeviceToken.user_id == current_user.id, DeviceToken.is_active.is_(True))
        .update({DeviceToken.is_active: False}, synchronize_session=False)
    )
    db.commit()
    return envelope({"count": count}, f"Removed {count} device(s)")


@router.delete("")
async def remove_token(
    data: DeviceTokenRemove,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not data.token:
        raise HTTPException(status_code=400, detail="Token is required")

    updated = (
        db.query(DeviceToken)
        .filter(DeviceToken.token == data.token, DeviceToken.user_id == current_user.id)
        .update({DeviceToken.is_active: False}, synchronize_session=False)
    )
    if updated == 0:
        raise HTTPException(status_code=404, detail="Token not found")

    db.commit()
    return {"success": True, "message": "Device token removed successfully"}


@router.get("")
async def get_user_tokens(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    tokens = (
        db.query(DeviceToken)
        .filter(DeviceToken.user_id == current_user.id, DeviceToken.is_active.is_(True))
        .order_by(DeviceToken.last_used.desc(), DeviceToken.id.desc())
        .all()
    )
    return envelope(
        [
            {
                "id": t.id,
                "platform": t.platform,
                "deviceName": t.device_name,
                "lastUsed": t.last_used,
                "createdAt": t.created_at,
            }
            for t in tokens
        ]
    )
