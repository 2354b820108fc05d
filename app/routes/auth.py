import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import DOG_OWNER, USER_ROLES, User
from ..rate_limiter import create_rate_limiter
from ..schemas import UserResponse, envelope
from ..security_utils import create_jwt_token, verify_password_bcrypt

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

login_rate_limit = create_rate_limiter(limit=10, window_seconds=900, key_prefix="login")


class LoginRequest(BaseModel):
    email: str
    password: str
    role: Optional[str] = DOG_OWNER


@router.post("/login")
async def login(
    data: LoginRequest,
    _: None = Depends(login_rate_limit),
    db: Session = Depends(get_db),
):
    """Email/password login for one role; field owners get their credentials from an approved claim"""
    role = data.role or DOG_OWNER
    if role not in USER_ROLES:
        raise HTTPException(status_code=400, detail="Invalid role")

    email = data.email.strip().lower()
    user = db.query(User).filter(User.email == email, User.role == role).first()
    if not user or not user.password or not verify_password_bcrypt(data.password, user.password):
        logger.warning(f"⚠️ Failed login for {email} ({role})")
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = create_jwt_token({"userId": user.id, "role": user.role})
    logger.info(f"✅ User {user.id} logged in as {user.role}")
    return envelope(
        {"token": token, "user": UserResponse.from_user(user).model_dump(mode="json")},
        "Login successful",
    )
