import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import ADMIN, FIELD_OWNER, User
from .security_utils import verify_jwt_token

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _user_from_token(token: str, db: Session) -> User:
    token_parts = token.split(".")
    if len(token_parts) != 3:
        logger.warning(f"⚠️ Malformed token received: {len(token_parts)} parts")
        raise HTTPException(
            status_code=401, detail="Invalid token format. Expected a valid JWT token."
        )

    payload = verify_jwt_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id = payload.get("userId") or payload.get("sub")
    if not user_id:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(payload.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    try:
        user_id = int(user_id)
    except (TypeError, ValueError) as e:
        raise HTTPException(status_code=401, detail="Invalid token claims") from e

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        logger.warning(f"⚠️ Token for unknown user {user_id}")
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the bearer access token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    user = _user_from_token(credentials.credentials, db)
    logger.debug(f"✅ User authenticated: {user.email} ({user.role})")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Admin-only routes"""
    if user.role != ADMIN:
        logger.warning(f"🚫 Non-admin {user.email} attempted an admin route")
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def require_field_owner(user: User = Depends(get_current_user)) -> User:
    """Field owner dashboards; admins may look too"""
    if user.role not in (FIELD_OWNER, ADMIN):
        raise HTTPException(status_code=403, detail="Only field owners can access earnings")
    return user
