"""
Security Utilities
Password hashing, access tokens, generated credentials and input sanitization
"""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Optional

# Input sanitization
import bleach
from jose import JWTError
from jose import jwt as jose_jwt

# Password hashing
from passlib.context import CryptContext

from .config import JWT_EXPIRES_MINUTES, SECRET_KEY

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

# bcrypt with 10 rounds matches hashes issued by the mobile/web auth service
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=10)


# ============================================================================
# PASSWORD SECURITY
# ============================================================================


def hash_password_bcrypt(password: str) -> str:
    """Hash password using bcrypt"""
    return pwd_context.hash(password)


def verify_password_bcrypt(plain_password: str, hashed_password: str) -> bool:
    """Verify password against bcrypt hash"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception as e:
        logger.error(f"Password verification error: {e}")
        return False


def generate_account_password() -> str:
    """16 hex characters, handed to a field owner when their claim is approved"""
    return secrets.token_hex(8)


def generate_otp(length: int = 6) -> str:
    """Generate a cryptographically secure random numeric OTP code"""
    return "".join(secrets.choice(string.digits) for _ in range(length))


# ============================================================================
# ACCESS TOKENS
# ============================================================================


def create_jwt_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT token

    Args:
        data: Claims to encode (the API expects ``userId``)
        expires_delta: Token lifetime (default JWT_EXPIRES_MINUTES)
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=JWT_EXPIRES_MINUTES))
    to_encode.update({"exp": expire})
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def verify_jwt_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode a JWT token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


# ============================================================================
# INPUT SANITIZATION
# ============================================================================


def sanitize_text(value: str) -> str:
    """Strip all markup from plain-text content such as terms sections"""
    return bleach.clean(value, tags=[], attributes={}, strip=True)


def sanitize_term_content(content: Any) -> Any:
    """Terms content is either a paragraph or a list of bullet strings"""
    if isinstance(content, list):
        return [sanitize_text(str(item)) for item in content]
    if content is None:
        return content
    return sanitize_text(str(content))
