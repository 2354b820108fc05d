"""
Notification Service
Stores in-app notifications and fans them out as push messages to the
user's registered devices through Firebase Cloud Messaging
"""

import logging
from datetime import datetime
from typing import Optional

import firebase_admin
from firebase_admin import credentials, messaging
from sqlalchemy.orm import Session

from ..config import FIREBASE_PROJECT_ID
from ..models import ADMIN, DeviceToken, Notification, User

logger = logging.getLogger(__name__)

# FCM error codes meaning the token will never work again
INVALID_TOKEN_CODES = (
    "registration-token-not-registered",
    "invalid-registration-token",
    "invalid-argument",
    "NOT_FOUND",
    "UNREGISTERED",
    "INVALID_ARGUMENT",
)

_firebase_app = None


def get_firebase_app():
    """Initialize Firebase Admin SDK (only once)"""
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app

    try:
        _firebase_app = firebase_admin.get_app()
    except ValueError:
        try:
            cred = credentials.ApplicationDefault()
            _firebase_app = firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID})
            logger.info("Firebase Admin initialized with default credentials")
        except Exception:
            _firebase_app = firebase_admin.initialize_app(options={"projectId": FIREBASE_PROJECT_ID})
            logger.info("Firebase Admin initialized with project ID only")
    return _firebase_app


def _is_invalid_token_error(error) -> bool:
    if error is None:
        return False
    code = str(getattr(error, "code", "") or "")
    return any(code.endswith(c) for c in INVALID_TOKEN_CODES) or isinstance(
        error, messaging.UnregisteredError
    )


def send_push_to_user(db: Session, user_id: int, title: str, body: str, data: Optional[dict] = None) -> dict:
    """
    Push to every active device of a user. Failures are logged, never raised.

    Returns:
        {"success_count", "failure_count", "invalid_tokens"}
    """
    result = {"success_count": 0, "failure_count": 0, "invalid_tokens": []}

    tokens = (
        db.query(DeviceToken)
        .filter(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
        .all()
    )
    if not tokens:
        logger.debug(f"📱 No active devices for user {user_id}")
        return result

    token_values = [t.token for t in tokens]
    try:
        message = messaging.MulticastMessage(
            tokens=token_values,
            notification=messaging.Notification(title=title, body=body),
            # FCM data payloads only carry strings
            data={k: str(v) for k, v in (data or {}).items() if v is not None},
        )
        response = messaging.send_each_for_multicast(message, app=get_firebase_app())
    except Exception as e:
        logger.error(f"❌ Push notification to user {user_id} failed: {e}")
        result["failure_count"] = len(token_values)
        return result

    result["success_count"] = response.success_count
    result["failure_count"] = response.failure_count

    for idx, resp in enumerate(response.responses):
        if not resp.success and _is_invalid_token_error(resp.exception):
            result["invalid_tokens"].append(token_values[idx])

    if result["invalid_tokens"]:
        db.query(DeviceToken).filter(DeviceToken.token.in_(result["invalid_tokens"])).update(
            {DeviceToken.is_active: False}, synchronize_session=False
        )
        db.commit()
        logger.info(f"🧹 Deactivated {len(result['invalid_tokens'])} invalid device token(s)")

    logger.info(
        f"📱 Push to user {user_id}: {result['success_count']} sent, {result['failure_count']} failed"
    )
    return result


def create_notification(
    db: Session,
    user_id: int,
    type: str,
    title: str,
    message: str,
    data: Optional[dict] = None,
) -> Notification:
    """Persist an in-app notification, then push it to the user's devices"""
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        data=data or {},
        created_at=datetime.utcnow(),
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    try:
        send_push_to_user(
            db,
            user_id,
            title,
            message,
            {**(data or {}), "type": type, "notificationId": notification.id},
        )
    except Exception as e:
        logger.error(f"❌ Push fan-out failed for notification {notification.id}: {e}")

    return notification


def notify_admins(db: Session, type: str, title: str, message: str, data: Optional[dict] = None) -> int:
    """Create the same notification for every admin; returns how many were notified"""
    admins = db.query(User).filter(User.role == ADMIN).all()
    for admin in admins:
        create_notification(db, admin.id, type, title, message, data)
    return len(admins)
