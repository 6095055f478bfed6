"""Authentication service: admin credentials and JWT access tokens."""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from jose import JWTError, jwt

if TYPE_CHECKING:
    from langcms.config import Settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ADMIN_ROLE = "admin"


def create_access_token(data: dict[str, Any], secret_key: str, expires_minutes: int = 15) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire, "type": "access"})
    return str(jwt.encode(to_encode, secret_key, algorithm=ALGORITHM))


def decode_access_token(token: str, secret_key: str) -> dict[str, Any] | None:
    """Decode and validate a JWT access token."""
    try:
        payload: dict[str, Any] = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
        if payload.get("type") != "access":
            return None
        return payload
    except JWTError:
        logger.debug("Failed to decode access token", exc_info=True)
        return None


def authenticate_admin(settings: Settings, username: str, password: str) -> bool:
    """Check credentials against the configured admin account in constant time."""
    user_ok = secrets.compare_digest(username.encode("utf-8"), settings.admin_username.encode("utf-8"))
    password_ok = secrets.compare_digest(
        password.encode("utf-8"), settings.admin_password.encode("utf-8")
    )
    return user_ok and password_ok


def issue_admin_token(settings: Settings) -> str:
    """Create an access token for the configured admin."""
    return create_access_token(
        {"sub": settings.admin_username, "role": ADMIN_ROLE},
        settings.secret_key,
        settings.access_token_expire_minutes,
    )


def is_admin_payload(payload: dict[str, Any] | None) -> bool:
    return payload is not None and payload.get("role") == ADMIN_ROLE and bool(payload.get("sub"))
