# app/core/security.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Union

from jose import jwt

from app.core.config import get_settings
from app.core.types import UserRole


def create_access_token(
    user_id: str,
    role: Union[UserRole, str],
    *,
    display_name: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Mint a bearer token in the shape the identity provider issues
    (`sub`, `role`, optional `display_name`). The marketplace only consumes
    such tokens; this exists for local runs and tests.
    """
    settings = get_settings()
    exp_minutes = expires_minutes or settings.jwt_access_token_minutes
    now = datetime.now(timezone.utc)

    payload: Dict[str, Any] = {
        "sub": user_id,
        "role": UserRole.parse(role).value,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    if display_name:
        payload["display_name"] = display_name
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Dict[str, Any]:
    """
    Verify signature and expiry. Raises jose.JWTError on any failure.
    """
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
