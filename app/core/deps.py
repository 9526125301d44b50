# /app/core/deps.py
import secrets
import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.core.auth_deps import get_current_principal
from app.core.config import get_settings
from app.db.session import get_db
from app.policies.rbac import Principal
from app.services.users_service import UserService
from app.services.wallet_service import WalletService


def parse_uuid(raw: str, field: str = "id") -> uuid.UUID:
    try:
        return uuid.UUID(str(raw))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{field} must be UUID.")


def registered_principal(
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
) -> Principal:
    """
    Authenticated caller, mirrored into `users` (role broadcasts enumerate
    that table) with a wallet created on first sight.
    """
    users = UserService()
    existing = users.get_user(db, principal.user_id)
    if existing is None or existing.role != principal.role.value:
        users.upsert_user(
            db,
            user_id=principal.user_id,
            role=principal.role,
            display_name=principal.display_name or None,
        )
        WalletService().initialize_wallet(db, principal.user_id)
    return principal


async def require_maintenance_token(
    x_maintenance_token: Optional[str] = Header(default=None),
) -> None:
    """
    Guards the sweep endpoints an external scheduler calls.
    Disabled entirely when MAINTENANCE_TOKEN is unset.
    """
    expected = get_settings().maintenance_token
    if not expected:
        raise HTTPException(status_code=503, detail="Maintenance endpoints are disabled.")
    if not x_maintenance_token or not secrets.compare_digest(x_maintenance_token, expected):
        raise HTTPException(status_code=403, detail="Invalid maintenance token.")
