from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.auth_deps import get_current_principal
from app.db.session import get_db
from app.policies.rbac import Principal
from app.services.idempotency_service import (
    IdempotencyScope,
    IdempotencyService,
    StoredResponse,
    request_fingerprint,
)

MAX_KEY_LENGTH = 128


@dataclass(frozen=True)
class IdempotencyContext:
    scope: IdempotencyScope
    fingerprint: str
    replay: Optional[StoredResponse]


async def optional_idempotency_key(request: Request) -> Optional[str]:
    key = request.headers.get("Idempotency-Key")
    if key is None:
        return None
    key = key.strip()
    if not key:
        raise HTTPException(status_code=400, detail="Empty Idempotency-Key header.")
    if len(key) > MAX_KEY_LENGTH:
        raise HTTPException(status_code=400, detail="Idempotency-Key too long.")
    return key


async def idempotency_guard(
    request: Request,
    idem_key: Optional[str] = Depends(optional_idempotency_key),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
) -> Optional[IdempotencyContext]:
    """
    Use on POST endpoints that move money. Without the header the request
    runs normally (None). With it, the endpoint gets the scope to store its
    response under and, on a retry, the response to replay.
    """
    if idem_key is None:
        return None

    try:
        payload = await request.json()
    except ValueError:
        payload = {}

    scope = IdempotencyScope(
        user_id=principal.user_id,
        endpoint_key=f"{request.method}:{request.url.path}",
        idem_key=idem_key,
    )
    fingerprint = request_fingerprint(payload)
    replay = IdempotencyService().lookup(db, scope, fingerprint=fingerprint)
    return IdempotencyContext(scope=scope, fingerprint=fingerprint, replay=replay)
