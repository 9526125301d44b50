# app/services/idempotency_service.py
"""
Replay protection for money-moving POSTs (wallet deposits).

A client retrying with the same Idempotency-Key and body gets the first
response back instead of a second ledger entry. Reusing a key with a
different body is a conflict.
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import StateConflictError
from app.models.idempotency_key import IdempotencyKeyRecord

logger = logging.getLogger(__name__)


class IdempotencyKeyReused(StateConflictError):
    kind = "idempotency_key_reused"


@dataclass(frozen=True)
class IdempotencyScope:
    user_id: str
    endpoint_key: str  # e.g. "POST:/api/v1/wallet/deposit"
    idem_key: str


@dataclass(frozen=True)
class StoredResponse:
    body: Dict[str, Any]
    status_code: int


def request_fingerprint(payload: Any) -> str:
    # Decimal amounts hash by their string form, so "75.5" and "75.50" differ
    raw = json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    ).encode("utf-8")
    return hashlib.sha256(raw).hexdigest()


class IdempotencyService:
    def _find(self, db: Session, scope: IdempotencyScope) -> Optional[IdempotencyKeyRecord]:
        return db.execute(
            select(IdempotencyKeyRecord).where(
                IdempotencyKeyRecord.user_id == scope.user_id,
                IdempotencyKeyRecord.endpoint_key == scope.endpoint_key,
                IdempotencyKeyRecord.idem_key == scope.idem_key,
            )
        ).scalar_one_or_none()

    def lookup(
        self, db: Session, scope: IdempotencyScope, *, fingerprint: str
    ) -> Optional[StoredResponse]:
        """
        The stored response for this scope, or None on first use.
        Raises IdempotencyKeyReused when the key was used with another body.
        """
        record = self._find(db, scope)
        if record is None:
            return None
        if record.request_hash != fingerprint:
            raise IdempotencyKeyReused("Idempotency-Key reuse with different payload is not allowed.")
        return StoredResponse(body=record.response_json, status_code=int(record.response_status))

    def remember(
        self,
        db: Session,
        scope: IdempotencyScope,
        *,
        fingerprint: str,
        response: StoredResponse,
    ) -> None:
        """
        Record the first response. A concurrent request with the same key
        that stored first wins; ours is dropped.
        """
        if self._find(db, scope) is not None:
            return

        db.add(
            IdempotencyKeyRecord(
                user_id=scope.user_id,
                endpoint_key=scope.endpoint_key,
                idem_key=scope.idem_key,
                request_hash=fingerprint,
                response_status=str(response.status_code),
                response_json=response.body,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("[idempotency] lost store race key=%s user=%s", scope.idem_key, scope.user_id)
