from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict

from sqlalchemy import String, Uuid, UniqueConstraint, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import JSONDoc, UTCDateTime, utcnow


class IdempotencyKeyRecord(Base):
    """
    First response of a money-moving POST sent with an Idempotency-Key.
    One row per (user_id, endpoint_key, idem_key); retries replay it.
    """
    __tablename__ = "idempotency_key_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    endpoint_key: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "POST:/wallet/deposit"
    idem_key: Mapped[str] = mapped_column(String(128), nullable=False)

    request_hash: Mapped[str] = mapped_column(String(128), nullable=False)

    response_status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'200'"))
    response_json: Mapped[Dict[str, Any]] = mapped_column(JSONDoc, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "endpoint_key", "idem_key", name="uq_idem_scope"),
    )
