# app/models/notification.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    Boolean,
    Uuid,
    ForeignKey,
    CheckConstraint,
    Index,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class Notification(Base):
    """
    Either addressed to one user (recipient_id) or broadcast to a role
    (recipient_type). Broadcast rows are filtered per viewer at read time:
    the originator never sees their own broadcast, and per-viewer read state
    lives in notification_receipts.

    Immutable except `read` (direct rows only).
    """

    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    recipient_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    recipient_type: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    originator_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    read: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "(recipient_id IS NOT NULL AND recipient_type IS NULL)"
            " OR (recipient_id IS NULL AND recipient_type IS NOT NULL)",
            name="one_recipient_selector",
        ),
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
        Index("ix_notifications_type_created", "recipient_type", "created_at"),
    )


class NotificationReceipt(Base):
    """
    Read marker for a broadcast notification, one per (notification, viewer).
    """

    __tablename__ = "notification_receipts"

    notification_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("notifications.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    read_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )
