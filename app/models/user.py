# app/models/user.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import String, Integer, Numeric, Index, CheckConstraint, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class User(Base):
    """
    Local mirror of the identity provider's user.
    Only what the marketplace needs: role for fan-out, display name and the
    denormalized rating aggregate.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    role: Mapped[str] = mapped_column(String(16), nullable=False)
    display_name: Mapped[str] = mapped_column(
        String(256), nullable=False, server_default=text("''")
    )

    rating_average: Mapped[Decimal] = mapped_column(
        Numeric(3, 1), nullable=False, default=Decimal("0.0"), server_default=text("0")
    )
    rating_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("role IN ('farmer', 'merchant')", name="role_valid"),
        Index("ix_users_role", "role"),
    )
