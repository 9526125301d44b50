# app/models/rating.py
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import String, Integer, Uuid, ForeignKey, CheckConstraint, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import UTCDateTime, utcnow


class Rating(Base):
    """
    One rating per (product, rater, ratee). The composite primary key is the
    uniqueness guarantee; inserts are plain INSERTs, never upserts.
    """

    __tablename__ = "ratings"

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id"), primary_key=True
    )
    from_user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    to_user_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    review: Mapped[str] = mapped_column(String(200), nullable=False)

    from_role: Mapped[str] = mapped_column(String(16), nullable=False)
    to_role: Mapped[str] = mapped_column(String(16), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("rating BETWEEN 1 AND 5", name="rating_range"),
        Index("ix_ratings_to_user_created", "to_user_id", "created_at"),
    )

    @property
    def rating_id(self) -> str:
        return f"{self.product_id}_{self.from_user_id}_{self.to_user_id}"
