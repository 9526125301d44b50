# app/models/product.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    Text,
    Uuid,
    ForeignKey,
    CheckConstraint,
    Index,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.db.types import JSONDoc, Money, UTCDateTime, utcnow
from app.models.enums import ProductStatus, PaymentStatus


class Product(Base):
    """
    Auction lot.

    The highest bid is denormalized onto the row (amount / bidder / time) so
    bid placement is a single-row read-modify-write guarded by `version`.
    Every bid is also appended to `bids`; previous bids are the rows that are
    not the current highest.
    """

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    seller_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # immutable at creation
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    starting_price: Mapped[Decimal] = mapped_column(Money, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Money, nullable=False)
    unit_type: Mapped[str] = mapped_column(String(32), nullable=False)
    grade: Mapped[str] = mapped_column(String(64), nullable=False, server_default=text("''"))
    images: Mapped[List[str]] = mapped_column(JSONDoc, nullable=False, default=list)
    duration_hours: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )
    end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # lifecycle
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ProductStatus.active.value,
        server_default=text(f"'{ProductStatus.active.value}'"),
    )

    highest_bid_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    highest_bidder_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    highest_bid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    bid_accepted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    bid_responded_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    product_delivered: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    delivered_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    delivery_expired_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    payment_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PaymentStatus.none.value,
        server_default=text(f"'{PaymentStatus.none.value}'"),
    )
    escrow_transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("transactions.id", use_alter=True), nullable=True
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    bids = relationship(
        "Bid",
        back_populates="product",
        order_by=lambda: [Bid.created_at, Bid.amount],
        cascade="all",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("starting_price > 0", name="starting_price_positive"),
        CheckConstraint("quantity > 0", name="quantity_positive"),
        CheckConstraint("duration_hours > 0", name="duration_positive"),
        Index("ix_products_status_created", "status", "created_at"),
        Index("ix_products_seller", "seller_id", "created_at"),
        Index("ix_products_highest_bidder", "highest_bidder_id"),
        Index("ix_products_delivery_sweep", "bid_accepted", "product_delivered"),
    )

    # ─────────────────────────────────────────────
    # views
    # ─────────────────────────────────────────────

    @property
    def highest_bid(self) -> Optional[Dict[str, Any]]:
        if self.highest_bid_amount is None:
            return None
        return {
            "amount": self.highest_bid_amount,
            "bidder_id": self.highest_bidder_id,
            "timestamp": self.highest_bid_at,
        }

    @property
    def current_price(self) -> Decimal:
        if self.highest_bid_amount is not None:
            return self.highest_bid_amount
        return self.starting_price

    @property
    def previous_bids(self) -> List["Bid"]:
        # bids are strictly increasing, so the last one is the highest
        if not self.bids:
            return []
        return list(self.bids[:-1])


class Bid(Base):
    """
    Append-only bid history. Never updated.
    """

    __tablename__ = "bids"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id"), nullable=False
    )
    bidder_id: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )

    product = relationship("Product", back_populates="bids")

    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        Index("ix_bids_product_created", "product_id", "created_at"),
        Index("ix_bids_bidder", "bidder_id"),
    )
