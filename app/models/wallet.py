# app/models/wallet.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import String, Uuid, ForeignKey, CheckConstraint, Index, func, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.db.types import JSONDoc, Money, UTCDateTime, utcnow
from app.models.enums import TransactionStatus


class Wallet(Base):
    """
    One wallet per user, keyed by user id.
    balance = spendable funds, frozen_balance = funds held in escrow.
    """

    __tablename__ = "wallets"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    balance: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0.00"), server_default=text("0")
    )
    frozen_balance: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=Decimal("0.00"), server_default=text("0")
    )
    currency: Mapped[str] = mapped_column(
        String(8), nullable=False, server_default=text("'INR'")
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="balance_nonnegative"),
        CheckConstraint("frozen_balance >= 0", name="frozen_nonnegative"),
    )


class Transaction(Base):
    """
    Append-only money movement log.

    A `freeze` row is the escrow record: it is created `pending` and moves to
    exactly one of `completed` (released to payee) or `refunded` (returned to
    payer). `deposit`, `release` and `refund` rows are written already final.
    """

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    type: Mapped[str] = mapped_column(String(16), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(8), nullable=False, server_default=text("'INR'")
    )

    from_user_id: Mapped[str] = mapped_column(String(128), nullable=False)
    to_user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=TransactionStatus.pending.value
    )

    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("products.id"), nullable=True
    )
    # release/refund rows point at the freeze row they settled
    escrow_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("transactions.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    metadata_json: Mapped[Dict[str, Any]] = mapped_column(
        JSONDoc, nullable=False, default=dict
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="amount_positive"),
        CheckConstraint(
            "type IN ('deposit', 'freeze', 'release', 'refund')", name="type_valid"
        ),
        CheckConstraint(
            "status IN ('pending', 'completed', 'refunded')", name="status_valid"
        ),
        Index("ix_transactions_from_created", "from_user_id", "created_at"),
        Index("ix_transactions_to_created", "to_user_id", "created_at"),
        Index("ix_transactions_product", "product_id"),
    )
