# app/services/wallet_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import (
    EscrowAlreadyHeld,
    EscrowNotFound,
    InsufficientFunds,
    InvalidAmount,
    ProductNotFound,
    WalletNotFound,
)
from app.db.types import to_money, utcnow
from app.models.enums import PaymentStatus, ProductStatus, TransactionStatus, TransactionType
from app.models.product import Product
from app.models.wallet import Transaction, Wallet

logger = logging.getLogger(__name__)


def positive_money(value: Any, what: str = "Amount") -> Decimal:
    """
    Parse a caller-supplied amount into a 2dp Decimal > 0.
    Never rounds a non-positive value up.
    """
    try:
        d = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(f"{what} must be a number.")
    if not d.is_finite():
        raise InvalidAmount(f"{what} must be a finite number.")
    if d <= 0:
        raise InvalidAmount(f"{what} must be greater than zero.")
    if d != d.quantize(Decimal("0.01")):
        raise InvalidAmount(f"{what} must have at most 2 decimal places.")
    return to_money(d)


class WalletService:
    """
    Balance / frozen-balance accounting.

    Every mutation is one DB transaction. Balances move through conditional
    UPDATE statements (`balance = balance - :a WHERE balance >= :a`), so
    concurrent callers can never drive a balance negative or lose an update.
    """

    # ─────────────────────────────────────────────
    # READS
    # ─────────────────────────────────────────────

    def get_wallet(self, db: Session, user_id: str) -> Optional[Wallet]:
        return db.get(Wallet, user_id)

    def require_wallet(self, db: Session, user_id: str) -> Wallet:
        w = self.get_wallet(db, user_id)
        if not w:
            raise WalletNotFound(f"Wallet for user {user_id} not found.")
        return w

    def get_transaction(self, db: Session, transaction_id: uuid.UUID) -> Optional[Transaction]:
        return db.get(Transaction, transaction_id)

    def list_transactions(self, db: Session, user_id: str) -> List[Transaction]:
        """
        Money movements the user sent or received, oldest first.
        """
        return list(
            db.execute(
                select(Transaction)
                .where(
                    or_(
                        Transaction.from_user_id == user_id,
                        Transaction.to_user_id == user_id,
                    )
                )
                .order_by(Transaction.created_at.asc(), Transaction.id)
            )
            .scalars()
            .all()
        )

    # ─────────────────────────────────────────────
    # MUTATIONS
    # ─────────────────────────────────────────────

    def initialize_wallet(self, db: Session, user_id: str) -> Wallet:
        """
        Create-or-return. Safe to call repeatedly and concurrently.
        """
        existing = self.get_wallet(db, user_id)
        if existing:
            return existing

        w = Wallet(
            user_id=user_id,
            balance=Decimal("0.00"),
            frozen_balance=Decimal("0.00"),
            currency=get_settings().currency,
        )
        db.add(w)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return self.require_wallet(db, user_id)

        db.refresh(w)
        logger.info("[wallet] initialized wallet user=%s", user_id)
        return w

    def deposit(
        self,
        db: Session,
        *,
        user_id: str,
        amount: Any,
        method: str = "direct",
    ) -> Transaction:
        amt = positive_money(amount)
        now = utcnow()

        res = db.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id)
            .values(balance=Wallet.balance + amt, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            db.rollback()
            raise WalletNotFound(f"Wallet for user {user_id} not found.")

        tx = Transaction(
            type=TransactionType.deposit.value,
            amount=amt,
            currency=get_settings().currency,
            from_user_id=user_id,
            to_user_id=None,
            status=TransactionStatus.completed.value,
            product_id=None,
            created_at=now,
            completed_at=now,
            metadata_json={"method": method},
        )
        db.add(tx)
        db.commit()
        db.refresh(tx)

        logger.info("[wallet] deposit user=%s amount=%s tx=%s", user_id, amt, tx.id)
        return tx

    def _freeze_in_tx(
        self,
        db: Session,
        *,
        payer_id: str,
        payee_id: str,
        amount: Any,
        product: Product,
        now: Optional[datetime] = None,
    ) -> Transaction:
        """
        Escrow hold without committing, so callers can fold it into a larger
        atomic operation (bid acceptance). Caller owns commit/rollback.
        """
        amt = positive_money(amount)
        now = now or utcnow()

        if product.payment_status != PaymentStatus.none.value or product.escrow_transaction_id is not None:
            raise EscrowAlreadyHeld(
                f"Product {product.id} already has escrow {product.escrow_transaction_id} "
                f"({product.payment_status})."
            )

        res = db.execute(
            update(Wallet)
            .where(Wallet.user_id == payer_id, Wallet.balance >= amt)
            .values(
                balance=Wallet.balance - amt,
                frozen_balance=Wallet.frozen_balance + amt,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            if self.get_wallet(db, payer_id) is None:
                raise WalletNotFound(f"Wallet for user {payer_id} not found.")
            raise InsufficientFunds(
                f"Insufficient funds: {amt} required to hold in escrow."
            )

        tx = Transaction(
            type=TransactionType.freeze.value,
            amount=amt,
            currency=get_settings().currency,
            from_user_id=payer_id,
            to_user_id=payee_id,
            status=TransactionStatus.pending.value,
            product_id=product.id,
            created_at=now,
            completed_at=None,
            metadata_json={"bidWinning": True},
        )
        db.add(tx)
        # the transaction row must exist before the product points at it
        db.flush()

        product.payment_status = PaymentStatus.escrow.value
        product.escrow_transaction_id = tx.id
        return tx

    def freeze(
        self,
        db: Session,
        *,
        payer_id: str,
        payee_id: str,
        amount: Any,
        product_id: uuid.UUID,
    ) -> Transaction:
        product = db.execute(
            select(Product).where(Product.id == product_id).with_for_update()
        ).scalar_one_or_none()
        if not product:
            raise ProductNotFound(f"Product {product_id} not found.")

        try:
            tx = self._freeze_in_tx(
                db, payer_id=payer_id, payee_id=payee_id, amount=amount, product=product
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(tx)
        logger.info(
            "[wallet] freeze payer=%s payee=%s amount=%s product=%s tx=%s",
            payer_id, payee_id, tx.amount, product_id, tx.id,
        )
        return tx

    # ─────────────────────────────────────────────
    # ESCROW SETTLEMENT
    # ─────────────────────────────────────────────

    def _ensure_wallet_in_tx(self, db: Session, user_id: str) -> None:
        if self.get_wallet(db, user_id) is None:
            db.add(
                Wallet(
                    user_id=user_id,
                    balance=Decimal("0.00"),
                    frozen_balance=Decimal("0.00"),
                    currency=get_settings().currency,
                )
            )
            db.flush()

    def _settle_in_tx(
        self,
        db: Session,
        *,
        escrow_transaction_id: uuid.UUID,
        outcome: TransactionStatus,
        now: Optional[datetime] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Transaction:
        """
        Move a pending escrow to its single terminal status and move the
        money with it. Does not commit. Raises EscrowNotFound when the
        escrow is missing or another settlement already won.
        """
        now = now or utcnow()

        escrow = db.get(Transaction, escrow_transaction_id)
        if not escrow or escrow.type != TransactionType.freeze.value:
            raise EscrowNotFound(f"Escrow transaction {escrow_transaction_id} not found.")

        # pending -> terminal; whoever commits first wins, the other sees rowcount 0
        res = db.execute(
            update(Transaction)
            .where(
                Transaction.id == escrow_transaction_id,
                Transaction.status == TransactionStatus.pending.value,
            )
            .values(status=outcome.value, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise EscrowNotFound(
                f"Escrow transaction {escrow_transaction_id} is no longer pending."
            )

        amount = escrow.amount
        payer_id = escrow.from_user_id
        payee_id = escrow.to_user_id

        res = db.execute(
            update(Wallet)
            .where(Wallet.user_id == payer_id, Wallet.frozen_balance >= amount)
            .values(frozen_balance=Wallet.frozen_balance - amount, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise WalletNotFound(f"Escrow holder wallet {payer_id} is missing or short.")

        if outcome == TransactionStatus.completed:
            beneficiary = payee_id
            entry_type = TransactionType.release
            self._ensure_wallet_in_tx(db, beneficiary)
        else:
            beneficiary = payer_id
            entry_type = TransactionType.refund

        db.execute(
            update(Wallet)
            .where(Wallet.user_id == beneficiary)
            .values(balance=Wallet.balance + amount, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        entry = Transaction(
            type=entry_type.value,
            amount=amount,
            currency=escrow.currency,
            from_user_id=payer_id,
            to_user_id=beneficiary,
            status=TransactionStatus.completed.value,
            product_id=escrow.product_id,
            escrow_id=escrow.id,
            created_at=now,
            completed_at=now,
            metadata_json=metadata or {},
        )
        db.add(entry)

        if escrow.product_id is not None:
            product = db.execute(
                select(Product).where(Product.id == escrow.product_id).with_for_update()
            ).scalar_one_or_none()
            if product:
                if outcome == TransactionStatus.completed:
                    product.payment_status = PaymentStatus.completed.value
                    product.status = ProductStatus.delivered.value
                    product.product_delivered = True
                    product.delivered_at = now
                else:
                    product.payment_status = PaymentStatus.refunded.value
                    product.status = ProductStatus.expired.value
                    product.delivery_expired_at = now

        db.flush()
        return entry

    def _settle(self, db: Session, **kwargs) -> Transaction:
        try:
            entry = self._settle_in_tx(db, **kwargs)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(entry)
        return entry

    def release(
        self,
        db: Session,
        *,
        escrow_transaction_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Transaction:
        """
        Escrow -> payee. Returns the escrow (freeze) transaction, now completed.
        """
        entry = self._settle(
            db,
            escrow_transaction_id=escrow_transaction_id,
            outcome=TransactionStatus.completed,
            now=now,
        )
        logger.info(
            "[wallet] release escrow=%s amount=%s to=%s",
            escrow_transaction_id, entry.amount, entry.to_user_id,
        )
        return self.get_transaction(db, escrow_transaction_id)

    def refund(
        self,
        db: Session,
        *,
        escrow_transaction_id: uuid.UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Transaction:
        """
        Escrow -> back to payer. Returns the escrow (freeze) transaction, now refunded.
        """
        entry = self._settle(
            db,
            escrow_transaction_id=escrow_transaction_id,
            outcome=TransactionStatus.refunded,
            now=now,
            metadata={"reason": reason} if reason else None,
        )
        logger.info(
            "[wallet] refund escrow=%s amount=%s to=%s reason=%s",
            escrow_transaction_id, entry.amount, entry.to_user_id, reason,
        )
        return self.get_transaction(db, escrow_transaction_id)
