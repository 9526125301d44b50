import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.errors import (
    EscrowAlreadyHeld,
    EscrowNotFound,
    InsufficientFunds,
    InvalidAmount,
    WalletNotFound,
)
from app.core.types import UserRole
from app.models.enums import PaymentStatus, ProductStatus, TransactionStatus, TransactionType
from app.models.product import Product
from app.models.wallet import Transaction, Wallet
from app.services.auction_service import AuctionService
from app.services.delivery_service import DeliveryService
from app.services.wallet_service import WalletService, positive_money
from app.tests.factories import at, create_lot, register, sold_lot


def totals(db, *user_ids):
    db.expire_all()
    out = Decimal("0")
    for uid in user_ids:
        w = db.get(Wallet, uid)
        out += w.balance + w.frozen_balance
    return out


def test_initialize_wallet_is_idempotent(db):
    svc = WalletService()
    w1 = svc.initialize_wallet(db, "u-1")
    w2 = svc.initialize_wallet(db, "u-1")

    assert w1.user_id == w2.user_id == "u-1"
    assert w2.balance == Decimal("0.00")
    assert w2.frozen_balance == Decimal("0.00")
    assert w2.currency == "INR"
    assert len(db.execute(select(Wallet)).scalars().all()) == 1


def test_deposit_credits_balance_and_logs_completed_transaction(db):
    svc = WalletService()
    svc.initialize_wallet(db, "u-1")

    tx = svc.deposit(db, user_id="u-1", amount="250.50")

    assert tx.type == TransactionType.deposit.value
    assert tx.status == TransactionStatus.completed.value
    assert tx.amount == Decimal("250.50")
    assert tx.metadata_json == {"method": "direct"}
    db.expire_all()
    assert svc.require_wallet(db, "u-1").balance == Decimal("250.50")


@pytest.mark.parametrize("amount", [0, -5, "0.00", "abc", "NaN", "1.005"])
def test_deposit_rejects_invalid_amount_without_writing(db, amount):
    svc = WalletService()
    svc.initialize_wallet(db, "u-1")

    with pytest.raises(InvalidAmount):
        svc.deposit(db, user_id="u-1", amount=amount)

    assert svc.list_transactions(db, "u-1") == []


def test_deposit_into_missing_wallet_fails(db):
    with pytest.raises(WalletNotFound):
        WalletService().deposit(db, user_id="ghost", amount=10)


def test_positive_money_never_rounds_up():
    assert positive_money("0.10") == Decimal("0.10")
    assert positive_money(0.1) == Decimal("0.10")
    with pytest.raises(InvalidAmount):
        positive_money("0.001")


def test_freeze_moves_funds_and_links_product(db):
    register(db, "farmer-1", UserRole.farmer)
    register(db, "merchant-1", UserRole.merchant, deposit=300)
    product = create_lot(db)
    svc = WalletService()

    tx = svc.freeze(db, payer_id="merchant-1", payee_id="farmer-1", amount=200, product_id=product.id)

    assert tx.type == TransactionType.freeze.value
    assert tx.status == TransactionStatus.pending.value
    assert tx.metadata_json == {"bidWinning": True}
    db.expire_all()
    w = svc.require_wallet(db, "merchant-1")
    assert (w.balance, w.frozen_balance) == (Decimal("100.00"), Decimal("200.00"))
    p = db.get(type(product), product.id)
    assert p.payment_status == PaymentStatus.escrow.value
    assert p.escrow_transaction_id == tx.id


def test_freeze_insufficient_funds_leaves_no_trace(db):
    register(db, "farmer-1", UserRole.farmer)
    register(db, "merchant-1", UserRole.merchant, deposit=50)
    product = create_lot(db)
    svc = WalletService()

    with pytest.raises(InsufficientFunds):
        svc.freeze(db, payer_id="merchant-1", payee_id="farmer-1", amount=200, product_id=product.id)

    db.expire_all()
    w = svc.require_wallet(db, "merchant-1")
    assert (w.balance, w.frozen_balance) == (Decimal("50.00"), Decimal("0.00"))
    p = db.get(type(product), product.id)
    assert p.payment_status == PaymentStatus.none.value
    assert p.escrow_transaction_id is None
    pending = db.execute(
        select(Transaction).where(Transaction.type == TransactionType.freeze.value)
    ).scalars().all()
    assert pending == []


def test_second_freeze_on_same_lot_is_refused(db):
    register(db, "farmer-1", UserRole.farmer)
    register(db, "merchant-1", UserRole.merchant, deposit=300)
    register(db, "merchant-2", UserRole.merchant, deposit=300)
    product = create_lot(db)
    svc = WalletService()
    first = svc.freeze(db, payer_id="merchant-1", payee_id="farmer-1", amount=200, product_id=product.id)

    with pytest.raises(EscrowAlreadyHeld):
        svc.freeze(db, payer_id="merchant-2", payee_id="farmer-1", amount=100, product_id=product.id)

    db.expire_all()
    assert db.get(Product, product.id).escrow_transaction_id == first.id
    w = svc.require_wallet(db, "merchant-2")
    assert (w.balance, w.frozen_balance) == (Decimal("300.00"), Decimal("0.00"))
    assert len(
        db.execute(select(Transaction).where(Transaction.type == TransactionType.freeze.value)).scalars().all()
    ) == 1

    # the original hold is still the one that settles
    svc.refund(db, escrow_transaction_id=first.id)
    db.expire_all()
    w = svc.require_wallet(db, "merchant-1")
    assert (w.balance, w.frozen_balance) == (Decimal("300.00"), Decimal("0.00"))

    # a settled lot cannot be re-escrowed either
    with pytest.raises(EscrowAlreadyHeld):
        svc.freeze(db, payer_id="merchant-2", payee_id="farmer-1", amount=100, product_id=product.id)


def test_freeze_without_payer_wallet_reports_wallet_not_found(db):
    register(db, "farmer-1", UserRole.farmer)
    product = create_lot(db)

    with pytest.raises(WalletNotFound):
        WalletService().freeze(db, payer_id="nobody", payee_id="farmer-1", amount=10, product_id=product.id)


def test_release_pays_seller_and_conserves_value(db):
    register(db, "farmer-1", UserRole.farmer)
    register(db, "merchant-1", UserRole.merchant, deposit=300)
    product = create_lot(db)
    svc = WalletService()
    before = totals(db, "farmer-1", "merchant-1")

    tx = svc.freeze(db, payer_id="merchant-1", payee_id="farmer-1", amount=200, product_id=product.id)
    assert totals(db, "farmer-1", "merchant-1") == before

    escrow = svc.release(db, escrow_transaction_id=tx.id)

    assert escrow.status == TransactionStatus.completed.value
    assert escrow.completed_at is not None
    assert totals(db, "farmer-1", "merchant-1") == before
    assert svc.require_wallet(db, "farmer-1").balance == Decimal("200.00")
    assert svc.require_wallet(db, "merchant-1").frozen_balance == Decimal("0.00")

    p = db.get(type(product), product.id)
    assert p.status == ProductStatus.delivered.value
    assert p.payment_status == PaymentStatus.completed.value
    assert p.product_delivered is True


def test_release_creates_missing_payee_wallet(db):
    register(db, "merchant-1", UserRole.merchant, deposit=300)
    product = create_lot(db, seller_id="farmer-new")
    svc = WalletService()
    assert svc.get_wallet(db, "farmer-new") is None

    tx = svc.freeze(db, payer_id="merchant-1", payee_id="farmer-new", amount=120, product_id=product.id)
    svc.release(db, escrow_transaction_id=tx.id)

    assert svc.require_wallet(db, "farmer-new").balance == Decimal("120.00")


def test_refund_returns_funds_to_payer(db):
    register(db, "farmer-1", UserRole.farmer)
    register(db, "merchant-1", UserRole.merchant, deposit=300)
    product = create_lot(db)
    svc = WalletService()

    tx = svc.freeze(db, payer_id="merchant-1", payee_id="farmer-1", amount=200, product_id=product.id)
    escrow = svc.refund(db, escrow_transaction_id=tx.id, reason="test")

    assert escrow.status == TransactionStatus.refunded.value
    db.expire_all()
    w = svc.require_wallet(db, "merchant-1")
    assert (w.balance, w.frozen_balance) == (Decimal("300.00"), Decimal("0.00"))
    assert svc.require_wallet(db, "farmer-1").balance == Decimal("0.00")
    assert db.get(type(product), product.id).payment_status == PaymentStatus.refunded.value


def test_refund_expires_sold_lot(db, market):
    product = sold_lot(db, market, amount="200")

    WalletService().refund(db, escrow_transaction_id=product.escrow_transaction_id, now=at(hours=1))

    db.expire_all()
    p = db.get(Product, product.id)
    assert p.status == ProductStatus.expired.value
    assert p.payment_status == PaymentStatus.refunded.value
    assert p.delivery_expired_at == at(hours=1)
    assert p.product_delivered is False

    # nothing left for the deadline sweep or the winner to settle
    assert AuctionService().sweep_expired_deliveries(db, now=at(hours=100)) == []
    with pytest.raises(EscrowNotFound):
        DeliveryService().confirm_delivery(db, product_id=product.id, confirmer_id="merchant-2")

    db.expire_all()
    w = WalletService().require_wallet(db, "merchant-2")
    assert (w.balance, w.frozen_balance) == (Decimal("500.00"), Decimal("0.00"))
    assert WalletService().require_wallet(db, "farmer-1").balance == Decimal("0.00")


def test_release_and_refund_are_mutually_exclusive(db):
    register(db, "farmer-1", UserRole.farmer)
    register(db, "merchant-1", UserRole.merchant, deposit=300)
    product = create_lot(db)
    svc = WalletService()
    tx = svc.freeze(db, payer_id="merchant-1", payee_id="farmer-1", amount=200, product_id=product.id)

    svc.release(db, escrow_transaction_id=tx.id)

    with pytest.raises(EscrowNotFound):
        svc.refund(db, escrow_transaction_id=tx.id)
    with pytest.raises(EscrowNotFound):
        svc.release(db, escrow_transaction_id=tx.id)

    db.expire_all()
    assert svc.require_wallet(db, "farmer-1").balance == Decimal("200.00")
    assert svc.require_wallet(db, "merchant-1").balance == Decimal("100.00")


def test_stale_reader_loses_settlement_race(db, session_factory):
    register(db, "farmer-1", UserRole.farmer)
    register(db, "merchant-1", UserRole.merchant, deposit=300)
    product = create_lot(db)
    svc = WalletService()
    tx = svc.freeze(db, payer_id="merchant-1", payee_id="farmer-1", amount=200, product_id=product.id)

    # the other session already loaded the escrow while it was pending
    other = session_factory()
    try:
        assert other.get(Transaction, tx.id).status == TransactionStatus.pending.value

        svc.release(db, escrow_transaction_id=tx.id)

        with pytest.raises(EscrowNotFound):
            svc.refund(other, escrow_transaction_id=tx.id)
    finally:
        other.close()

    db.expire_all()
    assert db.get(Transaction, tx.id).status == TransactionStatus.completed.value
    assert svc.require_wallet(db, "merchant-1").balance == Decimal("100.00")


def test_settlement_of_unknown_escrow(db):
    with pytest.raises(EscrowNotFound):
        WalletService().release(db, escrow_transaction_id=uuid.uuid4())


def test_history_lists_sent_and_received_oldest_first(db):
    register(db, "farmer-1", UserRole.farmer)
    register(db, "merchant-1", UserRole.merchant, deposit=300)
    product = create_lot(db)
    svc = WalletService()
    tx = svc.freeze(db, payer_id="merchant-1", payee_id="farmer-1", amount=200, product_id=product.id)
    svc.release(db, escrow_transaction_id=tx.id)

    merchant_types = [t.type for t in svc.list_transactions(db, "merchant-1")]
    farmer_types = [t.type for t in svc.list_transactions(db, "farmer-1")]

    assert merchant_types == ["deposit", "freeze", "release"]
    assert farmer_types == ["freeze", "release"]

    release = svc.list_transactions(db, "farmer-1")[-1]
    assert release.escrow_id == tx.id
    assert release.to_user_id == "farmer-1"
