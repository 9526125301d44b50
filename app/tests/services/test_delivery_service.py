from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.errors import EscrowNotFound, NotDeliverable, NotWinner
from app.models.enums import NotificationType, PaymentStatus, ProductStatus, TransactionStatus
from app.models.notification import Notification
from app.models.wallet import Transaction
from app.services.auction_service import AuctionService
from app.services.delivery_service import DeliveryService
from app.services.wallet_service import WalletService
from app.tests.factories import at, create_lot, sold_lot


def wallet(db, user_id):
    db.expire_all()
    w = WalletService().require_wallet(db, user_id)
    return w.balance, w.frozen_balance


def test_only_the_winner_can_confirm(db, market):
    product = sold_lot(db, market)

    with pytest.raises(NotWinner):
        DeliveryService().confirm_delivery(db, product_id=product.id, confirmer_id="farmer-1")
    with pytest.raises(NotWinner):
        DeliveryService().confirm_delivery(db, product_id=product.id, confirmer_id="merchant-1")

    assert wallet(db, "merchant-2") == (Decimal("300.00"), Decimal("200.00"))


def test_confirm_releases_escrow_to_seller(db, market):
    product = sold_lot(db, market, amount="200")

    p = DeliveryService().confirm_delivery(db, product_id=product.id, confirmer_id="merchant-2")

    assert p.status == ProductStatus.delivered.value
    assert p.product_delivered is True
    assert p.delivered_at is not None
    assert p.payment_status == PaymentStatus.completed.value
    assert db.get(Transaction, p.escrow_transaction_id).status == TransactionStatus.completed.value
    assert wallet(db, "merchant-2") == (Decimal("300.00"), Decimal("0.00"))
    assert wallet(db, "farmer-1") == (Decimal("200.00"), Decimal("0.00"))

    released = db.execute(
        select(Notification).where(Notification.type == NotificationType.payment_released.value)
    ).scalars().all()
    assert [n.recipient_id for n in released] == ["farmer-1"]


def test_confirm_twice_is_not_deliverable(db, market):
    product = sold_lot(db, market)
    DeliveryService().confirm_delivery(db, product_id=product.id, confirmer_id="merchant-2")

    with pytest.raises(NotDeliverable):
        DeliveryService().confirm_delivery(db, product_id=product.id, confirmer_id="merchant-2")
    assert wallet(db, "farmer-1") == (Decimal("200.00"), Decimal("0.00"))


def test_confirm_before_acceptance_is_not_deliverable(db, market):
    svc = AuctionService()
    product = create_lot(db)
    svc.place_bid(db, product_id=product.id, bidder_id="merchant-1", amount=150, now=at(1))

    with pytest.raises(NotDeliverable):
        DeliveryService().confirm_delivery(db, product_id=product.id, confirmer_id="merchant-1")


def test_sweep_refunds_unconfirmed_delivery(db, market):
    product = sold_lot(db, market, amount="200")
    svc = AuctionService()

    # window is 48h from acceptance at T0+30m
    assert svc.sweep_expired_deliveries(db, now=at(minutes=30, hours=48)) == []

    expired = svc.sweep_expired_deliveries(db, now=at(minutes=31, hours=48))
    assert expired == [product.id]

    db.expire_all()
    p = svc.require_product(db, product.id)
    assert p.status == ProductStatus.expired.value
    assert p.delivery_expired_at == at(minutes=31, hours=48)
    assert p.payment_status == PaymentStatus.refunded.value
    escrow = db.get(Transaction, p.escrow_transaction_id)
    assert escrow.status == TransactionStatus.refunded.value
    assert wallet(db, "merchant-2") == (Decimal("500.00"), Decimal("0.00"))
    assert wallet(db, "farmer-1") == (Decimal("0.00"), Decimal("0.00"))

    rows = db.execute(
        select(Notification).where(
            Notification.type.in_(
                [NotificationType.payment_refunded.value, NotificationType.delivery_expired.value]
            )
        )
    ).scalars().all()
    assert {(n.type, n.recipient_id) for n in rows} == {
        ("payment_refunded", "merchant-2"),
        ("delivery_expired", "farmer-1"),
    }
    assert {n.originator_id for n in rows} == {"system"}


def test_sweep_is_idempotent(db, market):
    product = sold_lot(db, market)
    svc = AuctionService()
    later = at(hours=60)

    assert svc.sweep_expired_deliveries(db, now=later) == [product.id]
    assert svc.sweep_expired_deliveries(db, now=later) == []
    assert wallet(db, "merchant-2") == (Decimal("500.00"), Decimal("0.00"))


def test_confirm_after_sweep_fails_without_double_refund(db, market):
    product = sold_lot(db, market)
    AuctionService().sweep_expired_deliveries(db, now=at(hours=60))

    with pytest.raises(EscrowNotFound):
        DeliveryService().confirm_delivery(db, product_id=product.id, confirmer_id="merchant-2")

    assert wallet(db, "merchant-2") == (Decimal("500.00"), Decimal("0.00"))
    assert wallet(db, "farmer-1") == (Decimal("0.00"), Decimal("0.00"))


def test_sweep_skips_delivered_products(db, market):
    product = sold_lot(db, market)
    DeliveryService().confirm_delivery(db, product_id=product.id, confirmer_id="merchant-2")

    assert AuctionService().sweep_expired_deliveries(db, now=at(hours=60)) == []
    assert wallet(db, "farmer-1") == (Decimal("200.00"), Decimal("0.00"))


def test_sweep_loses_race_to_confirmation(db, market, session_factory):
    product = sold_lot(db, market)

    class ConfirmFirst(AuctionService):
        # delivery lands between the sweep's scan and its settlement
        def _expire_one(self, db, product_id, **kw):
            other = session_factory()
            try:
                DeliveryService().confirm_delivery(other, product_id=product_id, confirmer_id="merchant-2")
            finally:
                other.close()
            return super()._expire_one(db, product_id, **kw)

    assert ConfirmFirst().sweep_expired_deliveries(db, now=at(hours=60)) == []

    db.expire_all()
    p = AuctionService().require_product(db, product.id)
    assert p.status == ProductStatus.delivered.value
    assert db.get(Transaction, p.escrow_transaction_id).status == TransactionStatus.completed.value
    assert wallet(db, "farmer-1") == (Decimal("200.00"), Decimal("0.00"))
    assert wallet(db, "merchant-2") == (Decimal("300.00"), Decimal("0.00"))
