# app/services/auction_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import get_settings
from app.core.errors import (
    AuctionClosed,
    BidTooLow,
    EscrowNotFound,
    InvalidAmount,
    InvalidProduct,
    NoBidToRespond,
    NotAllowed,
    NotOwner,
    ProductNotFound,
)
from app.core.types import UserRole
from app.db.types import utcnow
from app.models.enums import NotificationType, ProductStatus, TransactionStatus
from app.models.product import Bid, Product
from app.services.notification_service import (
    NotificationDraft,
    NotificationService,
    format_money,
)
from app.services.wallet_service import WalletService, positive_money

logger = logging.getLogger(__name__)

SYSTEM_ORIGINATOR = "system"

# lots a seller can still respond to: bidding open, or ended with a bid pending a decision
RESPONDABLE = (ProductStatus.active.value, ProductStatus.closed.value)


def _first_image(product: Product) -> Optional[str]:
    return product.images[0] if product.images else None


class AuctionService:
    """
    Single-item ascending auctions.

    active --bid--> active
    active|closed --accept--> sold (escrow frozen in the same DB transaction)
    active|closed --reject--> unchanged
    active --end_time passed--> closed
    sold --confirm--> delivered      (DeliveryService)
    sold --window elapsed--> expired (sweep_expired_deliveries)
    """

    # concurrent-commit retries before giving up on a bid
    MAX_BID_ATTEMPTS = 3

    def __init__(
        self,
        wallets: Optional[WalletService] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.wallets = wallets or WalletService()
        self.notifications = notifications or NotificationService()

    # ─────────────────────────────────────────────
    # PRODUCTS
    # ─────────────────────────────────────────────

    def create_product(
        self,
        db: Session,
        *,
        seller_id: str,
        name: str,
        starting_price: Any,
        quantity: Any,
        unit_type: str,
        duration_hours: int,
        description: str = "",
        grade: str = "",
        images: Optional[Sequence[str]] = None,
        now: Optional[datetime] = None,
    ) -> Product:
        name = (name or "").strip()
        unit_type = (unit_type or "").strip()
        if not name:
            raise InvalidProduct("Product name is required.")
        if not unit_type:
            raise InvalidProduct("Unit type is required.")

        try:
            price = positive_money(starting_price, "Starting price")
            qty = positive_money(quantity, "Quantity")
        except InvalidAmount as e:
            raise InvalidProduct(e.message)

        if isinstance(duration_hours, bool) or not isinstance(duration_hours, int) or duration_hours <= 0:
            raise InvalidProduct("Duration must be a whole number of hours greater than zero.")

        image_list = list(images or [])
        if any(not isinstance(i, str) or not i for i in image_list):
            raise InvalidProduct("Images must be non-empty URL strings.")

        now = now or utcnow()
        product = Product(
            seller_id=seller_id,
            name=name,
            description=(description or "").strip(),
            starting_price=price,
            quantity=qty,
            unit_type=unit_type,
            grade=(grade or "").strip(),
            images=image_list,
            duration_hours=duration_hours,
            created_at=now,
            end_time=now + timedelta(hours=duration_hours),
            status=ProductStatus.active.value,
        )
        db.add(product)
        db.commit()
        db.refresh(product)

        logger.info(
            "[auction] product created id=%s seller=%s price=%s ends=%s",
            product.id, seller_id, price, product.end_time.isoformat(),
        )

        self.notifications.notify_safely(
            db,
            [
                NotificationDraft(
                    type=NotificationType.new_product,
                    title="New Product Available",
                    message=f'A new product "{product.name}" is available for bidding!',
                    recipient_role=UserRole.merchant,
                    originator_id=seller_id,
                    product_id=product.id,
                    image=_first_image(product),
                )
            ],
        )
        return product

    def get_product(self, db: Session, product_id: uuid.UUID) -> Optional[Product]:
        return db.get(Product, product_id)

    def require_product(self, db: Session, product_id: uuid.UUID) -> Product:
        p = self.get_product(db, product_id)
        if not p:
            raise ProductNotFound(f"Product {product_id} not found.")
        return p

    def list_active_products(self, db: Session, *, limit: int = 200) -> List[Product]:
        return list(
            db.execute(
                select(Product)
                .where(Product.status == ProductStatus.active.value)
                .order_by(Product.created_at.desc())
                .limit(limit)
            )
            .scalars()
            .all()
        )

    def list_seller_products(
        self,
        db: Session,
        seller_id: str,
        *,
        status: Optional[ProductStatus] = None,
    ) -> List[Product]:
        stmt = select(Product).where(Product.seller_id == seller_id)
        if status is not None:
            stmt = stmt.where(Product.status == ProductStatus(status).value)
        return list(db.execute(stmt.order_by(Product.created_at.desc())).scalars().all())

    def list_bidder_products(self, db: Session, bidder_id: str) -> List[Product]:
        """
        Lots the user has bid on, in any state.
        """
        bid_on = select(Bid.product_id).where(Bid.bidder_id == bidder_id)
        return list(
            db.execute(
                select(Product)
                .where(Product.id.in_(bid_on))
                .order_by(Product.created_at.desc())
            )
            .scalars()
            .all()
        )

    def list_merchant_feed(self, db: Session, merchant_id: str) -> List[Product]:
        """
        Open lots plus everything the merchant currently leads or has won.
        """
        return list(
            db.execute(
                select(Product)
                .where(
                    or_(
                        Product.status == ProductStatus.active.value,
                        Product.highest_bidder_id == merchant_id,
                    )
                )
                .order_by(Product.created_at.desc())
            )
            .scalars()
            .all()
        )

    def _lock_product(self, db: Session, product_id: uuid.UUID) -> Optional[Product]:
        return db.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    # ─────────────────────────────────────────────
    # BIDDING
    # ─────────────────────────────────────────────

    def place_bid(
        self,
        db: Session,
        *,
        product_id: uuid.UUID,
        bidder_id: str,
        amount: Any,
        now: Optional[datetime] = None,
    ) -> Bid:
        """
        Open while now <= end_time. A bid after end_time closes the lot and
        fails with AuctionClosed. Amount must strictly exceed the current
        price (highest bid, else starting price).
        """
        amt = positive_money(amount, "Bid amount")

        for attempt in range(1, self.MAX_BID_ATTEMPTS + 1):
            at = now or utcnow()

            product = self._lock_product(db, product_id)
            if not product:
                db.rollback()
                raise ProductNotFound(f"Product {product_id} not found.")

            if product.seller_id == bidder_id:
                db.rollback()
                raise NotAllowed("Sellers cannot bid on their own products.")

            if product.status != ProductStatus.active.value:
                db.rollback()
                raise AuctionClosed(f"Auction is {product.status}.")

            if at > product.end_time:
                product.status = ProductStatus.closed.value
                try:
                    db.commit()
                except StaleDataError:
                    db.rollback()
                else:
                    logger.info("[auction] closed on late bid product=%s", product_id)
                raise AuctionClosed("Auction has ended.")

            floor = product.current_price
            if amt <= floor:
                db.rollback()
                raise BidTooLow(
                    f"Your bid must be higher than the current price ({floor})."
                )

            earlier_bidders = {b.bidder_id for b in product.bids}

            bid = Bid(bidder_id=bidder_id, amount=amt, created_at=at)
            product.bids.append(bid)
            product.highest_bid_amount = amt
            product.highest_bidder_id = bidder_id
            product.highest_bid_at = at

            try:
                db.commit()
            except StaleDataError:
                # another bid committed first; re-validate against the new row
                db.rollback()
                logger.info(
                    "[auction] bid conflict product=%s bidder=%s attempt=%d",
                    product_id, bidder_id, attempt,
                )
                continue
            break
        else:
            raise BidTooLow("A higher bid was placed concurrently; please retry.")

        db.refresh(bid)
        logger.info(
            "[auction] bid placed product=%s bidder=%s amount=%s",
            product_id, bidder_id, amt,
        )

        self.notifications.notify_safely(
            db, self._bid_drafts(product, bidder_id, amt, earlier_bidders)
        )
        return bid

    def _bid_drafts(
        self,
        product: Product,
        bidder_id: str,
        amount: Decimal,
        earlier_bidders: set,
    ) -> List[NotificationDraft]:
        price = format_money(amount)
        image = _first_image(product)
        drafts = [
            NotificationDraft(
                type=NotificationType.new_bid,
                title="New Bid Received",
                message=f'You received a new bid of {price} on your product "{product.name}"',
                recipient_id=product.seller_id,
                originator_id=bidder_id,
                product_id=product.id,
                image=image,
            )
        ]
        for other in sorted(earlier_bidders - {bidder_id}):
            drafts.append(
                NotificationDraft(
                    type=NotificationType.outbid,
                    title="Product Outbid",
                    message=f'Someone placed a higher bid ({price}) on "{product.name}"',
                    recipient_id=other,
                    originator_id=bidder_id,
                    product_id=product.id,
                    image=image,
                )
            )
        drafts.append(
            NotificationDraft(
                type=NotificationType.price_update,
                title="Price Update",
                message=f'"{product.name}" now has a highest bid of {price}',
                recipient_role=UserRole.merchant,
                originator_id=bidder_id,
                product_id=product.id,
                image=image,
            )
        )
        return drafts

    def respond_to_bid(
        self,
        db: Session,
        *,
        product_id: uuid.UUID,
        seller_id: str,
        accept: bool,
        now: Optional[datetime] = None,
    ) -> Product:
        """
        Accept freezes the winner's funds in the same DB transaction; if the
        freeze fails nothing about the lot changes.
        """
        now = now or utcnow()

        product = self._lock_product(db, product_id)
        if not product:
            db.rollback()
            raise ProductNotFound(f"Product {product_id} not found.")

        if product.highest_bid_amount is None:
            db.rollback()
            raise NoBidToRespond("No bid exists on this product.")

        if product.seller_id != seller_id:
            db.rollback()
            raise NotOwner("Only the product owner can accept or reject bids.")

        if product.status not in RESPONDABLE:
            db.rollback()
            raise AuctionClosed(f"Product is already {product.status}.")

        winner_id = product.highest_bidder_id
        amount = product.highest_bid_amount

        try:
            if accept:
                self.wallets._freeze_in_tx(
                    db,
                    payer_id=winner_id,
                    payee_id=seller_id,
                    amount=amount,
                    product=product,
                    now=now,
                )
                product.status = ProductStatus.sold.value
                product.bid_accepted = True
            else:
                product.bid_accepted = False
            product.bid_responded_at = now
            db.commit()
        except StaleDataError:
            # a bid landed after we read the lot; the seller must see it first
            db.rollback()
            logger.info("[auction] respond conflict product=%s seller=%s", product_id, seller_id)
            current = self.require_product(db, product_id)
            if current.status not in RESPONDABLE:
                raise AuctionClosed(f"Product is already {current.status}.")
            raise BidTooLow("A higher bid was placed while you were responding; please review it.")
        except Exception:
            db.rollback()
            raise

        db.refresh(product)
        logger.info(
            "[auction] bid %s product=%s winner=%s amount=%s",
            "accepted" if accept else "rejected", product_id, winner_id, amount,
        )

        if accept:
            draft = NotificationDraft(
                type=NotificationType.bid_accepted,
                title="Bid Accepted",
                message=(
                    f"Your bid of {format_money(amount)} for "
                    f'"{product.name}" has been accepted!'
                ),
                recipient_id=winner_id,
                originator_id=seller_id,
                product_id=product.id,
                image=_first_image(product),
            )
        else:
            draft = NotificationDraft(
                type=NotificationType.bid_rejected,
                title="Bid Rejected",
                message=f'Your bid for "{product.name}" was not accepted.',
                recipient_id=winner_id,
                originator_id=seller_id,
                product_id=product.id,
                image=_first_image(product),
            )
        self.notifications.notify_safely(db, [draft])
        return product

    # ─────────────────────────────────────────────
    # MAINTENANCE
    # ─────────────────────────────────────────────

    def close_ended_auctions(self, db: Session, *, now: Optional[datetime] = None) -> int:
        """
        active lots whose end_time has passed -> closed. Returns how many moved.
        """
        now = now or utcnow()
        res = db.execute(
            update(Product)
            .where(
                Product.status == ProductStatus.active.value,
                Product.end_time < now,
            )
            .values(status=ProductStatus.closed.value, version=Product.version + 1)
            .execution_options(synchronize_session=False)
        )
        db.commit()

        closed = res.rowcount or 0
        if closed:
            logger.info("[auction] closed %d ended auction(s)", closed)
        return closed

    def sweep_expired_deliveries(
        self,
        db: Session,
        *,
        now: Optional[datetime] = None,
    ) -> List[uuid.UUID]:
        """
        Refund sold lots whose delivery window elapsed without confirmation.
        Safe to run repeatedly and alongside confirm_delivery: a lot whose
        escrow already settled is skipped. Returns the ids that expired.
        """
        now = now or utcnow()
        cutoff = now - timedelta(hours=get_settings().delivery_window_hours)

        candidates = list(
            db.execute(
                select(Product.id)
                .where(
                    Product.status == ProductStatus.sold.value,
                    Product.bid_accepted.is_(True),
                    Product.product_delivered.is_(False),
                    Product.bid_responded_at < cutoff,
                )
                .order_by(Product.bid_responded_at)
            )
            .scalars()
            .all()
        )
        db.rollback()

        expired: List[uuid.UUID] = []
        for pid in candidates:
            try:
                product = self._expire_one(db, pid, cutoff=cutoff, now=now)
            except (EscrowNotFound, StaleDataError) as e:
                db.rollback()
                logger.info("[auction] sweep skipped product=%s reason=%s", pid, e)
                continue
            if product is None:
                continue

            expired.append(pid)
            self.notifications.notify_safely(db, self._expiry_drafts(product))

        if expired:
            logger.info("[auction] delivery sweep expired %d product(s)", len(expired))
        return expired

    def _expire_one(
        self,
        db: Session,
        product_id: uuid.UUID,
        *,
        cutoff: datetime,
        now: datetime,
    ) -> Optional[Product]:
        product = self._lock_product(db, product_id)
        if (
            product is None
            or product.status != ProductStatus.sold.value
            or product.product_delivered
            or product.bid_responded_at is None
            or product.bid_responded_at >= cutoff
        ):
            db.rollback()
            return None

        if product.escrow_transaction_id is None:
            db.rollback()
            logger.warning("[auction] sold product without escrow product=%s", product_id)
            return None

        try:
            self.wallets._settle_in_tx(
                db,
                escrow_transaction_id=product.escrow_transaction_id,
                outcome=TransactionStatus.refunded,
                now=now,
                metadata={"reason": "delivery_deadline_passed"},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(product)
        logger.info(
            "[auction] delivery expired product=%s refunded=%s to=%s",
            product_id, product.highest_bid_amount, product.highest_bidder_id,
        )
        return product

    def _expiry_drafts(self, product: Product) -> List[NotificationDraft]:
        image = _first_image(product)
        return [
            NotificationDraft(
                type=NotificationType.payment_refunded,
                title="Payment Refunded",
                message=(
                    f'Your payment for "{product.name}" has been refunded '
                    "due to delivery deadline expiry."
                ),
                recipient_id=product.highest_bidder_id,
                originator_id=SYSTEM_ORIGINATOR,
                product_id=product.id,
                image=image,
            ),
            NotificationDraft(
                type=NotificationType.delivery_expired,
                title="Delivery Deadline Missed",
                message=(
                    f'The delivery deadline for "{product.name}" has expired. '
                    "Payment was refunded to buyer."
                ),
                recipient_id=product.seller_id,
                originator_id=SYSTEM_ORIGINATOR,
                product_id=product.id,
                image=image,
            ),
        ]
