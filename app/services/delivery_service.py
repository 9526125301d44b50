# app/services/delivery_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.errors import EscrowNotFound, NotDeliverable, NotWinner, ProductNotFound
from app.db.types import utcnow
from app.models.enums import NotificationType, ProductStatus
from app.models.product import Product
from app.services.notification_service import (
    NotificationDraft,
    NotificationService,
    format_money,
)
from app.services.wallet_service import WalletService

logger = logging.getLogger(__name__)


class DeliveryService:
    """
    Winner confirms receipt -> escrow released to the seller.

    The product flags and the wallet movement commit together inside
    WalletService.release; this class only gates who may trigger it.
    """

    def __init__(
        self,
        wallets: Optional[WalletService] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.wallets = wallets or WalletService()
        self.notifications = notifications or NotificationService()

    def confirm_delivery(
        self,
        db: Session,
        *,
        product_id: uuid.UUID,
        confirmer_id: str,
        now: Optional[datetime] = None,
    ) -> Product:
        now = now or utcnow()

        product = db.get(Product, product_id)
        if not product:
            raise ProductNotFound(f"Product {product_id} not found.")

        if product.highest_bidder_id is None or product.highest_bidder_id != confirmer_id:
            raise NotWinner("Only the winning bidder can confirm receipt.")

        if product.status == ProductStatus.expired.value:
            # the sweep already refunded this escrow
            raise EscrowNotFound("Delivery window expired; payment was refunded.")

        if not product.bid_accepted or product.product_delivered:
            raise NotDeliverable(
                "Bid has not been accepted yet." if not product.bid_accepted
                else "Product was already delivered."
            )

        if product.escrow_transaction_id is None:
            raise EscrowNotFound(f"No escrow held for product {product_id}.")

        escrow = self.wallets.release(
            db, escrow_transaction_id=product.escrow_transaction_id, now=now
        )

        product = db.get(Product, product_id)
        logger.info(
            "[delivery] confirmed product=%s by=%s released=%s",
            product_id, confirmer_id, escrow.amount,
        )

        self.notifications.notify_safely(
            db,
            [
                NotificationDraft(
                    type=NotificationType.payment_released,
                    title="Payment Released",
                    message=(
                        f"Payment of {format_money(escrow.amount)} for "
                        f'"{product.name}" has been released to you!'
                    ),
                    recipient_id=product.seller_id,
                    originator_id=confirmer_id,
                    product_id=product.id,
                    image=product.images[0] if product.images else None,
                )
            ],
        )
        return product
