#app/models/enums.py
from __future__ import annotations
from enum import Enum


class ProductStatus(str, Enum):
    active = "active"
    sold = "sold"
    delivered = "delivered"
    expired = "expired"
    closed = "closed"


class PaymentStatus(str, Enum):
    none = "none"
    escrow = "escrow"
    completed = "completed"
    refunded = "refunded"


class TransactionType(str, Enum):
    deposit = "deposit"
    freeze = "freeze"
    release = "release"
    refund = "refund"


class TransactionStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    refunded = "refunded"


class NotificationType(str, Enum):
    new_product = "new_product"
    new_bid = "new_bid"
    outbid = "outbid"
    price_update = "price_update"
    bid_accepted = "bid_accepted"
    bid_rejected = "bid_rejected"
    payment_released = "payment_released"
    payment_refunded = "payment_refunded"
    delivery_expired = "delivery_expired"
    chat = "chat"
    test = "test"
