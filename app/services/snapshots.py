# app/services/snapshots.py
"""
JSON-ready views of persisted rows.

Shared by the HTTP routers and the live feeds so both emit the same shape,
and so feed snapshots can be compared with == to detect changes.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from app.models.product import Bid, Product
from app.models.rating import Rating
from app.models.wallet import Transaction, Wallet
from app.services.notification_service import NotificationView


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def _money(d: Optional[Decimal]) -> Optional[str]:
    # strings keep the 2dp exactly; floats would not
    return None if d is None else str(d)


def _id(v) -> Optional[str]:
    return None if v is None else str(v)


def bid_snapshot(b: Bid) -> Dict[str, Any]:
    return {
        "id": str(b.id),
        "product_id": str(b.product_id),
        "bidder_id": b.bidder_id,
        "amount": _money(b.amount),
        "created_at": _iso(b.created_at),
    }


def product_snapshot(p: Product, *, with_bids: bool = False) -> Dict[str, Any]:
    highest = p.highest_bid
    out = {
        "id": str(p.id),
        "seller_id": p.seller_id,
        "name": p.name,
        "description": p.description,
        "starting_price": _money(p.starting_price),
        "quantity": _money(p.quantity),
        "unit_type": p.unit_type,
        "grade": p.grade,
        "images": list(p.images or []),
        "duration_hours": p.duration_hours,
        "created_at": _iso(p.created_at),
        "end_time": _iso(p.end_time),
        "status": p.status,
        "current_price": _money(p.current_price),
        "highest_bid": (
            {
                "amount": _money(highest["amount"]),
                "bidder_id": highest["bidder_id"],
                "timestamp": _iso(highest["timestamp"]),
            }
            if highest
            else None
        ),
        "bid_accepted": bool(p.bid_accepted),
        "bid_responded_at": _iso(p.bid_responded_at),
        "product_delivered": bool(p.product_delivered),
        "delivered_at": _iso(p.delivered_at),
        "delivery_expired_at": _iso(p.delivery_expired_at),
        "payment_status": p.payment_status,
        "escrow_transaction_id": _id(p.escrow_transaction_id),
        "version": p.version,
    }
    if with_bids:
        out["previous_bids"] = [bid_snapshot(b) for b in p.previous_bids]
    return out


def wallet_snapshot(w: Wallet) -> Dict[str, Any]:
    return {
        "user_id": w.user_id,
        "balance": _money(w.balance),
        "frozen_balance": _money(w.frozen_balance),
        "currency": w.currency,
        "updated_at": _iso(w.updated_at),
    }


def transaction_snapshot(t: Transaction) -> Dict[str, Any]:
    return {
        "id": str(t.id),
        "type": t.type,
        "amount": _money(t.amount),
        "currency": t.currency,
        "from_user_id": t.from_user_id,
        "to_user_id": t.to_user_id,
        "status": t.status,
        "product_id": _id(t.product_id),
        "escrow_id": _id(t.escrow_id),
        "created_at": _iso(t.created_at),
        "completed_at": _iso(t.completed_at),
        "metadata": dict(t.metadata_json or {}),
    }


def notification_snapshot(n: NotificationView) -> Dict[str, Any]:
    return {
        "id": str(n.id),
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "recipient_id": n.recipient_id,
        "recipient_type": n.recipient_type,
        "originator_id": n.originator_id,
        "product_id": _id(n.product_id),
        "image": n.image,
        "read": n.read,
        "created_at": _iso(n.created_at),
    }


def rating_snapshot(r: Rating) -> Dict[str, Any]:
    return {
        "id": r.rating_id,
        "product_id": str(r.product_id),
        "from_user_id": r.from_user_id,
        "to_user_id": r.to_user_id,
        "rating": r.rating,
        "review": r.review,
        "from_role": r.from_role,
        "to_role": r.to_role,
        "created_at": _iso(r.created_at),
    }
