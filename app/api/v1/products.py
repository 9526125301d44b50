# app/api/v1/products.py
from __future__ import annotations

import logging
import queue
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import get_settings
from app.core.deps import parse_uuid, registered_principal
from app.core.streaming import queue_event_stream
from app.core.types import UserRole
from app.db.session import get_db, get_session_factory
from app.models.enums import ProductStatus
from app.policies.rbac import (
    ACTION_CONFIRM_DELIVERY,
    ACTION_CREATE_PRODUCT,
    ACTION_PLACE_BID,
    ACTION_RESPOND_TO_BID,
    Principal,
    require_action,
)
from app.schemas.products import BidPayload, BidResponsePayload, ProductCreatePayload
from app.services.auction_service import AuctionService
from app.services.delivery_service import DeliveryService
from app.services.snapshots import bid_snapshot, product_snapshot
from app.services.subscriptions import product_feed, subscribe

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["products"])


def _require(principal: Principal, action: str) -> None:
    try:
        require_action(principal, action)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))


# ---------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------


@router.post("", status_code=201)
def create_product(
    payload: ProductCreatePayload,
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    _require(principal, ACTION_CREATE_PRODUCT)

    product = AuctionService().create_product(
        db,
        seller_id=principal.user_id,
        name=payload.name,
        description=payload.description,
        starting_price=payload.starting_price,
        quantity=payload.quantity,
        unit_type=payload.unit_type,
        grade=payload.grade,
        images=payload.images,
        duration_hours=payload.duration_hours,
    )
    return product_snapshot(product)


@router.get("")
def list_products(
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    """
    Open lots, newest first.
    """
    products = AuctionService().list_active_products(db)
    return {"count": len(products), "products": [product_snapshot(p) for p in products]}


@router.get("/mine")
def list_my_products(
    status: Optional[ProductStatus] = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    """
    Farmers: their own lots (optionally by status). Merchants: lots they bid on.
    """
    svc = AuctionService()
    if principal.role == UserRole.farmer:
        products = svc.list_seller_products(db, principal.user_id, status=status)
    else:
        products = svc.list_bidder_products(db, principal.user_id)
        if status is not None:
            products = [p for p in products if p.status == status.value]
    return {"count": len(products), "products": [product_snapshot(p) for p in products]}


@router.get("/stream")
def stream_products(
    principal: Principal = Depends(registered_principal),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Server-Sent Events: a `products` snapshot whenever the caller's feed changes.
    """
    q: "queue.Queue" = queue.Queue()
    sub = subscribe(
        product_feed(session_factory, user_id=principal.user_id, role=principal.role),
        q.put,
        name=f"products:{principal.user_id}",
    )
    logger.info("[products] stream opened user=%s", principal.user_id)
    return StreamingResponse(
        queue_event_stream(
            q,
            on_close=sub.cancel,
            event="products",
            heartbeat_seconds=get_settings().stream_heartbeat_seconds,
        ),
        media_type="text/event-stream",
    )


@router.get("/{product_id}")
def get_product(
    product_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    product = AuctionService().require_product(db, parse_uuid(product_id, "productId"))
    return product_snapshot(product, with_bids=True)


# ---------------------------------------------------------------------
# Auction actions
# ---------------------------------------------------------------------


@router.post("/{product_id}/bids", status_code=201)
def place_bid(
    product_id: str,
    payload: BidPayload,
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    _require(principal, ACTION_PLACE_BID)
    pid = parse_uuid(product_id, "productId")

    bid = AuctionService().place_bid(
        db, product_id=pid, bidder_id=principal.user_id, amount=payload.amount
    )
    product = AuctionService().require_product(db, pid)
    return {"bid": bid_snapshot(bid), "product": product_snapshot(product)}


@router.post("/{product_id}/respond")
def respond_to_bid(
    product_id: str,
    payload: BidResponsePayload,
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    _require(principal, ACTION_RESPOND_TO_BID)

    product = AuctionService().respond_to_bid(
        db,
        product_id=parse_uuid(product_id, "productId"),
        seller_id=principal.user_id,
        accept=payload.accept,
    )
    return {"accepted": payload.accept, "product": product_snapshot(product)}


@router.post("/{product_id}/confirm-delivery")
def confirm_delivery(
    product_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    _require(principal, ACTION_CONFIRM_DELIVERY)

    product = DeliveryService().confirm_delivery(
        db,
        product_id=parse_uuid(product_id, "productId"),
        confirmer_id=principal.user_id,
    )
    return product_snapshot(product)
