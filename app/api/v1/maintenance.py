# app/api/v1/maintenance.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import require_maintenance_token
from app.db.session import get_db
from app.services.auction_service import AuctionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/maintenance",
    tags=["maintenance"],
    dependencies=[Depends(require_maintenance_token)],
)


@router.post("/sweep-deliveries")
def sweep_deliveries(db: Session = Depends(get_db)):
    expired = AuctionService().sweep_expired_deliveries(db)
    logger.info("[maintenance] delivery sweep expired=%d", len(expired))
    return {"expired": [str(pid) for pid in expired], "count": len(expired)}


@router.post("/close-auctions")
def close_auctions(db: Session = Depends(get_db)):
    closed = AuctionService().close_ended_auctions(db)
    logger.info("[maintenance] auction close closed=%d", closed)
    return {"closed": closed}
