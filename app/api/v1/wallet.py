# app/api/v1/wallet.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.deps import registered_principal
from app.core.deps_idempotency import IdempotencyContext, idempotency_guard
from app.db.session import get_db
from app.policies.rbac import Principal
from app.schemas.wallet import DepositPayload
from app.services.idempotency_service import IdempotencyService, StoredResponse
from app.services.snapshots import transaction_snapshot, wallet_snapshot
from app.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/wallet", tags=["wallet"])


@router.get("")
def get_wallet(
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    wallet = WalletService().initialize_wallet(db, principal.user_id)
    return wallet_snapshot(wallet)


@router.post("/deposit", status_code=201)
def deposit(
    payload: DepositPayload,
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
    idem: Optional[IdempotencyContext] = Depends(idempotency_guard),
):
    """
    Add funds. With an Idempotency-Key header a retried request replays the
    first response instead of depositing twice.
    """
    if idem is not None and idem.replay is not None:
        logger.info("[wallet] deposit replay user=%s key=%s", principal.user_id, idem.scope.idem_key)
        return JSONResponse(content=idem.replay.body, status_code=idem.replay.status_code)

    svc = WalletService()
    svc.initialize_wallet(db, principal.user_id)
    tx = svc.deposit(db, user_id=principal.user_id, amount=payload.amount, method=payload.method)
    wallet = svc.require_wallet(db, principal.user_id)

    response = {"transaction": transaction_snapshot(tx), "wallet": wallet_snapshot(wallet)}

    if idem is not None:
        IdempotencyService().remember(
            db,
            idem.scope,
            fingerprint=idem.fingerprint,
            response=StoredResponse(body=response, status_code=201),
        )
    return response


@router.get("/transactions")
def list_transactions(
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    rows = WalletService().list_transactions(db, principal.user_id)
    return {"count": len(rows), "transactions": [transaction_snapshot(t) for t in rows]}
