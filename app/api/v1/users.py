# app/api/v1/users.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth_deps import get_current_principal
from app.db.session import get_db
from app.policies.rbac import Principal
from app.schemas.ratings import RatingSummaryResponse
from app.schemas.users import UserSyncPayload
from app.services.rating_service import RatingService
from app.services.snapshots import wallet_snapshot
from app.services.users_service import UserService
from app.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/me")
def sync_me(
    payload: UserSyncPayload,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """
    Register / refresh the caller from their token and make sure a wallet exists.
    """
    user = UserService().upsert_user(
        db,
        user_id=principal.user_id,
        role=principal.role,
        display_name=payload.display_name if payload.display_name is not None else (principal.display_name or None),
    )
    wallet = WalletService().initialize_wallet(db, principal.user_id)

    logger.info("[users] sync user=%s role=%s", user.id, user.role)
    return {
        "id": user.id,
        "role": user.role,
        "display_name": user.display_name,
        "rating_average": float(user.rating_average),
        "rating_count": user.rating_count,
        "wallet": wallet_snapshot(wallet),
    }


@router.get("/{user_id}/rating", response_model=RatingSummaryResponse)
def get_user_rating(
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    summary = RatingService().average_rating(db, user_id)
    return RatingSummaryResponse(user_id=user_id, average=float(summary.average), count=summary.count)
