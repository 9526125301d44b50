# app/api/v1/ratings.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.deps import parse_uuid, registered_principal
from app.db.session import get_db
from app.policies.rbac import Principal
from app.schemas.ratings import RatingEligibilityResponse, RatingPayload
from app.services.rating_service import RatingService
from app.services.snapshots import rating_snapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ratings", tags=["ratings"])


@router.get("/eligibility", response_model=RatingEligibilityResponse)
def check_eligibility(
    product_id: str = Query(...),
    to_user_id: str = Query(...),
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    result = RatingService().check_eligibility(
        db,
        product_id=parse_uuid(product_id, "productId"),
        from_user_id=principal.user_id,
        to_user_id=to_user_id,
    )
    return RatingEligibilityResponse(can_rate=result.can_rate, has_rated=result.has_rated)


@router.post("", status_code=201)
def submit_rating(
    payload: RatingPayload,
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    row = RatingService().submit_rating(
        db,
        product_id=parse_uuid(payload.product_id, "productId"),
        from_user_id=principal.user_id,
        to_user_id=payload.to_user_id,
        rating=payload.rating,
        review=payload.review,
    )
    return rating_snapshot(row)


@router.get("/users/{user_id}")
def list_user_ratings(
    user_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    svc = RatingService()
    summary = svc.average_rating(db, user_id)
    rows = svc.list_ratings_for_user(db, user_id)
    return {
        "user_id": user_id,
        "average": float(summary.average),
        "count": summary.count,
        "ratings": [rating_snapshot(r) for r in rows],
    }
