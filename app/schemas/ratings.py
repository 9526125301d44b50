from __future__ import annotations

from pydantic import BaseModel, Field


class RatingPayload(BaseModel):
    product_id: str
    to_user_id: str = Field(..., max_length=128)
    # range and review length are checked by RatingService
    rating: int
    review: str


class RatingEligibilityResponse(BaseModel):
    can_rate: bool
    has_rated: bool


class RatingSummaryResponse(BaseModel):
    user_id: str
    average: float
    count: int
