from __future__ import annotations

from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field


class ProductCreatePayload(BaseModel):
    """
    Farmer listing. Numeric rules (> 0) are enforced by AuctionService so
    callers get the marketplace error shape, not a schema error.
    """

    name: str = Field(..., max_length=256)
    description: str = Field(default="", max_length=4000)
    starting_price: Decimal
    quantity: Decimal
    unit_type: str = Field(..., max_length=32)
    grade: str = Field(default="", max_length=64)
    images: List[str] = Field(default_factory=list, description="Opaque media URLs")
    duration_hours: int


class BidPayload(BaseModel):
    amount: Decimal


class BidResponsePayload(BaseModel):
    accept: bool
