from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, Field


class DepositPayload(BaseModel):
    amount: Decimal
    method: str = Field(default="direct", max_length=32)
