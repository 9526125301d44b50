from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamps on every backend.

    Postgres keeps the offset; SQLite drops it, so values read back without
    tzinfo are re-tagged as UTC. Naive values are rejected on write.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetime not allowed; use UTC-aware values.")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# JSONB on Postgres, plain JSON elsewhere (tests run on SQLite)
JSONDoc = JSON().with_variant(JSONB(), "postgresql")

# Money: fixed point, 2 decimal places (INR paise)
Money = Numeric(20, 2, asdecimal=True)

MONEY_QUANT = Decimal("0.01")


def to_money(value) -> Decimal:
    """
    Coerce to a 2dp Decimal. Floats go through str() so 0.1 stays 0.10.
    """
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, float):
        d = Decimal(str(value))
    else:
        d = Decimal(value)
    return d.quantize(MONEY_QUANT)
