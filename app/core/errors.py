# app/core/errors.py
from __future__ import annotations

from typing import Optional


class MarketError(ValueError):
    """
    Base for every failure a marketplace operation reports to its caller.

    Carries a stable `kind` (machine readable) and an HTTP status used by the
    API exception handler. Subclasses ValueError so callers that only know
    the service-layer convention (raise ValueError -> 409) keep working.
    """

    kind = "market_error"
    http_status = 400

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message())

    @classmethod
    def default_message(cls) -> str:
        return cls.kind.replace("_", " ").capitalize() + "."

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "detail": self.message}


# ─────────────────────────────────────────────
# Validation: rejected before any write
# ─────────────────────────────────────────────


class ValidationError(MarketError):
    kind = "validation_error"
    http_status = 422


class InvalidAmount(ValidationError):
    kind = "invalid_amount"


class InvalidProduct(ValidationError):
    kind = "invalid_product"


class InvalidRating(ValidationError):
    kind = "invalid_rating"


# ─────────────────────────────────────────────
# State conflicts: specific reason, no partial state
# ─────────────────────────────────────────────


class StateConflictError(MarketError):
    kind = "state_conflict"
    http_status = 409


class AuctionClosed(StateConflictError):
    kind = "auction_closed"


class BidTooLow(StateConflictError):
    kind = "bid_too_low"


class NoBidToRespond(StateConflictError):
    kind = "no_bid_to_respond"


class NotDeliverable(StateConflictError):
    kind = "not_deliverable"


class EscrowNotFound(StateConflictError):
    kind = "escrow_not_found"


class EscrowAlreadyHeld(StateConflictError):
    kind = "escrow_already_held"


class AlreadyRated(StateConflictError):
    kind = "already_rated"


class NotRateable(StateConflictError):
    kind = "not_rateable"


class NotOwner(StateConflictError):
    kind = "not_owner"
    http_status = 403


class NotWinner(StateConflictError):
    kind = "not_winner"
    http_status = 403


class NotAllowed(StateConflictError):
    kind = "not_allowed"
    http_status = 403


# ─────────────────────────────────────────────
# Resources
# ─────────────────────────────────────────────


class ResourceError(MarketError):
    kind = "resource_error"
    http_status = 404


class InsufficientFunds(ResourceError):
    kind = "insufficient_funds"
    http_status = 402


class WalletNotFound(ResourceError):
    kind = "wallet_not_found"


class ProductNotFound(ResourceError):
    kind = "product_not_found"


class NotificationNotFound(ResourceError):
    kind = "notification_not_found"


class UserNotFound(ResourceError):
    kind = "user_not_found"


# ─────────────────────────────────────────────
# Best-effort side effects (logged, never raised to callers)
# ─────────────────────────────────────────────


class DependentOperationFailure(MarketError):
    kind = "dependent_operation_failure"
    http_status = 500
