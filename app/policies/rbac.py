#app/policies/rbac.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Set

from app.core.types import UserRole


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: UserRole
    display_name: str


# --- Core action constants ---
ACTION_CREATE_PRODUCT = "CREATE_PRODUCT"
ACTION_RESPOND_TO_BID = "RESPOND_TO_BID"
ACTION_PLACE_BID = "PLACE_BID"
ACTION_CONFIRM_DELIVERY = "CONFIRM_DELIVERY"


def allowed_actions(role: UserRole) -> Set[str]:
    """
    Pure RBAC: which actions a role may attempt.
    Ownership (own lot, winning bid) is checked by the services.
    """

    if role == UserRole.farmer:
        return {ACTION_CREATE_PRODUCT, ACTION_RESPOND_TO_BID}

    if role == UserRole.merchant:
        return {ACTION_PLACE_BID, ACTION_CONFIRM_DELIVERY}

    return set()


def require_action(principal: Principal, action: str) -> None:
    if action not in allowed_actions(principal.role):
        raise PermissionError(
            f"Role {principal.role.value} not permitted for action {action}."
        )
