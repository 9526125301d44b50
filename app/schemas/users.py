from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class UserSyncPayload(BaseModel):
    """
    Optional profile fields; id and role always come from the token.
    """

    display_name: Optional[str] = Field(default=None, max_length=256)
