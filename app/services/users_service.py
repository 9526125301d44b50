# app/services/users_service.py
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import UserNotFound
from app.core.types import UserRole
from app.db.types import utcnow
from app.models.user import User

logger = logging.getLogger(__name__)


class UserService:
    """
    Mirror of identity-provider users. The marketplace trusts the caller's
    identity; this table exists so role broadcasts can enumerate recipients.
    """

    def get_user(self, db: Session, user_id: str) -> Optional[User]:
        return db.get(User, user_id)

    def require_user(self, db: Session, user_id: str) -> User:
        user = self.get_user(db, user_id)
        if not user:
            raise UserNotFound(f"User {user_id} not found.")
        return user

    def upsert_user(
        self,
        db: Session,
        *,
        user_id: str,
        role,
        display_name: Optional[str] = None,
    ) -> User:
        role_enum = UserRole.parse(role)

        user = self.get_user(db, user_id)
        if not user:
            user = User(
                id=user_id,
                role=role_enum.value,
                display_name=(display_name or "").strip(),
            )
            db.add(user)
            try:
                db.commit()
            except IntegrityError:
                # concurrent first sync from another request
                db.rollback()
                user = self.require_user(db, user_id)
            else:
                db.refresh(user)
                logger.info("[users] registered user=%s role=%s", user_id, role_enum.value)
                return user

        changed = False
        if user.role != role_enum.value:
            user.role = role_enum.value
            changed = True
        if display_name is not None and user.display_name != display_name.strip():
            user.display_name = display_name.strip()
            changed = True

        if changed:
            user.updated_at = utcnow()
            db.commit()
            db.refresh(user)
        return user

    def role_of(self, db: Session, user_id: str) -> Optional[UserRole]:
        user = self.get_user(db, user_id)
        return UserRole.parse(user.role) if user else None

    def list_user_ids_by_role(self, db: Session, role) -> List[str]:
        role_enum = UserRole.parse(role)
        return list(
            db.execute(
                select(User.id).where(User.role == role_enum.value).order_by(User.id)
            )
            .scalars()
            .all()
        )
