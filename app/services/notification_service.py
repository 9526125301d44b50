# app/services/notification_service.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import DependentOperationFailure, NotificationNotFound
from app.core.types import UserRole
from app.models.enums import NotificationType
from app.models.notification import Notification, NotificationReceipt
from app.services.users_service import UserService

logger = logging.getLogger(__name__)


# Role broadcasts are delivered one of two ways, fixed per type:
#   fan-out-on-write: one row per user of the role, enumerated when written
#   fan-out-on-read:  one row with recipient_type, filtered per viewer on query
FANOUT_ON_READ = frozenset({NotificationType.price_update})


@dataclass(frozen=True)
class NotificationDraft:
    type: NotificationType
    title: str
    message: str
    recipient_id: Optional[str] = None
    recipient_role: Optional[UserRole] = None
    originator_id: Optional[str] = None
    product_id: Optional[uuid.UUID] = None
    image: Optional[str] = None

    def __post_init__(self):
        if (self.recipient_id is None) == (self.recipient_role is None):
            raise ValueError("Exactly one of recipient_id / recipient_role is required.")


@dataclass(frozen=True)
class NotificationView:
    """
    A notification as one viewer sees it (read flag resolved per viewer).
    """

    id: uuid.UUID
    type: str
    title: str
    message: str
    recipient_id: Optional[str]
    recipient_type: Optional[str]
    originator_id: Optional[str]
    product_id: Optional[uuid.UUID]
    image: Optional[str]
    read: bool
    created_at: datetime


def _view(n: Notification, read: bool) -> NotificationView:
    return NotificationView(
        id=n.id,
        type=n.type,
        title=n.title,
        message=n.message,
        recipient_id=n.recipient_id,
        recipient_type=n.recipient_type,
        originator_id=n.originator_id,
        product_id=n.product_id,
        image=n.image,
        read=read,
        created_at=n.created_at,
    )


class NotificationService:
    # ─────────────────────────────────────────────
    # WRITE
    # ─────────────────────────────────────────────

    def _row(self, draft: NotificationDraft, **scope) -> Notification:
        return Notification(
            type=NotificationType(draft.type).value,
            title=draft.title,
            message=draft.message,
            originator_id=draft.originator_id,
            product_id=draft.product_id,
            image=draft.image,
            read=False,
            **scope,
        )

    def write(self, db: Session, draft: NotificationDraft) -> List[Notification]:
        """
        Stage rows for one draft (no commit). Applies the per-type
        delivery policy for role broadcasts.
        """
        if draft.recipient_id is not None:
            rows = [self._row(draft, recipient_id=draft.recipient_id)]
        elif NotificationType(draft.type) in FANOUT_ON_READ:
            rows = [self._row(draft, recipient_type=draft.recipient_role.value)]
        else:
            user_ids = UserService().list_user_ids_by_role(db, draft.recipient_role)
            rows = [
                self._row(draft, recipient_id=uid)
                for uid in user_ids
                if uid != draft.originator_id
            ]

        db.add_all(rows)
        return rows

    def notify(self, db: Session, drafts: Iterable[NotificationDraft]) -> List[Notification]:
        rows: List[Notification] = []
        for d in drafts:
            rows.extend(self.write(db, d))
        db.commit()
        return rows

    def notify_safely(self, db: Session, drafts: Iterable[NotificationDraft]) -> int:
        """
        Best-effort delivery after a primary operation has committed.
        Failures are logged and swallowed; the primary result stands.
        """
        drafts = list(drafts)
        if not drafts:
            return 0
        try:
            rows = self.notify(db, drafts)
        except (SQLAlchemyError, ValueError) as exc:
            db.rollback()
            failure = DependentOperationFailure(
                f"Notification fan-out failed for {len(drafts)} draft(s): {exc}"
            )
            logger.exception("[notifications] %s", failure.message)
            return 0

        logger.debug("[notifications] wrote %d row(s) for %d draft(s)", len(rows), len(drafts))
        return len(rows)

    # ─────────────────────────────────────────────
    # READ
    # ─────────────────────────────────────────────

    def _visible_to(self, user_id: str, role: Optional[UserRole]):
        direct = Notification.recipient_id == user_id
        if role is None:
            return direct
        broadcast = and_(
            Notification.recipient_type == role.value,
            or_(
                Notification.originator_id.is_(None),
                Notification.originator_id != user_id,
            ),
        )
        return or_(direct, broadcast)

    def _receipt_join(self, user_id: str):
        return and_(
            NotificationReceipt.notification_id == Notification.id,
            NotificationReceipt.user_id == user_id,
        )

    def _unread_clause(self):
        return or_(
            and_(Notification.recipient_id.is_not(None), Notification.read.is_(False)),
            and_(Notification.recipient_type.is_not(None), NotificationReceipt.read_at.is_(None)),
        )

    def list_for_user(
        self,
        db: Session,
        *,
        user_id: str,
        role: Optional[UserRole],
        unread_only: bool = False,
        limit: int = 100,
    ) -> List[NotificationView]:
        stmt = (
            select(Notification, NotificationReceipt.read_at)
            .outerjoin(NotificationReceipt, self._receipt_join(user_id))
            .where(self._visible_to(user_id, role))
        )
        if unread_only:
            stmt = stmt.where(self._unread_clause())

        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id).limit(limit)

        out: List[NotificationView] = []
        for n, read_at in db.execute(stmt).all():
            read = bool(n.read) if n.recipient_id is not None else read_at is not None
            out.append(_view(n, read))
        return out

    def unread_count(self, db: Session, *, user_id: str, role: Optional[UserRole]) -> int:
        stmt = (
            select(func.count())
            .select_from(Notification)
            .outerjoin(NotificationReceipt, self._receipt_join(user_id))
            .where(self._visible_to(user_id, role), self._unread_clause())
        )
        return int(db.execute(stmt).scalar_one() or 0)

    # ─────────────────────────────────────────────
    # READ FLAG
    # ─────────────────────────────────────────────

    def mark_read(
        self,
        db: Session,
        *,
        notification_id: uuid.UUID,
        user_id: str,
        role: Optional[UserRole] = None,
    ) -> NotificationView:
        """
        Idempotent: marking an already-read notification is a no-op.
        """
        n = db.get(Notification, notification_id)
        if not n:
            raise NotificationNotFound(f"Notification {notification_id} not found.")

        if n.recipient_id is not None:
            if n.recipient_id != user_id:
                raise NotificationNotFound(f"Notification {notification_id} not found.")

            db.execute(
                update(Notification)
                .where(Notification.id == notification_id, Notification.read.is_(False))
                .values(read=True)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            db.refresh(n)
            return _view(n, True)

        # broadcast row: per-viewer receipt
        if role is None or n.originator_id == user_id or n.recipient_type != role.value:
            raise NotificationNotFound(f"Notification {notification_id} not found.")

        existing = db.get(NotificationReceipt, (notification_id, user_id))
        if not existing:
            db.add(NotificationReceipt(notification_id=notification_id, user_id=user_id))
            try:
                db.commit()
            except IntegrityError:
                # concurrent mark from the same viewer already landed
                db.rollback()
        return _view(n, True)


CURRENCY_SYMBOLS = {"INR": "₹"}


def format_money(amount, currency: Optional[str] = None) -> str:
    """
    Human form used in notification text, e.g. "₹200.00".
    """
    code = currency or get_settings().currency
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{symbol}{amount}"
    return f"{amount} {code}"
