# app/api/v1/notifications.py
from __future__ import annotations

import logging
import queue

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import get_settings
from app.core.deps import parse_uuid, registered_principal
from app.core.streaming import queue_event_stream
from app.db.session import get_db, get_session_factory
from app.policies.rbac import Principal
from app.services.notification_service import NotificationService
from app.services.snapshots import notification_snapshot
from app.services.subscriptions import notification_feed, subscribe

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    svc = NotificationService()
    views = svc.list_for_user(
        db,
        user_id=principal.user_id,
        role=principal.role,
        unread_only=unread_only,
        limit=limit,
    )
    return {
        "unread_count": svc.unread_count(db, user_id=principal.user_id, role=principal.role),
        "notifications": [notification_snapshot(v) for v in views],
    }


@router.get("/stream")
def stream_notifications(
    principal: Principal = Depends(registered_principal),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    q: "queue.Queue" = queue.Queue()
    sub = subscribe(
        notification_feed(session_factory, user_id=principal.user_id, role=principal.role),
        q.put,
        name=f"notifications:{principal.user_id}",
    )
    logger.info("[notifications] stream opened user=%s", principal.user_id)
    return StreamingResponse(
        queue_event_stream(
            q,
            on_close=sub.cancel,
            event="notifications",
            heartbeat_seconds=get_settings().stream_heartbeat_seconds,
        ),
        media_type="text/event-stream",
    )


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(registered_principal),
):
    view = NotificationService().mark_read(
        db,
        notification_id=parse_uuid(notification_id, "notificationId"),
        user_id=principal.user_id,
        role=principal.role,
    )
    return notification_snapshot(view)
