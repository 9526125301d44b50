# app/services/subscriptions.py
"""
Live feeds as caller-owned handles.

subscribe() returns a Subscription that polls a fetch function on an
interval and calls back whenever the result changes. The caller keeps the
handle and calls cancel() when done; cancelling twice is a no-op. Nothing is
registered at module level.
"""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session, sessionmaker

from app.core.config import get_settings
from app.core.types import UserRole
from app.services.auction_service import AuctionService
from app.services.notification_service import NotificationService
from app.services.snapshots import notification_snapshot, product_snapshot

logger = logging.getLogger(__name__)

_UNSET = object()

Fetch = Callable[[], Any]
Callback = Callable[[Any], None]


class Subscription:
    def __init__(self, fetch: Fetch, callback: Callback, *, interval: float, name: str = "feed"):
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self._fetch = fetch
        self._callback = callback
        self._interval = interval
        self._name = name

        self._last: Any = _UNSET
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def poll_once(self) -> bool:
        """
        Fetch once; invoke the callback if the result differs from the last
        delivered one. Returns True when the callback fired.
        """
        if self.cancelled:
            return False
        value = self._fetch()
        with self._lock:
            if self.cancelled or value == self._last:
                return False
            self._last = value
        self._callback(value)
        return True

    def start(self) -> "Subscription":
        with self._lock:
            if self._thread is not None or self.cancelled:
                return self
            self._thread = threading.Thread(
                target=self._run, name=f"subscription-{self._name}", daemon=True
            )
            self._thread.start()
        return self

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.poll_once()
            except Exception:
                # keep the feed alive across transient store errors
                logger.exception("[feeds] poll failed feed=%s", self._name)
            self._stop.wait(self._interval)

    def cancel(self) -> bool:
        """
        Stop delivering updates. Returns False if already cancelled.
        """
        with self._lock:
            if self._stop.is_set():
                return False
            self._stop.set()
            thread = self._thread

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._interval + 1.0)
        logger.debug("[feeds] cancelled feed=%s", self._name)
        return True

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.cancel()


def subscribe(
    fetch: Fetch,
    callback: Callback,
    *,
    interval: Optional[float] = None,
    name: str = "feed",
    start: bool = True,
) -> Subscription:
    sub = Subscription(
        fetch,
        callback,
        interval=interval if interval is not None else get_settings().feed_poll_seconds,
        name=name,
    )
    return sub.start() if start else sub


# ─────────────────────────────────────────────
# FETCHERS
# ─────────────────────────────────────────────


def product_feed(session_factory: sessionmaker, *, user_id: str, role: UserRole) -> Fetch:
    """
    Merchants see open lots plus what they lead or won; farmers see their own lots.
    """
    role = UserRole.parse(role)
    auctions = AuctionService()

    def fetch() -> List[Dict[str, Any]]:
        db: Session = session_factory()
        try:
            if role == UserRole.merchant:
                products = auctions.list_merchant_feed(db, user_id)
            else:
                products = auctions.list_seller_products(db, user_id)
            return [product_snapshot(p) for p in products]
        finally:
            db.close()

    return fetch


def notification_feed(
    session_factory: sessionmaker,
    *,
    user_id: str,
    role: Optional[UserRole],
    limit: int = 100,
) -> Fetch:
    notifications = NotificationService()

    def fetch() -> List[Dict[str, Any]]:
        db: Session = session_factory()
        try:
            views = notifications.list_for_user(db, user_id=user_id, role=role, limit=limit)
            return [notification_snapshot(v) for v in views]
        finally:
            db.close()

    return fetch
