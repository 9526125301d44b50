import json
import queue
import threading

import pytest

from app.core.streaming import queue_event_stream, sse_event
from app.core.types import UserRole
from app.services.auction_service import AuctionService
from app.services.subscriptions import Subscription, notification_feed, product_feed, subscribe
from app.tests.factories import at, create_lot


def test_poll_once_fires_only_on_change():
    values = iter([1, 1, 2, 2, 3])
    seen = []
    sub = Subscription(lambda: next(values), seen.append, interval=1.0)

    fired = [sub.poll_once() for _ in range(5)]

    assert fired == [True, False, True, False, True]
    assert seen == [1, 2, 3]


def test_cancel_is_idempotent_and_stops_delivery():
    seen = []
    sub = subscribe(lambda: "x", seen.append, interval=1.0, start=False)

    assert sub.cancel() is True
    assert sub.cancel() is False
    assert sub.cancelled is True
    assert sub.poll_once() is False
    assert seen == []


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        Subscription(lambda: None, lambda v: None, interval=0)


def test_background_thread_delivers_until_cancelled():
    counter = {"n": 0}
    got_two = threading.Event()
    seen = []

    def fetch():
        counter["n"] += 1
        return min(counter["n"], 2)

    def callback(value):
        seen.append(value)
        if value == 2:
            got_two.set()

    with subscribe(fetch, callback, interval=0.01, name="counter") as sub:
        assert got_two.wait(timeout=5.0)

    assert sub.cancelled is True
    assert seen == [1, 2]


def test_poll_errors_do_not_kill_the_feed():
    calls = {"n": 0}
    recovered = threading.Event()

    def fetch():
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("store blip")
        return "ok"

    sub = subscribe(fetch, lambda v: recovered.set(), interval=0.01, name="flaky")
    try:
        assert recovered.wait(timeout=5.0)
    finally:
        sub.cancel()


def test_product_feed_tracks_bids(db, market, session_factory):
    product = create_lot(db)
    fetch = product_feed(session_factory, user_id="merchant-1", role=UserRole.merchant)
    seen = []
    sub = Subscription(fetch, seen.append, interval=1.0)

    assert sub.poll_once() is True
    assert sub.poll_once() is False

    AuctionService().place_bid(
        db, product_id=product.id, bidder_id="merchant-2", amount="120", now=at(minutes=1)
    )
    assert sub.poll_once() is True

    (latest,) = seen[-1]
    assert latest["current_price"] == "120.00"
    assert latest["highest_bid"]["bidder_id"] == "merchant-2"
    sub.cancel()


def test_farmer_product_feed_lists_own_lots(db, market, session_factory):
    create_lot(db)
    create_lot(db, seller_id="farmer-1", name="Red Onions")

    fetch = product_feed(session_factory, user_id="farmer-1", role=UserRole.farmer)
    names = sorted(p["name"] for p in fetch())
    assert names == ["Alphonso Mangoes", "Red Onions"]

    assert product_feed(session_factory, user_id="farmer-2", role=UserRole.farmer)() == []


def test_notification_feed_sees_new_bid_alert(db, market, session_factory):
    product = create_lot(db)
    fetch = notification_feed(session_factory, user_id="farmer-1", role=UserRole.farmer)
    assert fetch() == []

    AuctionService().place_bid(
        db, product_id=product.id, bidder_id="merchant-1", amount="110", now=at(minutes=1)
    )

    (alert,) = fetch()
    assert alert["type"] == "new_bid"
    assert alert["product_id"] == str(product.id)
    assert alert["read"] is False


def test_sse_event_frame():
    frame = sse_event({"a": 1}, event="products")
    assert frame == b'event: products\ndata: {"a":1}\n\n'
    assert sse_event([1, 2]) == b"data: [1,2]\n\n"


def test_queue_event_stream_calls_on_close():
    q = queue.Queue()
    closed = []
    q.put({"n": 1})

    stream = queue_event_stream(q, on_close=lambda: closed.append(True), heartbeat_seconds=0.01)
    first = next(stream)
    assert json.loads(first.decode().split("data: ", 1)[1]) == {"n": 1}
    assert next(stream) == b": keep-alive\n\n"

    stream.close()
    assert closed == [True]
