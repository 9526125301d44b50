from __future__ import annotations

import json
import queue
from typing import Any, Callable, Iterator, Optional


def sse_event(data: Any, event: Optional[str] = None) -> bytes:
    """
    One Server-Sent Event frame. `data` is JSON encoded on a single line.
    """
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.append("data: " + json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str))
    return ("\n".join(lines) + "\n\n").encode("utf-8")


def queue_event_stream(
    q: "queue.Queue[Any]",
    *,
    on_close: Callable[[], Any],
    event: Optional[str] = None,
    heartbeat_seconds: float = 15.0,
) -> Iterator[bytes]:
    """
    Stream queued values as SSE frames. A comment line is sent as a
    heartbeat when idle.
    `on_close` runs when the client goes away (generator closed).
    """
    try:
        while True:
            try:
                value = q.get(timeout=heartbeat_seconds)
            except queue.Empty:
                yield b": keep-alive\n\n"
                continue
            yield sse_event(value, event=event)
    finally:
        on_close()
