# app/core/middleware.py
from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("app.http")

# read by RequestIdLogFilter so every log line inside a request carries it
current_request_id: ContextVar[Optional[str]] = ContextVar("current_request_id", default=None)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Tags every request with an id (incoming header or a fresh uuid4), echoes
    it back on the response and writes one access line per request.
    """

    def __init__(self, app, header_name: str = "X-Request-Id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = request.headers.get(self.header_name) or uuid.uuid4().hex
        request.state.request_id = rid
        token = current_request_id.set(rid)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            current_request_id.reset(token)

        elapsed_ms = (time.perf_counter() - started) * 1000.0
        response.headers[self.header_name] = rid
        logger.info(
            "[http] %s %s -> %d (%.1f ms)",
            request.method, request.url.path, response.status_code, elapsed_ms,
            extra={"request_id": rid},
        )
        return response
