from app.core.config import get_settings
from app.core.errors import MarketError
from app.core.logging import configure_logging
from app.core.middleware import RequestIdMiddleware
from app.api.v1.router import v1_router

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


async def market_error_handler(request: Request, exc: MarketError) -> JSONResponse:
    """
    Every marketplace failure leaves as {"kind", "detail"} with its own status.
    """
    logger.info(
        "[errors] %s %s -> %s %s",
        request.method, request.url.path, exc.http_status, exc.kind,
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
    )

    # Middleware: Request ID
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    app.add_exception_handler(MarketError, market_error_handler)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()
