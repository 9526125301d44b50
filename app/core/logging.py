import logging
import sys

from pythonjsonlogger import jsonlogger

from app.core.config import Settings
from app.core.middleware import current_request_id


class RequestIdLogFilter(logging.Filter):
    """
    Stamps `request_id` on records emitted while a request is in flight.
    Background work (sweeps, feeds) logs with request_id=None.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = current_request_id.get()
        return True


def configure_logging(settings: Settings) -> None:
    """
    Structured logging (JSON) for the marketplace service and its CLI.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    # clear handlers if reloaded
    root.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIdLogFilter())
    handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(request_id)s %(message)s",
            rename_fields={"levelname": "level", "name": "logger"},
            static_fields={"service": settings.app_name, "env": settings.environment},
        )
    )
    root.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)  # app.http covers access lines
    logging.getLogger("uvicorn.error").setLevel(level)

    # SQL echo is noisy at INFO; only surface it when debugging
    sql_level = logging.INFO if settings.db_echo or level <= logging.DEBUG else logging.WARNING
    logging.getLogger("sqlalchemy.engine").setLevel(sql_level)
