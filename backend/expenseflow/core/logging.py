"""Structured JSON logging configuration."""
import logging
import sys
from pythonjsonlogger import jsonlogger
from expenseflow.core.config import settings


def setup_logging() -> None:
    """Configure JSON structured logging for production, human-readable for dev."""
    if getattr(settings, 'APP_ENV', 'development') == "production":
        handler = logging.StreamHandler(sys.stdout)
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(name)s %(levelname)s %(request_id)s %(message)s",
            rename_fields={"asctime": "timestamp", "levelname": "level"},
        )
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdLogFilter())
        logging.root.handlers = [handler]
        logging.root.setLevel(logging.INFO)
    else:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
        )


class RequestIdLogFilter(logging.Filter):
    """Stamp every record with the request id of the HTTP request being served."""

    def filter(self, record: logging.LogRecord) -> bool:
        from expenseflow.middleware.request_id import get_request_id

        record.request_id = get_request_id()
        return True
