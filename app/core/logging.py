import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from app.core.context import get_actor_id, get_request_id
from app.core.settings import settings


class RequestContextFilter(logging.Filter):
    """Inject request/actor ids into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.actor_id = get_actor_id()
        record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def __init__(self, stream_label: str = "transactional") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stream": self.stream_label,
            "actor_id": getattr(record, "actor_id", "-"),
            "request_id": getattr(record, "request_id", "-"),
        }
        loan_id = getattr(record, "loan_id", None)
        if loan_id is not None:
            payload["loan_id"] = str(loan_id)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    handler_defaults = {
        "class": "logging.StreamHandler",
        "level": log_level,
        "filters": ["request_context"],
        "stream": "ext://sys.stdout",
    }
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_context": {"()": RequestContextFilter},
            },
            "formatters": {
                "json": {"()": JsonFormatter, "stream_label": "transactional"},
                "audit_json": {"()": JsonFormatter, "stream_label": "audit"},
            },
            "handlers": {
                "default": {**handler_defaults, "formatter": "json"},
                "audit": {**handler_defaults, "formatter": "audit_json"},
            },
            "loggers": {
                "": {"handlers": ["default"], "level": log_level, "propagate": False},
                "app.audit": {"handlers": ["audit"], "level": log_level, "propagate": False},
                "uvicorn.error": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn.access": {"handlers": ["default"], "level": log_level, "propagate": False},
            },
        }
    )
    logging.getLogger(__name__).info("Logging configured for environment=%s", settings.environment)


def get_audit_logger() -> logging.Logger:
    return logging.getLogger("app.audit")
