import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Optional

from microloan.core.context import get_actor_id, get_request_id
from microloan.core.settings import settings

AUDIT_LOGGER = "microloan.audit"
ACCESS_LOGGER = "microloan.access"


class RequestContextFilter(logging.Filter):
    """Stamp every record with the current request and actor ids."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.actor_id = get_actor_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, tagged with the stream it was written to."""

    _base_fields = set(vars(logging.makeLogRecord({}))) | {"message", "asctime", "request_id", "actor_id"}

    def __init__(self, stream_label: str = "app") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "stream": self.stream_label,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
            "actor_id": getattr(record, "actor_id", "-"),
        }
        extra = {key: value for key, value in vars(record).items() if key not in self._base_fields}
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _stdout_handler(formatter: str, level: str) -> dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": formatter,
        "filters": ["request_context"],
        "stream": "ext://sys.stdout",
    }


def build_logging_config(level: str) -> dict[str, Any]:
    streams = {"app": "app", "audit": "audit", "access": "access"}

    def routed(handler: str, logger_level: str = level) -> dict[str, Any]:
        return {"handlers": [handler], "level": logger_level, "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_context": {"()": RequestContextFilter}},
        "formatters": {name: {"()": JsonFormatter, "stream_label": label} for name, label in streams.items()},
        "handlers": {name: _stdout_handler(name, level) for name in streams},
        "root": {"handlers": ["app"], "level": level},
        "loggers": {
            AUDIT_LOGGER: routed("audit"),
            ACCESS_LOGGER: routed("access"),
            "uvicorn": routed("app"),
            "uvicorn.error": routed("app"),
            # Replaced by the request context middleware's access line.
            "uvicorn.access": routed("access", "WARNING"),
            "sqlalchemy.engine": routed("app", "WARNING"),
        },
    }


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    logging.config.dictConfig(build_logging_config(log_level))
    logging.getLogger(__name__).info(
        "Logging configured environment=%s strict_payment_posting=%s",
        settings.environment,
        settings.strict_payment_posting,
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger(AUDIT_LOGGER)
