"""
Process-wide logging for conduit.

Records carry two correlation fields taken from context variables:
`request_id` (set per request by RequestIdMiddleware) and `listener`
(the listener serving the request, or an explicit extra={"listener": ...}).
Production writes one JSON object per line; development writes short
text lines.

    from conduit.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Resolved listener", extra={"listener": "public", "workers": 12})
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
listener_var: ContextVar[Optional[str]] = ContextVar("listener", default=None)

CONTEXT_FIELDS = ("request_id", "listener")
_UNSET = "-"

# Attributes every LogRecord has; anything else came in through extra=
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName", *CONTEXT_FIELDS}

# Third-party loggers and the level they are held at outside debug mode
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "alembic.runtime.migration": logging.WARNING,
}


class ContextFilter(logging.Filter):
    """Stamp request_id and listener on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or _UNSET  # type: ignore[attr-defined]
        explicit = getattr(record, "listener", None)
        record.listener = explicit or listener_var.get() or _UNSET  # type: ignore[attr-defined]
        return True


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """One JSON object per record, structured extras flattened in."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(
            (field, getattr(record, field))
            for field in CONTEXT_FIELDS
            if getattr(record, field, _UNSET) != _UNSET
        )
        payload.update(
            (key, _jsonable(value))
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and value is not None
        )
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload)


class TextFormatter(logging.Formatter):
    """Short development lines; extras are appended as key=value pairs."""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)-5s %(listener)s [%(name)s] %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and value is not None
        ]
        if getattr(record, "request_id", _UNSET) != _UNSET:
            extras.insert(0, f"req={record.request_id}")  # type: ignore[attr-defined]
        return f"{line} {' '.join(extras)}" if extras else line


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Install the single root handler, replacing any configured before.

    Args:
        log_level: Level name used when debug is off
        environment: "production" selects JSON output
        debug: Log everything at DEBUG, third-party loggers included
    """
    level = logging.DEBUG if debug else logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JsonFormatter() if environment == "production" else TextFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level if debug else quiet_level)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
