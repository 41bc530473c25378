from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from flask import Flask, g, has_request_context, request


class RequestContextFilter(logging.Filter):
    """Inject Flask request context information into log records."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if has_request_context():
            record.request_id = getattr(g, "request_id", None)
            record.path = request.path
            record.method = request.method
            record.user_id = getattr(g, "current_user_id", None)
        else:
            record.request_id = None
            record.path = None
            record.method = None
            record.user_id = None
        return True


# Attributes every LogRecord has; anything else arrived through ``extra=``
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "request_id",
    "path",
    "method",
    "user_id",
}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
            "path": getattr(record, "path", None),
            "method": getattr(record, "method", None),
            "user_id": getattr(record, "user_id", None),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(app: Flask, config) -> None:
    """Configure global logging once, respecting config toggles."""

    if not config.STRUCTURED_LOGS_ENABLED:
        logging.basicConfig(level=config.LOG_LEVEL)
        app.logger.setLevel(config.LOG_LEVEL)
        return

    root_logger = logging.getLogger()
    root_logger.setLevel(config.LOG_LEVEL)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestContextFilter())

    # Replace existing handlers to avoid duplicate logs when the factory runs twice
    root_logger.handlers = [handler]
    app.logger.handlers = [handler]
    app.logger.propagate = False

    app.logger.debug("Structured logging configured.")


def ensure_request_id(header_name: str) -> str:
    """Return the active request id, generating one if needed."""
    if getattr(g, "request_id", None):
        return g.request_id
    incoming = request.headers.get(header_name)
    g.request_id = incoming or str(uuid4())
    return g.request_id
