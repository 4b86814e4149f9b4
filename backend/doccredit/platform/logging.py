import logging
import sys
import json
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

# Per-request identifiers stamped onto every log line emitted while serving it.
_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_school_id_ctx: ContextVar[Optional[str]] = ContextVar("school_id", default=None)


def bind_request_context(request_id: str, school_id: Optional[str] = None) -> None:
    _request_id_ctx.set(request_id)
    _school_id_ctx.set((school_id or "").strip() or None)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        request_id = getattr(record, "request_id", None) or _request_id_ctx.get()
        school_id = getattr(record, "school_id", None) or _school_id_ctx.get()
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if request_id:
            payload["request_id"] = request_id
        if school_id:
            payload["school_id"] = school_id
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def setup_logging(level: int = logging.INFO):
    """Configure structured JSON logging on the root logger."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return logging.getLogger("doccredit")
