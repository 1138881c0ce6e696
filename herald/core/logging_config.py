"""
Structured logging configuration.

Provides:
    • JSON-formatted logs for production (machine-parseable)
    • Pretty console logs for development (human-readable)
    • Dispatch-scoped context (delivery, notification, line)

Usage:
    from herald.core.logging_config import setup_logging, get_logger

    setup_logging()
    logger = get_logger(__name__)
    logger.info("Enqueued", extra={"line": "mailer", "handler": "EventsMailer"})
"""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from herald.core.config import current_settings

# ── Context variable for dispatch-scoped data ──
_dispatch_context: ContextVar[Dict[str, Any]] = ContextVar(
    "dispatch_context", default={}
)

_EXTRA_FIELDS = ("delivery", "notification", "line", "handler", "action",
                 "sync", "queue", "duration_ms")


def get_dispatch_context() -> Dict[str, Any]:
    """Get current dispatch context."""
    return _dispatch_context.get()


@contextmanager
def dispatch_context(**values: Any) -> Iterator[Dict[str, Any]]:
    """Extend the log context for the duration of a dispatch step."""
    merged = {**_dispatch_context.get(), **values}
    token = _dispatch_context.set(merged)
    try:
        yield merged
    finally:
        _dispatch_context.reset(token)


# ── JSON Formatter (Production) ──

class JSONFormatter(logging.Formatter):
    """Machine-parseable JSON log output for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "lineno": record.lineno,
        }

        ctx = get_dispatch_context()
        if ctx:
            log_entry["context"] = ctx

        for key in _EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = {
                "type": type(record.exc_info[1]).__name__,
                "message": str(record.exc_info[1]),
            }

        return json.dumps(log_entry, default=str)


# ── Pretty Formatter (Development) ──

class PrettyFormatter(logging.Formatter):
    """Coloured human-readable format for local development."""

    COLORS = {
        "DEBUG": "\033[36m",    # Cyan
        "INFO": "\033[32m",     # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",    # Red
        "CRITICAL": "\033[35m", # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        ts = self.formatTime(record, "%H:%M:%S")
        msg = record.getMessage()

        ctx = get_dispatch_context()
        ctx_str = ""
        if ctx.get("delivery"):
            ctx_str = f" [{ctx['delivery']}.{ctx.get('notification', '?')}"
            if ctx.get("line"):
                ctx_str += f"@{ctx['line']}"
            ctx_str += "]"

        formatted = (
            f"{color}{ts} {record.levelname:8s}{self.RESET}"
            f"{ctx_str} {record.name}: {msg}"
        )

        if record.exc_info and record.exc_info[1]:
            formatted += f"\n  {type(record.exc_info[1]).__name__}: {record.exc_info[1]}"

        return formatted


# ── Setup ──

def setup_logging(level: Optional[str] = None) -> None:
    """Configure the ``herald`` logger tree based on environment."""
    config = current_settings()
    root = logging.getLogger("herald")
    root.setLevel(getattr(logging, (level or config.LOG_LEVEL).upper(), logging.INFO))

    # Remove existing handlers
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)

    if config.LOG_FORMAT == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(PrettyFormatter())

    root.addHandler(handler)

    # Quieten noisy libraries
    logging.getLogger("celery.app.trace").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a named logger — call once per module."""
    return logging.getLogger(name)
