"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • Consistent JSON error response format for host applications
    • Automatic logging of dispatch errors

Usage:
    from herald.core.errors import (
        HeraldError,
        ConfigurationError,
        ValidationError,
        StrictDispatchError,
        LineDispatchError,
        register_error_handlers,
    )

    raise ConfigurationError("Line class is missing", line_id="push")

Not every failure is an error: a line whose handler cannot be resolved,
or whose handler lacks the requested action, is skipped silently, and a
callback returning ``False`` halts dispatch without raising.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from herald.core.config import current_settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class HeraldError(Exception):
    """Base exception for all dispatch errors."""

    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected dispatch error occurred",
        *,
        error_code: str = "DISPATCH_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(HeraldError):
    """Delivery, line or handler configured incorrectly (raised at setup time)."""

    def __init__(self, message: str, **details: Any):
        super().__init__(
            message,
            error_code="CONFIGURATION_ERROR",
            details=details,
        )


class ValidationError(HeraldError, ValueError):
    """A notification or message payload is missing required fields."""

    status_code = 422

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class StrictDispatchError(HeraldError, AttributeError):
    """Undeclared action dispatched while explicit declaration is required."""

    def __init__(self, delivery: str, action: str):
        super().__init__(
            f"Undefined delivery action '{action}' for {delivery}. "
            f"Declare it with {delivery}.delivers('{action}')",
            error_code="UNDECLARED_ACTION",
            details={"delivery": delivery, "action": action},
        )


class LineDispatchError(HeraldError):
    """
    One or more lines failed while the remaining lines were still served.

    ``errors`` maps each failing line id to the exception it raised.
    """

    def __init__(self, delivery: str, action: str, errors: Dict[str, BaseException]):
        failed = ", ".join(f"{line_id} ({type(exc).__name__}: {exc})"
                           for line_id, exc in errors.items())
        super().__init__(
            f"Delivery {delivery}.{action} failed on {len(errors)} line(s): {failed}",
            error_code="LINE_DISPATCH_ERROR",
            details={
                "delivery": delivery,
                "action": action,
                "lines": list(errors),
            },
        )
        self.errors = errors


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    # Include request path in non-production
    if request and not current_settings().is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register dispatch exception handlers on a host FastAPI app."""

    @app.exception_handler(HeraldError)
    async def handle_herald_error(request: Request, exc: HeraldError):
        logger.error(
            "Dispatch error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )
