"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from herald.core.config import current_settings, override_settings

    if current_settings().DELIVER_ACTIONS_REQUIRED:
        ...

    with override_settings(CACHE_CLASSES=False):
        ...  # scoped to this context only
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from functools import lru_cache
from typing import Any, Iterator, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DELIVERY_MODES = ("normal", "test", "noop")


class Settings(BaseSettings):
    """
    Process-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_prefix="HERALD_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    ENVIRONMENT: str = "development"  # development | test | production
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL
    LOG_FORMAT: Optional[str] = None  # pretty | json (None → by environment)

    # ── Dispatch ──
    CACHE_CLASSES: bool = True  # memoize handler resolution (off for hot reload)
    DELIVER_ACTIONS_REQUIRED: bool = False  # only `delivers`-declared actions
    DELIVERY_MODE: Optional[str] = None  # normal | test | noop (None → by environment)

    # ── Queues ──
    NOTIFIER_ASYNC_ADAPTER: str = "celery"
    NOTIFIER_QUEUE: str = "notifiers"
    MAILER_ASYNC_ADAPTER: str = "celery"
    MAILER_QUEUE: str = "mailers"

    # ── Mail transport ──
    MAIL_FROM: str = "notifications@localhost"
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT: float = 20.0

    # ── Webhook transport ──
    WEBHOOK_TIMEOUT: float = 10.0

    @field_validator("DELIVERY_MODE")
    @classmethod
    def _check_delivery_mode(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in DELIVERY_MODES:
            raise ValueError(
                f"Unsupported delivery mode: {value}. "
                f"Supported values: {', '.join(DELIVERY_MODES)}"
            )
        return value

    @model_validator(mode="after")
    def _fill_environment_defaults(self) -> "Settings":
        if self.DELIVERY_MODE is None:
            self.DELIVERY_MODE = "test" if self.is_test else "normal"
        if self.LOG_FORMAT is None:
            self.LOG_FORMAT = "json" if self.is_production else "pretty"
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_test(self) -> bool:
        return self.ENVIRONMENT == "test"

    @property
    def noop(self) -> bool:
        return self.DELIVERY_MODE == "noop"

    @property
    def test_mode(self) -> bool:
        return self.DELIVERY_MODE == "test"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


_override: ContextVar[Optional[Settings]] = ContextVar("herald_settings", default=None)


def current_settings() -> Settings:
    """Settings for the running context (scoped override or the singleton)."""
    return _override.get() or get_settings()


@contextmanager
def override_settings(**changes: Any) -> Iterator[Settings]:
    """
    Temporarily replace settings values for the current context.

    The previous settings are restored on exit, even if the block raises.
    """
    base = current_settings()
    updated = Settings.model_validate({**base.model_dump(), **changes})
    token = _override.set(updated)
    try:
        yield updated
    finally:
        _override.reset(token)


settings = get_settings()
