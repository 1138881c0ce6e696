"""
adapters.py — Adapter lookup, scoping and the built-in adapters.

═══════════════════════════════════════════════════════════════════════════
ADAPTERS
═══════════════════════════════════════════════════════════════════════════

    Name               Backend                       Use
    ────────────────   ───────────────────────────   ─────────────────────
    memory             in-process list               tests, inspection
    inline             runs the job immediately      development
    celery             Celery shared task            production
    background_tasks   FastAPI BackgroundTasks       per-request deferral

Resolution order for a handler class:
    1. adapter scoped with ``use_adapter`` (context variable)
    2. the class's own ``async_adapter``
    3. the process default from settings (one instance per name/queue)
"""

from __future__ import annotations

import importlib
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from herald.core.errors import ConfigurationError
from herald.core.naming import safe_constantize

logger = logging.getLogger(__name__)


def perform_delivery(
    handler_class_name: str,
    action_name: str,
    params: Optional[Mapping[str, Any]] = None,
    args: Sequence[Any] = (),
    kwargs: Optional[Mapping[str, Any]] = None,
) -> Any:
    """
    Execute a dequeued delivery: rebuild the pending action and run it now.

    Raises ConfigurationError when the handler class cannot be found in
    this process.
    """
    handler_class = safe_constantize(handler_class_name)
    if handler_class is None:
        raise ConfigurationError(
            f"Handler class {handler_class_name} not found",
            handler=handler_class_name,
        )

    logger.info("Performing %s.%s", handler_class_name, action_name)
    pending = handler_class.with_(**dict(params or {})).build(
        action_name, *args, **dict(kwargs or {})
    )
    return pending.perform_now()


# ═══════════════════════════════════════════════════════════════════════════
# Built-in adapters
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EnqueuedJob:
    """Serializable descriptor of one deferred delivery."""
    handler_class_name: str
    action_name: str
    params: Dict[str, Any] = field(default_factory=dict)
    args: List[Any] = field(default_factory=list)
    kwargs: Dict[str, Any] = field(default_factory=dict)
    options: Dict[str, Any] = field(default_factory=dict)

    def perform(self) -> Any:
        return perform_delivery(
            self.handler_class_name, self.action_name,
            self.params, self.args, self.kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handler_class_name": self.handler_class_name,
            "action_name": self.action_name,
            "params": self.params,
            "args": self.args,
            "kwargs": self.kwargs,
            "options": self.options,
        }


class MemoryAdapter:
    """Keeps enqueued jobs in a list until ``perform_enqueued`` drains it."""

    def __init__(self, queue: Optional[str] = None):
        self.queue = queue
        self.jobs: List[EnqueuedJob] = []

    def enqueue(self, handler_class_name: str, action_name: str, *,
                params: Mapping[str, Any], args: Sequence[Any],
                kwargs: Mapping[str, Any], **options: Any) -> None:
        options.setdefault("queue", self.queue)
        self.jobs.append(EnqueuedJob(
            handler_class_name, action_name,
            dict(params), list(args), dict(kwargs), options,
        ))

    def perform_enqueued(self) -> int:
        """Run and remove every pending job, oldest first."""
        performed = 0
        while self.jobs:
            self.jobs.pop(0).perform()
            performed += 1
        return performed

    def clear(self) -> None:
        self.jobs.clear()


class InlineAdapter:
    """Performs jobs on enqueue — no queue at all."""

    def __init__(self, queue: Optional[str] = None):
        self.queue = queue

    def enqueue(self, handler_class_name: str, action_name: str, *,
                params: Mapping[str, Any], args: Sequence[Any],
                kwargs: Mapping[str, Any], **options: Any) -> None:
        perform_delivery(handler_class_name, action_name, params, args, kwargs)


# Adapters with third-party backends load on first lookup
ADAPTERS: Dict[str, str] = {
    "memory": "herald.jobs.adapters.MemoryAdapter",
    "inline": "herald.jobs.adapters.InlineAdapter",
    "celery": "herald.jobs.celery_adapter.CeleryAdapter",
    "background_tasks": "herald.jobs.fastapi_adapter.BackgroundTasksAdapter",
}


def lookup(adapter: Any, options: Optional[Mapping[str, Any]] = None) -> Any:
    """Instantiate a registered adapter by name; adapter objects pass through."""
    if not isinstance(adapter, str):
        return adapter

    path = ADAPTERS.get(adapter)
    if path is None:
        raise ConfigurationError(
            f"Async adapter '{adapter}' hasn't been found",
            adapter=adapter,
            known=sorted(ADAPTERS),
        )
    module_name, class_name = path.rsplit(".", 1)
    adapter_class = getattr(importlib.import_module(module_name), class_name)
    return adapter_class(**dict(options or {}))


@lru_cache(maxsize=None)
def default_adapter(name: str, queue: str) -> Any:
    """Process-wide adapter instance for a settings value."""
    return lookup(name, {"queue": queue})


# ═══════════════════════════════════════════════════════════════════════════
# Scoped override
# ═══════════════════════════════════════════════════════════════════════════

_scoped: ContextVar[Optional[Any]] = ContextVar("herald_async_adapter", default=None)


def scoped_adapter() -> Optional[Any]:
    return _scoped.get()


@contextmanager
def use_adapter(adapter: Any, **options: Any) -> Iterator[Any]:
    """Route every deferred delivery in this context through ``adapter``."""
    instance = lookup(adapter, options)
    token = _scoped.set(instance)
    try:
        yield instance
    finally:
        _scoped.reset(token)
