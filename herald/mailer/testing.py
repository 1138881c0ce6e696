"""
testing.py — Outbox for mail delivered in test mode.

Kept per execution context, like the notifier store.
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Any, List, Optional

_outbox: ContextVar[Optional[List[Any]]] = ContextVar("herald_outbox", default=None)
_enqueued: ContextVar[Optional[List[Any]]] = ContextVar("herald_enqueued_mail", default=None)


def outbox() -> List[Any]:
    messages = _outbox.get()
    if messages is None:
        messages = []
        _outbox.set(messages)
    return messages


def enqueued() -> List[Any]:
    messages = _enqueued.get()
    if messages is None:
        messages = []
        _enqueued.set(messages)
    return messages


def clear() -> None:
    _outbox.set([])
    _enqueued.set([])


def record_sent(message: Any) -> Any:
    outbox().append(message)
    return message


def record_enqueued(message: Any) -> Any:
    enqueued().append(message)
    return message
