"""
testing.py — Recording store for notifications sent in test mode.

Records are kept per execution context (context variables), so
concurrent test runs never see each other's notifications.

    with override_settings(DELIVERY_MODE="test"):
        EventsNotifier.build("canceled", event).notify_now()

    assert_notification_sent(via=EventsNotifier, body="Event X has been canceled")
"""

from __future__ import annotations

from contextvars import ContextVar
from typing import Any, Dict, List, Optional

_sent: ContextVar[Optional[List[Dict[str, Any]]]] = ContextVar(
    "herald_sent_notifications", default=None
)
_enqueued: ContextVar[Optional[List[Dict[str, Any]]]] = ContextVar(
    "herald_enqueued_notifications", default=None
)


def _store(var: ContextVar) -> List[Dict[str, Any]]:
    records = var.get()
    if records is None:
        records = []
        var.set(records)
    return records


def deliveries() -> List[Dict[str, Any]]:
    """Notifications delivered with ``notify_now``."""
    return _store(_sent)


def enqueued_deliveries() -> List[Dict[str, Any]]:
    """Notifications deferred with ``notify_later``."""
    return _store(_enqueued)


def clear() -> None:
    _sent.set([])
    _enqueued.set([])


def record_sent(record: Dict[str, Any]) -> Dict[str, Any]:
    deliveries().append(record)
    return record


def record_enqueued(record: Dict[str, Any]) -> Dict[str, Any]:
    enqueued_deliveries().append(record)
    return record


def _matching(records: List[Dict[str, Any]], expected: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        r for r in records
        if all(k in r and r[k] == v for k, v in expected.items())
    ]


def _assert(records: List[Dict[str, Any]], verb: str, count: Optional[int],
            expected: Dict[str, Any]) -> List[Dict[str, Any]]:
    found = _matching(records, expected)
    if (count is None and not found) or (count is not None and len(found) != count):
        wanted = "any" if count is None else f"exactly {count}"
        raise AssertionError(
            f"Expected {wanted} notification(s) {verb} matching {expected!r}, "
            f"found {len(found)}. Recorded: {records!r}"
        )
    return found


def assert_notification_sent(*, count: Optional[int] = None, **expected: Any) -> List[Dict[str, Any]]:
    return _assert(deliveries(), "sent", count, expected)


def assert_notification_enqueued(*, count: Optional[int] = None, **expected: Any) -> List[Dict[str, Any]]:
    return _assert(enqueued_deliveries(), "enqueued", count, expected)
