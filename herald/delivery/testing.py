"""
testing.py — Capture deliveries instead of running them.

Inside ``enable()`` every ``deliver_later`` / ``deliver_now`` is recorded
with its options and no line runs. The flag and the store are context
variables, so concurrent tests stay isolated.

    with testing.enable():
        EventsDelivery.with_(profile=p).canceled(event).deliver_later(queue="urgent")

    testing.assert_delivered_to(EventsDelivery, "canceled", event,
                                params={"profile": p}, queue="urgent")

Records survive the end of the block, until the next ``enable()`` or
``clear()``.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional

_enabled: ContextVar[bool] = ContextVar("herald_delivery_testing", default=False)
_store: ContextVar[Optional[List["TrackedDelivery"]]] = ContextVar(
    "herald_tracked_deliveries", default=None
)


@dataclass(frozen=True)
class TrackedDelivery:
    delivery: Any
    options: Mapping[str, Any] = field(default_factory=dict)

    @property
    def sync(self) -> bool:
        return bool(self.options.get("sync", False))

    @property
    def enqueue_options(self) -> Dict[str, Any]:
        return {k: v for k, v in self.options.items() if k != "sync"}


@contextmanager
def enable() -> Iterator[List[TrackedDelivery]]:
    """
    Record deliveries for the duration of the block; restores the prior
    state after. A nested block shares the enclosing block's records.
    """
    if _enabled.get():
        records = store()
    else:
        records = []
        _store.set(records)
    token = _enabled.set(True)
    try:
        yield records
    finally:
        _enabled.reset(token)


def enabled() -> bool:
    return _enabled.get()


def store() -> List[TrackedDelivery]:
    records = _store.get()
    if records is None:
        records = []
        _store.set(records)
    return records


def clear() -> None:
    store().clear()


def track(delivery: Any, options: Mapping[str, Any]) -> TrackedDelivery:
    record = TrackedDelivery(delivery, dict(options))
    store().append(record)
    return record


def delivered_to(
    delivery_class: type,
    event: Optional[str] = None,
    *args: Any,
    params: Optional[Mapping[str, Any]] = None,
    sync: Optional[bool] = None,
    **kwargs: Any,
) -> List[TrackedDelivery]:
    """
    Recorded deliveries matching the given filters.

    Positional ``args`` must equal the delivery's args when given;
    ``kwargs`` are compared against the delivery's keyword arguments
    first and its enqueue options otherwise.
    """
    found = []
    for record in store():
        delivery = record.delivery
        if type(delivery.owner) is not delivery_class:
            continue
        if event is not None and delivery.notification != str(event):
            continue
        if args and tuple(delivery.args) != tuple(args):
            continue
        if params is not None and dict(delivery.params) != dict(params):
            continue
        if sync is not None and record.sync != sync:
            continue
        if not _kwargs_match(record, kwargs):
            continue
        found.append(record)
    return found


def _kwargs_match(record: TrackedDelivery, expected: Mapping[str, Any]) -> bool:
    for key, value in expected.items():
        if key in record.delivery.kwargs:
            if record.delivery.kwargs[key] != value:
                return False
        elif key in record.options:
            if record.options[key] != value:
                return False
        else:
            return False
    return True


def assert_delivered_to(
    delivery_class: type,
    event: Optional[str] = None,
    *args: Any,
    params: Optional[Mapping[str, Any]] = None,
    sync: Optional[bool] = None,
    count: Optional[int] = 1,
    at_least: Optional[int] = None,
    at_most: Optional[int] = None,
    **kwargs: Any,
) -> List[TrackedDelivery]:
    found = delivered_to(delivery_class, event, *args, params=params, sync=sync, **kwargs)
    n = len(found)

    if at_least is not None or at_most is not None:
        ok = (at_least is None or n >= at_least) and (at_most is None or n <= at_most)
        wanted = f"between {at_least if at_least is not None else 0} and " \
                 f"{at_most if at_most is not None else 'any'}"
    else:
        ok = (n > 0) if count is None else (n == count)
        wanted = "at least 1" if count is None else f"exactly {count}"

    if not ok:
        target = delivery_class.__name__ + (f".{event}" if event else "")
        raise AssertionError(
            f"Expected {wanted} delivery(ies) to {target}, found {n}. "
            f"Recorded: {[_describe(r) for r in store()]!r}"
        )
    return found


def _describe(record: TrackedDelivery) -> Dict[str, Any]:
    return {**record.delivery.to_dict(), "options": dict(record.options)}
