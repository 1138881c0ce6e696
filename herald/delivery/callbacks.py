"""
callbacks.py — Class-body decorators for delivery callbacks.

    class EventsDelivery(ApplicationDelivery):
        @before_notify(only="canceled")
        def ensure_enabled(self):
            return self.params.get("enabled", True)

        @around_notify(on="mailer")
        def timed(self, deliver):
            deliver()

``on=`` selects a line id instead of the ``notify`` scope. The
classmethods ``EventsDelivery.before_notify(...)`` register the same
hooks from outside the class body.
"""

from __future__ import annotations

from typing import Any, Callable

from herald.core.callbacks import hook


def _decorator(kind: str) -> Callable[..., Any]:
    def decorator(func: Any = None, *, on: str = "notify", **options: Any) -> Any:
        if callable(func):
            return hook(kind, on, **options)(func)
        return hook(kind, on, **options)
    decorator.__name__ = f"{kind}_notify"
    return decorator


before_notify = _decorator("before")
after_notify = _decorator("after")
around_notify = _decorator("around")
