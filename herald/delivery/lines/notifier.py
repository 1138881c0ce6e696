"""
notifier.py — Line driving ``herald.notifier.Notifier`` subclasses.

    EventsDelivery → EventsNotifier (or ``suffix=`` / ``resolver=``)
"""

from __future__ import annotations

from typing import Any, Mapping

from herald.delivery.lines.base import Line


class NotifierLine(Line):
    default_suffix = "Notifier"

    def handler_supports(self, handler: Any, action: str) -> bool:
        handles = getattr(handler, "handles", None)
        return bool(handles and handles(action))

    def notify_now(self, handler: Any, action: str, *args: Any, **kwargs: Any) -> Any:
        return handler.build(action, *args, **kwargs).notify_now()

    def notify_later(self, handler: Any, action: str, *args: Any, **kwargs: Any) -> Any:
        return handler.build(action, *args, **kwargs).notify_later()

    def notify_later_with_options(self, handler: Any, enqueue_options: Mapping[str, Any],
                                  action: str, *args: Any, **kwargs: Any) -> Any:
        return handler.build(action, *args, **kwargs).notify_later(**enqueue_options)
