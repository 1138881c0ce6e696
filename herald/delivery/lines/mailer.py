"""
mailer.py — Line driving ``herald.mailer.Mailer`` subclasses.

    EventsDelivery → EventsMailer
"""

from __future__ import annotations

from typing import Any, Mapping

from herald.delivery.lines.base import Line


class MailerLine(Line):
    default_suffix = "Mailer"

    def handler_supports(self, handler: Any, action: str) -> bool:
        handles = getattr(handler, "handles", None)
        return bool(handles and handles(action))

    def notify_now(self, mailer: Any, action: str, *args: Any, **kwargs: Any) -> Any:
        return mailer.build(action, *args, **kwargs).deliver_now()

    def notify_later(self, mailer: Any, action: str, *args: Any, **kwargs: Any) -> Any:
        return mailer.build(action, *args, **kwargs).deliver_later()

    def notify_later_with_options(self, mailer: Any, enqueue_options: Mapping[str, Any],
                                  action: str, *args: Any, **kwargs: Any) -> Any:
        return mailer.build(action, *args, **kwargs).deliver_later(**enqueue_options)
