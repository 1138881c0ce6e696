"""
base.py — Notifier base class and the notification delivery object.

Delivery modes (``DELIVERY_MODE`` setting):

    Mode      notify_now                    notify_later
    ──────    ──────────────────────────    ─────────────────────────────
    normal    driver(payload)               enqueue via async adapter
    test      recorded in notifier.testing  recorded in notifier.testing
    noop      nothing                       nothing
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from herald.core.actions import ActionHandler, PendingAction
from herald.core.config import current_settings
from herald.core.errors import ConfigurationError, ValidationError
from herald.notifier import testing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    """A built notification payload and the notifier that produced it."""
    owner: type
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {**self.payload, "via": self.owner}


class NotificationDelivery(PendingAction):
    """Lazy notification: nothing is built until ``notify_now`` / ``notify_later``."""

    @property
    def notification(self) -> Optional[Notification]:
        return self.message

    def notify_now(self) -> Any:
        notification = self.notification
        if notification is None:
            return None

        config = current_settings()
        if config.noop:
            return None

        if config.test_mode:
            core = lambda: testing.record_sent(notification.to_dict())
        else:
            driver = notification.owner.resolve_driver()
            core = lambda: driver(notification.payload)

        _, result = self.handler.run_callbacks("deliver", core)
        return result

    def notify_later(self, **enqueue_options: Any) -> None:
        config = current_settings()
        if config.noop:
            return

        if config.test_mode:
            notification = self.notification
            if notification is not None:
                testing.record_enqueued(notification.to_dict())
            return

        self.enqueue(**enqueue_options)

    perform_now = notify_now


class Notifier(ActionHandler):
    """
    Base class for notifiers.

    ``driver`` is any callable taking the payload dict. It is looked up
    along the class hierarchy, so an application-wide base class can set
    it once.
    """

    _infrastructure = True
    pending_class = NotificationDelivery
    adapter_setting = "NOTIFIER_ASYNC_ADAPTER"
    queue_setting = "NOTIFIER_QUEUE"

    driver: Any = None

    @classmethod
    def resolve_driver(cls) -> Any:
        for klass in cls.__mro__:
            driver = klass.__dict__.get("driver")
            if driver is None:
                continue
            if isinstance(driver, staticmethod):
                driver = driver.__func__
            return driver
        raise ConfigurationError(
            f"Driver not found for {cls.__name__}. "
            f"Please, specify driver via `driver = MyDriver()`",
            notifier=cls.__name__,
        )

    def notification(self, **payload: Any) -> Notification:
        """Build the payload; ``body`` is the only required key."""
        self.merge_defaults(payload)

        body = payload.get("body")
        if body is None or (hasattr(body, "__len__") and len(body) == 0):
            raise ValidationError(
                "Notification body must be present",
                field="body",
                notifier=type(self).__name__,
                action=self.action_name,
            )
        return Notification(type(self), payload)
