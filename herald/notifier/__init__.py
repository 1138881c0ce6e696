"""
notifier — Text-based notification handlers (push, SMS, chat, in-app).

The notifier counterpart of a mailer: actions build a payload with
``notification(body=..., **options)``, and the class's ``driver``
performs the actual transport.

    class EventsNotifier(Notifier):
        driver = PushService()

        def canceled(self, event):
            return self.notification(
                body=f"Event {event.title} has been canceled",
                identity=self.params["profile"].push_id,
            )

    EventsNotifier.with_(profile=profile).canceled(event).notify_later()
"""

from herald.notifier.base import Notification, NotificationDelivery, Notifier
from herald.notifier.drivers import WebhookDriver

__all__ = ["Notification", "NotificationDelivery", "Notifier", "WebhookDriver"]
