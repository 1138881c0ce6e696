"""
herald.delivery — Fan one notification out to every registered channel.

    from herald.delivery import BaseDelivery

    class ApplicationDelivery(BaseDelivery, abstract=True):
        pass

    class EventsDelivery(ApplicationDelivery):
        pass

    EventsDelivery.delivers("canceled")

    EventsDelivery.with_(profile=profile).canceled(event).deliver_later()
"""

from herald.delivery.base import BaseDelivery, Delivery, dispatch_method
from herald.delivery.callbacks import after_notify, around_notify, before_notify
from herald.delivery.lines import Line, MailerLine, NotifierLine

__all__ = [
    "BaseDelivery",
    "Delivery",
    "Line",
    "MailerLine",
    "NotifierLine",
    "after_notify",
    "around_notify",
    "before_notify",
    "dispatch_method",
]
