"""
lines — One delivery line per channel.

Each line module exposes a ``Line`` subclass that knows:
    • how to find its handler class for a delivery class
    • whether that handler supports an action
    • how to run the action now or enqueue it for later

Lines are stateless apart from handler resolution caching.
"""

from herald.delivery.lines.base import Line
from herald.delivery.lines.mailer import MailerLine
from herald.delivery.lines.notifier import NotifierLine

__all__ = ["Line", "MailerLine", "NotifierLine"]
