"""
mailer — Email handlers.

    class EventsMailer(Mailer):
        defaults = {"from_address": "events@example.com"}

        def canceled(self, event):
            return self.mail(
                to=self.params["profile"].email,
                subject=f"{event.title} has been canceled",
                body=render_plain(event),
            )

    EventsMailer.with_(profile=profile).canceled(event).deliver_later()
"""

from herald.mailer.base import MailMessage, Mailer, MessageDelivery, SMTPDelivery

__all__ = ["MailMessage", "Mailer", "MessageDelivery", "SMTPDelivery"]
