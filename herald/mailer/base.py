"""
base.py — Mailer base class, message model and SMTP transport.

═══════════════════════════════════════════════════════════════════════════
MESSAGE LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    EventsMailer.with_(profile=p)        ParamsProxy (params bound)
        .canceled(event)                 MessageDelivery (lazy)
        .deliver_now()                   action runs → MailMessage
                                         → delivery_method(message)
        .deliver_later()                 descriptor enqueued, action runs
                                         in the worker

The default delivery method is ``SMTPDelivery`` configured from
settings; a mailer can set ``delivery_method`` to any callable taking a
``MailMessage``.
"""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Any, Dict, List, Optional, Sequence, Union

from herald.core.actions import ActionHandler, PendingAction
from herald.core.config import current_settings
from herald.core.errors import ValidationError
from herald.mailer import testing

logger = logging.getLogger(__name__)


@dataclass
class MailMessage:
    """A rendered email."""
    to: List[str]
    subject: str
    body: str = ""
    html_body: Optional[str] = None
    from_address: Optional[str] = None
    cc: List[str] = field(default_factory=list)
    bcc: List[str] = field(default_factory=list)
    reply_to: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    mailer: Optional[str] = None
    action: Optional[str] = None

    @property
    def recipients(self) -> List[str]:
        return [*self.to, *self.cc, *self.bcc]

    def to_email_message(self) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = self.subject
        msg["From"] = self.from_address or current_settings().MAIL_FROM
        msg["To"] = ", ".join(self.to)
        if self.cc:
            msg["Cc"] = ", ".join(self.cc)
        if self.reply_to:
            msg["Reply-To"] = self.reply_to
        for name, value in self.headers.items():
            msg[name] = value
        msg.set_content(self.body or "")
        if self.html_body:
            msg.add_alternative(self.html_body, subtype="html")
        return msg

    def to_dict(self) -> Dict[str, Any]:
        return {
            "to": self.to,
            "cc": self.cc,
            "bcc": self.bcc,
            "subject": self.subject,
            "from_address": self.from_address,
            "reply_to": self.reply_to,
            "has_html": self.html_body is not None,
            "mailer": self.mailer,
            "action": self.action,
        }


class SMTPDelivery:
    """Sends messages through an SMTP server (settings supply the defaults)."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        timeout: Optional[float] = None,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def __call__(self, message: MailMessage) -> Dict[str, Any]:
        config = current_settings()
        host = self.host or config.SMTP_HOST
        port = self.port or config.SMTP_PORT
        user = self.user or config.SMTP_USER
        password = self.password or config.SMTP_PASSWORD
        use_tls = config.SMTP_USE_TLS if self.use_tls is None else self.use_tls
        timeout = self.timeout or config.SMTP_TIMEOUT

        with smtplib.SMTP(host, port, timeout=timeout) as server:
            if use_tls:
                server.starttls()
            if user:
                server.login(user, password or "")
            refused = server.send_message(
                message.to_email_message(), to_addrs=message.recipients
            )

        logger.info(
            "[EMAIL/SMTP] %s.%s → %s via %s:%s",
            message.mailer, message.action, ", ".join(message.to), host, port,
        )
        return {"refused": refused}


class MessageDelivery(PendingAction):
    """Lazy email: the action runs on ``deliver_now`` (or in the worker)."""

    def deliver_now(self) -> Any:
        message = self.message
        if message is None:
            return None

        config = current_settings()
        if config.noop:
            return None

        if config.test_mode:
            core = lambda: testing.record_sent(message)
        else:
            delivery_method = self.handler_class.resolve_delivery_method()
            core = lambda: delivery_method(message)

        _, result = self.handler.run_callbacks("deliver", core)
        return result

    def deliver_later(self, **enqueue_options: Any) -> None:
        config = current_settings()
        if config.noop:
            return

        if config.test_mode:
            message = self.message
            if message is not None:
                testing.record_enqueued(message)
            return

        self.enqueue(**enqueue_options)

    perform_now = deliver_now


def _addresses(value: Union[None, str, Sequence[str]]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


class Mailer(ActionHandler):
    """Base class for mailers."""

    _infrastructure = True
    pending_class = MessageDelivery
    adapter_setting = "MAILER_ASYNC_ADAPTER"
    queue_setting = "MAILER_QUEUE"

    delivery_method: Any = None

    @classmethod
    def resolve_delivery_method(cls) -> Any:
        for klass in cls.__mro__:
            method = klass.__dict__.get("delivery_method")
            if method is None:
                continue
            if isinstance(method, staticmethod):
                method = method.__func__
            return method
        return SMTPDelivery()

    def mail(
        self,
        *,
        to: Union[str, Sequence[str], None] = None,
        subject: Optional[str] = None,
        body: str = "",
        html_body: Optional[str] = None,
        **headers: Any,
    ) -> MailMessage:
        """Build the message; defaults fill any header not given here."""
        values: Dict[str, Any] = {"to": to, "subject": subject, **headers}
        values = {k: v for k, v in values.items() if v is not None}
        self.merge_defaults(values)

        recipients = _addresses(values.pop("to", None))
        if not recipients:
            raise ValidationError("Mail recipient must be present", field="to",
                                  mailer=type(self).__name__, action=self.action_name)
        subject = values.pop("subject", None)
        if not subject:
            raise ValidationError("Mail subject must be present", field="subject",
                                  mailer=type(self).__name__, action=self.action_name)

        return MailMessage(
            to=recipients,
            subject=subject,
            body=body,
            html_body=html_body,
            from_address=values.pop("from_address", None),
            cc=_addresses(values.pop("cc", None)),
            bcc=_addresses(values.pop("bcc", None)),
            reply_to=values.pop("reply_to", None),
            headers={k: str(v) for k, v in values.items()},
            mailer=type(self).__name__,
            action=self.action_name,
        )
