"""
base.py — Delivery classes: one notification fanned out to every channel.

═══════════════════════════════════════════════════════════════════════════
FLOW
═══════════════════════════════════════════════════════════════════════════

    EventsDelivery.with_(profile=p).canceled(event)      → Delivery record
        .deliver_later()                                 → perform_notify
            notify callbacks (before / around / after)
              for each line (mailer, notifier, ...):
                skip if no handler or the handler lacks the action
                line callbacks
                  EventsMailer.with_(profile=p).build("canceled", event)
                      .deliver_later()

A failing line never stops the remaining lines: errors are logged,
collected and raised together as ``LineDispatchError`` once every line
has had its turn.

═══════════════════════════════════════════════════════════════════════════
REGISTRY
═══════════════════════════════════════════════════════════════════════════

Each delivery class owns a dict of lines keyed by id. A subclass copies
its parent's lines (re-bound to itself) on first access, so
``register_line`` / ``unregister_line`` on a subclass never touch the
parent. Registering a line also defines:

    <id>(handler)     set the handler explicitly; <id>() reads it back
    <id>_class()      the resolved handler class (or None)
    a callback scope named <id>
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Mapping, Optional, Tuple

from herald.core.callbacks import CallbacksMixin, registrar, skipper
from herald.core.config import current_settings
from herald.core.errors import ConfigurationError, LineDispatchError, StrictDispatchError
from herald.core.logging_config import dispatch_context
from herald.core.naming import qualified_name
from herald.delivery import testing as delivery_testing
from herald.delivery.lines import Line, MailerLine, NotifierLine

logger = logging.getLogger(__name__)

_UNSET: Any = object()


class dispatch_method:
    """
    A method callable on the class or on an instance.

    ``EventsDelivery.notify("canceled", e)`` works on a fresh,
    parameterless instance; ``EventsDelivery.with_(...).notify(...)``
    uses the bound parameters.
    """

    def __init__(self, func: Callable[..., Any]):
        self.func = func
        functools.update_wrapper(self, func)

    def __get__(self, instance: Any, owner: type) -> Callable[..., Any]:
        if instance is None:
            instance = owner()
        return self.func.__get__(instance, owner)


def _action_method(action: str) -> dispatch_method:
    def method(self: "BaseDelivery", *args: Any, **kwargs: Any) -> "Delivery":
        return self.build(action, *args, **kwargs)
    method.__name__ = method.__qualname__ = action
    return dispatch_method(method)


@dataclass(frozen=True)
class Delivery:
    """
    One notification call, bound to a delivery instance.

    Nothing happens until ``deliver_later`` or ``deliver_now``.
    """
    owner: "BaseDelivery"
    notification: str
    args: Tuple[Any, ...] = ()
    kwargs: Mapping[str, Any] = field(default_factory=dict)
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def delivery_class(self) -> type:
        return type(self.owner)

    @property
    def params(self) -> Mapping[str, Any]:
        return self.owner.params

    def deliver_later(self, **enqueue_options: Any) -> None:
        self.owner.perform_notify(self, enqueue_options=enqueue_options)

    def deliver_now(self) -> None:
        self.owner.perform_notify(self, sync=True)

    def to_dict(self) -> dict:
        return {
            "delivery": qualified_name(self.delivery_class),
            "notification": self.notification,
            "params": dict(self.params),
            "args": list(self.args),
            "kwargs": dict(self.kwargs),
            "metadata": dict(self.metadata),
        }


def _line_accessor(line_id: str) -> classmethod:
    def accessor(cls, handler: Any = _UNSET) -> Any:
        line = cls.delivery_lines().get(line_id)
        if handler is _UNSET:
            return None if line is None else line.explicit_handler
        if line is None:
            raise ConfigurationError(
                f"Line '{line_id}' is not registered on {cls.__name__}",
                line=line_id,
            )
        line.handler_class = handler
        return handler
    accessor.__name__ = line_id
    return classmethod(accessor)


def _line_class_getter(line_id: str) -> classmethod:
    def getter(cls) -> Optional[type]:
        line = cls.delivery_lines().get(line_id)
        return None if line is None else line.handler_class
    getter.__name__ = f"{line_id}_class"
    return classmethod(getter)


class BaseDelivery(CallbacksMixin):
    """
    Base for delivery classes.

    Subclass with ``abstract=True`` for shared application bases that
    should never resolve handlers themselves::

        class ApplicationDelivery(BaseDelivery, abstract=True):
            ...

        class EventsDelivery(ApplicationDelivery):
            delivers("canceled")  # or: EventsDelivery.delivers(...)
    """

    _callback_scopes = ("notify",)
    _callback_name_attribute = "notification_name"

    abstract_class = False

    before_notify = registrar("notify", "before")
    after_notify = registrar("notify", "after")
    around_notify = registrar("notify", "around")
    skip_before_notify = skipper("notify", "before")
    skip_after_notify = skipper("notify", "after")
    skip_around_notify = skipper("notify", "around")

    def __init_subclass__(cls, abstract: Optional[bool] = None, **kwargs: Any):
        if abstract is not None:
            cls.abstract_class = abstract
        super().__init_subclass__(**kwargs)

    def __init__(self, **params: Any):
        self.params: Mapping[str, Any] = MappingProxyType(dict(params))
        self.notification_name: Optional[str] = None
        self.current_delivery: Optional[Delivery] = None

    # ── Class hierarchy ──

    @classmethod
    def is_abstract_class(cls) -> bool:
        """Abstractness is never inherited."""
        return bool(cls.__dict__.get("abstract_class", False))

    @classmethod
    def parent_delivery(cls) -> Optional[type]:
        """Nearest delivery ancestor below ``BaseDelivery`` itself."""
        for klass in cls.__mro__[1:]:
            if isinstance(klass, type) and issubclass(klass, BaseDelivery):
                return None if klass is BaseDelivery else klass
        return None

    # ── Line registry ──

    @classmethod
    def delivery_lines(cls) -> Dict[str, Line]:
        lines = cls.__dict__.get("_delivery_lines")
        if lines is None:
            lines = {}
            for klass in cls.__mro__[1:]:
                if isinstance(klass, type) and issubclass(klass, BaseDelivery):
                    lines = {
                        line_id: line.dup_for(cls)
                        for line_id, line in klass.delivery_lines().items()
                    }
                    break
            cls._delivery_lines = lines
        return lines

    @classmethod
    def register_line(
        cls,
        line_id: str,
        line_class: Optional[type] = None,
        *,
        notifier: bool = False,
        **options: Any,
    ) -> Line:
        if line_class is None:
            if not notifier:
                raise ConfigurationError(
                    "Either line class or notifier=True must be provided",
                    line=line_id,
                )
            line_class = NotifierLine

        line = line_class(id=line_id, owner=cls, **options)
        cls.delivery_lines()[line_id] = line
        cls.define_callbacks(line_id)

        setattr(cls, line_id, _line_accessor(line_id))
        setattr(cls, f"{line_id}_class", _line_class_getter(line_id))

        logger.debug("Registered line %s (%s) on %s",
                     line_id, line_class.__name__, cls.__name__)
        return line

    @classmethod
    def unregister_line(cls, line_id: str) -> None:
        """
        Drop a line from this class (and subclasses that have not
        copied the registry yet). Accessors are removed only when this
        class defined them; inherited ones stay and report None.
        """
        if cls.delivery_lines().pop(line_id, None) is None:
            return
        for attr in (line_id, f"{line_id}_class"):
            if attr in cls.__dict__:
                delattr(cls, attr)
        logger.debug("Unregistered line %s on %s", line_id, cls.__name__)

    # ── Declared notifications ──

    @classmethod
    def declared_actions(cls) -> FrozenSet[str]:
        names = set()
        for klass in cls.__mro__:
            names.update(klass.__dict__.get("_declared_actions", ()))
        return frozenset(names)

    @classmethod
    def delivers(cls, *actions: str) -> None:
        declared = cls.__dict__.get("_declared_actions")
        if declared is None:
            declared = set()
            cls._declared_actions = declared
        for action in actions:
            declared.add(str(action))
            setattr(cls, str(action), _action_method(str(action)))

    # ── Building ──

    @classmethod
    def with_(cls, **params: Any) -> "BaseDelivery":
        return cls(**params)

    def _supported_anywhere(self, action: str) -> bool:
        return any(
            line.notify_supported(action)
            for line in self.delivery_lines().values()
        )

    @dispatch_method
    def build(self, action: str, *args: Any, **kwargs: Any) -> Delivery:
        action = str(action)
        if current_settings().DELIVER_ACTIONS_REQUIRED and action not in self.declared_actions():
            raise StrictDispatchError(type(self).__name__, action)
        return Delivery(
            owner=self,
            notification=action,
            args=tuple(args),
            kwargs=MappingProxyType(dict(kwargs)),
            metadata=MappingProxyType({"created_at": datetime.now(timezone.utc).isoformat()}),
        )

    @dispatch_method
    def notify(self, action: str, *args: Any, **kwargs: Any) -> None:
        """Build and deliver later."""
        self.build(action, *args, **kwargs).deliver_later()

    @dispatch_method
    def notify_now(self, action: str, *args: Any, **kwargs: Any) -> None:
        """Build and deliver synchronously."""
        self.build(action, *args, **kwargs).deliver_now()

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        if current_settings().DELIVER_ACTIONS_REQUIRED:
            raise StrictDispatchError(type(self).__name__, name)
        if self._supported_anywhere(name):
            return functools.partial(self.build, name)
        raise AttributeError(
            f"'{type(self).__name__}' has no notification '{name}'"
        )

    # ── Delivering ──

    def perform_notify(
        self,
        delivery: Delivery,
        *,
        sync: bool = False,
        enqueue_options: Optional[Mapping[str, Any]] = None,
    ) -> None:
        enqueue_options = dict(enqueue_options or {})

        if delivery_testing.enabled():
            delivery_testing.track(delivery, {"sync": sync, **enqueue_options})
            return

        self.notification_name = delivery.notification
        self.current_delivery = delivery

        with dispatch_context(delivery=type(self).__name__,
                              notification=delivery.notification):
            completed, _ = self.run_callbacks(
                "notify",
                lambda: self._notify_lines(delivery, sync, enqueue_options),
            )
        if not completed:
            logger.info("Notification %s.%s halted by callback",
                        type(self).__name__, delivery.notification)

    def _notify_lines(self, delivery: Delivery, sync: bool,
                      enqueue_options: Mapping[str, Any]) -> None:
        errors: Dict[str, BaseException] = {}

        for line_id, line in self.delivery_lines().items():
            if not line.notify_supported(delivery.notification):
                logger.debug("Line %s skipped for %s.%s",
                             line_id, type(self).__name__, delivery.notification)
                continue

            def core(line: Line = line) -> Any:
                return line.notify(
                    delivery.notification,
                    delivery.args,
                    delivery.kwargs,
                    params=self.params,
                    sync=sync,
                    enqueue_options=enqueue_options,
                )

            try:
                with dispatch_context(line=line_id):
                    self.run_callbacks(line_id, core)
            except Exception as exc:
                logger.error(
                    "Line %s failed for %s.%s: %s",
                    line_id, type(self).__name__, delivery.notification, exc,
                    exc_info=True,
                    extra={"line": line_id, "sync": sync},
                )
                errors[line_id] = exc

        if errors:
            raise LineDispatchError(type(self).__name__, delivery.notification, errors) \
                from next(iter(errors.values()))


BaseDelivery.register_line("mailer", MailerLine)
BaseDelivery.register_line("notifier", notifier=True)
