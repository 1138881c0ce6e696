"""
actions.py — Shared machinery for action handlers (notifiers, mailers).

A handler class exposes *actions*: public methods defined by the user
that build one message each. Handlers are never called directly:

    EventsNotifier.with_(profile=profile).canceled(event).notify_later()
    EventsMailer.build("canceled", event).deliver_now()

``with_`` binds parameters, the action call returns a lazy pending
action, and only the final ``*_now`` / ``*_later`` call does any work.
The deferred path never runs the action in-process: it enqueues the
handler's dotted name, the action name and the arguments, so a worker
in another process can rebuild the same pending action.
"""

from __future__ import annotations

import logging
from functools import partial
from types import FunctionType, MappingProxyType
from typing import Any, Callable, ClassVar, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from herald.core.callbacks import CallbacksMixin, is_hook, registrar, skipper
from herald.core.config import current_settings
from herald.core.naming import qualified_name, register_constant
from herald.jobs.adapters import default_adapter, lookup, scoped_adapter

logger = logging.getLogger(__name__)

DefaultsGenerator = Union[str, Callable[[Any], Mapping[str, Any]]]


class ParamsProxy:
    """A handler class with parameters bound, waiting for an action call."""

    def __init__(self, handler_class: type, params: Mapping[str, Any]):
        self.handler_class = handler_class
        self.params = MappingProxyType(dict(params))

    def handles(self, action: str) -> bool:
        return self.handler_class.handles(action)

    def build(self, action: str, *args: Any, **kwargs: Any) -> "PendingAction":
        if not self.handler_class.handles(action):
            raise AttributeError(
                f"{self.handler_class.__name__} has no action '{action}'"
            )
        return self.handler_class.pending_class(
            self.handler_class, action, self.params, args, kwargs
        )

    def __getattr__(self, name: str) -> Any:
        if not name.startswith("_") and self.handler_class.handles(name):
            return partial(self.build, name)
        raise AttributeError(
            f"{self.handler_class.__name__} has no action '{name}'"
        )

    def __repr__(self) -> str:
        return f"<{self.handler_class.__name__} with {dict(self.params)!r}>"


class PendingAction:
    """
    One action call, not yet processed.

    Processing (instantiating the handler and running the action with
    its callbacks) happens at most once, on first access to ``message``.
    """

    def __init__(
        self,
        handler_class: type,
        action: str,
        params: Mapping[str, Any],
        args: Tuple[Any, ...] = (),
        kwargs: Optional[Mapping[str, Any]] = None,
    ):
        self.handler_class = handler_class
        self.action = action
        self.params = params
        self.args = tuple(args)
        self.kwargs = dict(kwargs or {})
        self._handler: Optional["ActionHandler"] = None
        self._message: Any = None
        self._processed = False

    @property
    def handler(self) -> "ActionHandler":
        if self._handler is None:
            self._handler = self.handler_class(self.action, **self.params)
        return self._handler

    @property
    def processed(self) -> bool:
        return self._processed

    @property
    def message(self) -> Any:
        """The built message, or None when an action callback halted."""
        if not self._processed:
            completed, result = self.handler.process(*self.args, **self.kwargs)
            self._message = result if completed else None
            self._processed = True
            if not completed:
                logger.debug(
                    "Action %s.%s halted by callback",
                    self.handler_class.__name__, self.action,
                )
        return self._message

    def perform_now(self) -> Any:
        """Immediate-delivery primitive; queue workers call this."""
        raise NotImplementedError

    def enqueue(self, **options: Any) -> None:
        config = current_settings()
        if config.noop:
            return
        adapter = self.handler_class.resolve_async_adapter()
        adapter.enqueue(
            qualified_name(self.handler_class),
            self.action,
            params=dict(self.params),
            args=list(self.args),
            kwargs=dict(self.kwargs),
            **options,
        )
        logger.debug(
            "Enqueued %s.%s via %s",
            self.handler_class.__name__, self.action, type(adapter).__name__,
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.handler_class.__name__}.{self.action}"
            f" args={self.args!r} kwargs={self.kwargs!r}>"
        )


class ActionHandler(CallbacksMixin):
    """
    Base for handler classes.

    Class attributes recognised in subclasses:
        defaults       — dict of default payload values (merged with the
                         parent's), or a method name / callable producing them
        async_adapter  — adapter instance or registered adapter name
    """

    _infrastructure = True
    _callback_scopes = ("action", "deliver")
    _callback_name_attribute = "action_name"

    pending_class: ClassVar[type] = PendingAction
    adapter_setting: ClassVar[str] = "NOTIFIER_ASYNC_ADAPTER"
    queue_setting: ClassVar[str] = "NOTIFIER_QUEUE"

    async_adapter: Any = None
    _default_params: Mapping[str, Any] = MappingProxyType({})
    _defaults_generator: Optional[DefaultsGenerator] = None

    before_action = registrar("action", "before")
    after_action = registrar("action", "after")
    around_action = registrar("action", "around")
    skip_before_action = skipper("action", "before")
    skip_after_action = skipper("action", "after")
    skip_around_action = skipper("action", "around")

    before_deliver = registrar("deliver", "before")
    after_deliver = registrar("deliver", "after")
    around_deliver = registrar("deliver", "around")
    skip_before_deliver = skipper("deliver", "before")
    skip_after_deliver = skipper("deliver", "after")
    skip_around_deliver = skipper("deliver", "around")

    def __init_subclass__(cls, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        register_constant(cls)

        declared = cls.__dict__.get("defaults")
        if isinstance(declared, Mapping):
            cls.default(**declared)
        elif declared is not None:
            cls.default(declared)

        if isinstance(cls.__dict__.get("async_adapter"), str):
            cls.async_adapter = lookup(cls.async_adapter)

    def __init__(self, action_name: str, **params: Any):
        self.action_name = action_name
        self.params = MappingProxyType(params)

    # ── Introspection ──

    @classmethod
    def action_methods(cls) -> FrozenSet[str]:
        """Public user-defined methods, excluding infrastructure ones and callbacks."""
        cached = cls.__dict__.get("_action_methods")
        if cached is not None and current_settings().CACHE_CLASSES:
            return cached

        reserved = set()
        names = set()
        for klass in reversed(cls.__mro__):
            if klass.__dict__.get("_infrastructure"):
                reserved.update(klass.__dict__)
                continue
            if not issubclass(klass, ActionHandler):
                continue
            for name, value in klass.__dict__.items():
                if name.startswith("_") or name in reserved:
                    continue
                if isinstance(value, FunctionType) and not is_hook(value):
                    names.add(name)
                else:
                    names.discard(name)

        cls._action_methods = frozenset(names)
        return cls._action_methods

    @classmethod
    def handles(cls, action: str) -> bool:
        return str(action) in cls.action_methods()

    # ── Entry points ──

    @classmethod
    def with_(cls, **params: Any) -> ParamsProxy:
        return ParamsProxy(cls, params)

    @classmethod
    def build(cls, action: str, *args: Any, **kwargs: Any) -> PendingAction:
        return cls.with_().build(action, *args, **kwargs)

    # ── Queue ──

    @classmethod
    def set_async_adapter(cls, adapter: Any, **options: Any) -> None:
        cls.async_adapter = lookup(adapter, options)

    @classmethod
    def resolve_async_adapter(cls) -> Any:
        scoped = scoped_adapter()
        if scoped is not None:
            return scoped
        if cls.async_adapter is not None:
            return cls.async_adapter
        config = current_settings()
        return default_adapter(
            getattr(config, cls.adapter_setting),
            getattr(config, cls.queue_setting),
        )

    # ── Defaults ──

    @classmethod
    def default(cls, method_or_callable: Optional[DefaultsGenerator] = None, **values: Any) -> None:
        """
        Declare default payload values.

        ``default(action="X")`` merges static values with the parent's;
        ``default("method_name")`` or ``default(callable)`` installs a
        generator evaluated per handler instance instead.
        """
        if method_or_callable is not None:
            cls._defaults_generator = method_or_callable
            return
        cls._default_params = MappingProxyType({**cls._default_params, **values})

    def default_values(self) -> Mapping[str, Any]:
        generator = type(self)._defaults_generator
        if generator is None:
            return type(self)._default_params
        if isinstance(generator, str):
            return getattr(self, generator)()
        return generator(self)

    def merge_defaults(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in self.default_values().items():
            payload.setdefault(key, value)
        return payload

    # ── Processing ──

    def process(self, *args: Any, **kwargs: Any) -> Tuple[bool, Any]:
        action = getattr(self, self.action_name)
        return self.run_callbacks("action", lambda: action(*args, **kwargs))
