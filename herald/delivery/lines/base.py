"""
base.py — Line base class and handler resolution.

═══════════════════════════════════════════════════════════════════════════
HANDLER RESOLUTION
═══════════════════════════════════════════════════════════════════════════

For ``line.handler_class`` on a delivery class D:

    1. D is abstract                     → None
    2. handler set explicitly on D       → that class (dotted names are
                                           looked up, None if missing)
    3. the line's resolver against D     → e.g. app.deliveries.EventsDelivery
                                           → app.deliveries.EventsMailer
    4. the same line on D's parent       → parent's resolved handler

An abstract parent never resolves for itself, but still passes its
explicit handler (or its own parent's) down to concrete subclasses.

Resolvers are built from, in order of preference:

    resolver=callable          called with the delivery class
    resolver_pattern="..."     str.format with {delivery_class},
                               {delivery_name}, {delivery_namespace}
    suffix="Mailer"            swap the trailing "Delivery" for the suffix

Resolution never raises for a missing handler: None means "this line
does not apply". Results are memoized per line unless CACHE_CLASSES is
off (hot reload replaces classes between requests).
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, ClassVar, Mapping, Optional, Sequence

from herald.core.config import current_settings
from herald.core.naming import namespace_of, qualified_name, safe_constantize

logger = logging.getLogger(__name__)

Resolver = Callable[[type], Optional[type]]

DELIVERY_SUFFIX = "Delivery"

_UNSET: Any = object()


def delivery_name(owner: type) -> str:
    """``EventsDelivery`` → ``Events``."""
    name = owner.__name__
    if name.endswith(DELIVERY_SUFFIX):
        return name[: -len(DELIVERY_SUFFIX)]
    return name


def suffix_resolver(suffix: str) -> Resolver:
    def resolve(owner: type) -> Optional[type]:
        full_name = qualified_name(owner)
        if not full_name.endswith(DELIVERY_SUFFIX):
            return None
        return safe_constantize(full_name[: -len(DELIVERY_SUFFIX)] + suffix)
    return resolve


def pattern_resolver(pattern: str) -> Resolver:
    def resolve(owner: type) -> Optional[type]:
        return safe_constantize(pattern.format(
            delivery_class=qualified_name(owner),
            delivery_name=delivery_name(owner),
            delivery_namespace=namespace_of(owner),
        ))
    return resolve


class Line:
    """
    A channel bound to a delivery class.

    Subclasses implement ``notify_now`` / ``notify_later`` and usually
    set ``default_suffix`` for convention-based resolution.
    """

    default_suffix: ClassVar[Optional[str]] = None

    def __init__(self, *, id: str, owner: type, **options: Any):
        self.id = id
        self.owner = owner
        self.options: Mapping[str, Any] = MappingProxyType(dict(options))
        self.resolver = self._build_resolver()
        self._explicit: Any = _UNSET
        self._resolved: Any = _UNSET

    def _build_resolver(self) -> Optional[Resolver]:
        if self.options.get("resolver") is not None:
            return self.options["resolver"]
        if self.options.get("resolver_pattern"):
            return pattern_resolver(self.options["resolver_pattern"])
        suffix = self.options.get("suffix", self.default_suffix)
        if suffix:
            return suffix_resolver(suffix)
        return None

    def dup_for(self, new_owner: type) -> "Line":
        """Same id and options, different owner; explicit handlers stay behind."""
        return type(self)(id=self.id, owner=new_owner, **self.options)

    # ── Resolution ──

    @property
    def explicit_handler(self) -> Any:
        return None if self._explicit is _UNSET else self._explicit

    @property
    def handler_class(self) -> Optional[type]:
        return self._resolve()

    def _resolve(self, *, ignore_abstract: bool = False) -> Optional[type]:
        """
        Resolve the handler; with ``ignore_abstract`` an abstract owner
        still hands down its explicit handler (or its parent's).
        """
        abstract = self.owner.is_abstract_class()
        if abstract and not ignore_abstract:
            return None

        cache = current_settings().CACHE_CLASSES
        if cache and self._resolved is not _UNSET:
            return self._resolved

        if self._explicit is not _UNSET:
            resolved = self._explicit
            if isinstance(resolved, str):
                resolved = safe_constantize(resolved)
        elif abstract:
            # abstract owners never match by convention
            resolved = self._superclass_handler()
        else:
            resolved = self.resolve_class(self.owner) or self._superclass_handler()

        if cache:
            self._resolved = resolved
        return resolved

    @handler_class.setter
    def handler_class(self, value: Any) -> None:
        self._explicit = value
        self._resolved = _UNSET

    def resolve_class(self, owner: type) -> Optional[type]:
        if self.resolver is None:
            return None
        return self.resolver(owner)

    def _superclass_handler(self) -> Optional[type]:
        parent = self.owner.parent_delivery()
        if parent is None:
            return None
        line = parent.delivery_lines().get(self.id)
        if line is None:
            return None
        return line._resolve(ignore_abstract=True)

    # ── Dispatch ──

    def handler_supports(self, handler: Any, action: str) -> bool:
        """Capability query: a public callable named ``action``."""
        return not action.startswith("_") and callable(getattr(handler, action, None))

    def notify_supported(self, action: str) -> bool:
        handler = self.handler_class
        return handler is not None and self.handler_supports(handler, str(action))

    def notify(
        self,
        action: str,
        args: Sequence[Any] = (),
        kwargs: Optional[Mapping[str, Any]] = None,
        *,
        params: Optional[Mapping[str, Any]] = None,
        sync: bool = False,
        enqueue_options: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        handler: Any = self.handler_class
        if params:
            handler = handler.with_(**params)
        kwargs = dict(kwargs or {})

        if sync:
            return self.notify_now(handler, action, *args, **kwargs)
        if enqueue_options:
            return self.notify_later_with_options(
                handler, dict(enqueue_options), action, *args, **kwargs
            )
        return self.notify_later(handler, action, *args, **kwargs)

    def notify_now(self, handler: Any, action: str, *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} cannot deliver now")

    def notify_later(self, handler: Any, action: str, *args: Any, **kwargs: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} cannot deliver later")

    def notify_later_with_options(self, handler: Any, enqueue_options: Mapping[str, Any],
                                  action: str, *args: Any, **kwargs: Any) -> Any:
        return self.notify_later(handler, action, *args, **kwargs)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} owner={self.owner.__name__}>"
