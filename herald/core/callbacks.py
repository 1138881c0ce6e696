"""
callbacks.py — Ordered before/after/around hook chains.

A chain belongs to one scope (``notify``, a line id, ``action``,
``deliver``) and wraps one unit of work, the *core*.

═══════════════════════════════════════════════════════════════════════════
EXECUTION ORDER
═══════════════════════════════════════════════════════════════════════════

    before hooks (registration order)
        └─ a hook returning exactly ``False`` halts the chain
    around hooks (first registered = outermost)
        └─ each receives a continuation; not calling it halts the chain
    core
    after hooks (registration order, only when the core ran)

Halting is control flow, not failure: nothing is raised and the chain
returns ``(False, None)``.

═══════════════════════════════════════════════════════════════════════════
FILTERS
═══════════════════════════════════════════════════════════════════════════

    only / except_   → names matched against ``instance.<name_attribute>``
                       at run time (late-bound)
    if_ / unless     → method names or callables taking the instance

All conditions combine with logical AND.

Chains are copied when a class first touches its own chain, so a
subclass can add or skip hooks without changing its ancestors.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from herald.core.errors import ConfigurationError

Target = Union[str, Callable[..., Any]]
Condition = Union[str, Callable[[Any], Any]]


class CallbackKind(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    AROUND = "around"


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _evaluate(instance: Any, condition: Condition) -> Any:
    if isinstance(condition, str):
        return getattr(instance, condition)()
    return condition(instance)


def _name_filter(names: Iterable[Any], attribute: str, include: bool) -> Callable[[Any], bool]:
    wanted = frozenset(str(n) for n in names)

    def predicate(instance: Any) -> bool:
        current = getattr(instance, attribute, None)
        return (str(current) in wanted) is include

    return predicate


def compile_conditions(
    *,
    only: Any = None,
    except_: Any = None,
    if_: Any = None,
    unless: Any = None,
    name_attribute: str = "notification_name",
) -> Tuple[Tuple[Condition, ...], Tuple[Condition, ...]]:
    """Fold only/except lists into the if/unless condition lists."""
    positive: List[Condition] = _as_list(if_)
    negative: List[Condition] = _as_list(unless)

    only_names = _as_list(only)
    if only_names:
        positive.insert(0, _name_filter(only_names, name_attribute, True))

    except_names = _as_list(except_)
    if except_names:
        negative.insert(0, _name_filter(except_names, name_attribute, True))

    return tuple(positive), tuple(negative)


@dataclass(frozen=True)
class Callback:
    """One registered hook."""
    kind: CallbackKind
    target: Target
    if_: Tuple[Condition, ...] = ()
    unless: Tuple[Condition, ...] = ()

    def applies(self, instance: Any) -> bool:
        if not all(_evaluate(instance, c) for c in self.if_):
            return False
        return not any(_evaluate(instance, c) for c in self.unless)

    def call(self, instance: Any, *args: Any) -> Any:
        if isinstance(self.target, str):
            return getattr(instance, self.target)(*args)
        return self.target(instance, *args)

    def matches(self, kind: CallbackKind, target: Target) -> bool:
        return self.kind is kind and self.target == target


@dataclass
class CallbackChain:
    """Ordered hooks for one scope."""
    scope: str
    callbacks: List[Callback] = field(default_factory=list)

    def copy(self) -> "CallbackChain":
        return CallbackChain(self.scope, list(self.callbacks))

    def append(self, callback: Callback) -> None:
        # re-registering the same target moves it to the end
        self.callbacks = [
            cb for cb in self.callbacks
            if not cb.matches(callback.kind, callback.target)
        ]
        self.callbacks.append(callback)

    def skip(
        self,
        kind: CallbackKind,
        target: Target,
        if_: Sequence[Condition] = (),
        unless: Sequence[Condition] = (),
    ) -> None:
        """
        Remove a hook; with conditions, keep it but only run it when they fail.
        """
        updated: List[Callback] = []
        for cb in self.callbacks:
            if not cb.matches(kind, target):
                updated.append(cb)
            elif if_ or unless:
                # skip when the conditions hold == run when they don't
                guard = _skip_guard(tuple(if_), tuple(unless))
                updated.append(replace(cb, unless=cb.unless + (guard,)))
        self.callbacks = updated

    def __len__(self) -> int:
        return len(self.callbacks)

    def run(self, instance: Any, core: Callable[[], Any]) -> Tuple[bool, Any]:
        """
        Run the chain around ``core``.

        Returns ``(completed, result)``; ``completed`` is False when a
        before hook returned False or an around hook did not continue.
        Conditions are checked when each hook is reached, so later hooks
        see state changed by earlier ones and by the core.
        """
        callbacks = list(self.callbacks)

        for cb in callbacks:
            if cb.kind is not CallbackKind.BEFORE or not cb.applies(instance):
                continue
            if cb.call(instance) is False:
                return False, None

        arounds = [cb for cb in callbacks if cb.kind is CallbackKind.AROUND]
        state: Dict[str, Any] = {"ran": False, "result": None}

        def innermost() -> Any:
            state["ran"] = True
            state["result"] = core()
            return state["result"]

        def wrap(index: int) -> Callable[[], Any]:
            if index == len(arounds):
                return innermost
            inner = wrap(index + 1)

            def step() -> Any:
                if arounds[index].applies(instance):
                    return arounds[index].call(instance, inner)
                return inner()
            return step

        wrap(0)()

        if not state["ran"]:
            return False, None

        for cb in callbacks:
            if cb.kind is CallbackKind.AFTER and cb.applies(instance):
                cb.call(instance)

        return True, state["result"]


def _skip_guard(if_: Tuple[Condition, ...], unless: Tuple[Condition, ...]) -> Callable[[Any], bool]:
    def guard(instance: Any) -> bool:
        return all(_evaluate(instance, c) for c in if_) and not any(
            _evaluate(instance, c) for c in unless
        )
    return guard


# ═══════════════════════════════════════════════════════════════════════════
# Class-level registry
# ═══════════════════════════════════════════════════════════════════════════

_MARKER = "__herald_callbacks__"


def hook(kind: str, scope: str, **options: Any) -> Callable[[Callable], Callable]:
    """
    Mark a method defined in a class body as a callback.

    The owning class registers it when it is created (``__init_subclass__``).
    """
    def decorator(func: Callable) -> Callable:
        marks = list(getattr(func, _MARKER, ()))
        marks.append((CallbackKind(kind), scope, options))
        setattr(func, _MARKER, marks)
        return func
    return decorator


def is_hook(func: Any) -> bool:
    """True for methods marked with ``hook``."""
    return bool(getattr(func, _MARKER, None))


class CallbacksMixin:
    """
    Per-class callback chains with copy-on-write inheritance.

    Subclasses declare ``_callback_scopes`` and ``_callback_name_attribute``.
    """

    _callback_scopes: Tuple[str, ...] = ()
    _callback_name_attribute = "notification_name"

    def __init_subclass__(cls, **kwargs: Any):
        super().__init_subclass__(**kwargs)
        for attr, value in list(cls.__dict__.items()):
            for kind, scope, options in getattr(value, _MARKER, ()):
                cls.set_callback(scope, kind, attr, **options)

    @classmethod
    def define_callbacks(cls, *scopes: str) -> None:
        own = cls.__dict__.get("_own_callback_scopes")
        if own is None:
            own = set(cls.callback_scopes())
            cls._own_callback_scopes = own
        own.update(scopes)

    @classmethod
    def callback_scopes(cls) -> frozenset:
        for klass in cls.__mro__:
            own = klass.__dict__.get("_own_callback_scopes")
            if own is not None:
                return frozenset(own) | frozenset(cls._callback_scopes)
        return frozenset(cls._callback_scopes)

    @classmethod
    def callback_chain(cls, scope: str) -> CallbackChain:
        """This class's own chain for ``scope``, copied from the parent on first use."""
        chains = cls.__dict__.get("_callback_chains")
        if chains is None:
            chains = {}
            cls._callback_chains = chains
        chain = chains.get(scope)
        if chain is None:
            chain = CallbackChain(scope)
            for klass in cls.__mro__[1:]:
                parent_chains = klass.__dict__.get("_callback_chains")
                if parent_chains and scope in parent_chains:
                    chain = parent_chains[scope].copy()
                    break
            chains[scope] = chain
        return chain

    @classmethod
    def _check_scope(cls, scope: str) -> None:
        if scope not in cls.callback_scopes():
            raise ConfigurationError(
                f"No callback scope '{scope}' on {cls.__name__}",
                scope=scope,
                known=sorted(cls.callback_scopes()),
            )

    @classmethod
    def set_callback(
        cls,
        scope: str,
        kind: Union[str, CallbackKind],
        *targets: Target,
        only: Any = None,
        except_: Any = None,
        if_: Any = None,
        unless: Any = None,
    ) -> None:
        cls._check_scope(scope)
        positive, negative = compile_conditions(
            only=only, except_=except_, if_=if_, unless=unless,
            name_attribute=cls._callback_name_attribute,
        )
        chain = cls.callback_chain(scope)
        for target in targets:
            chain.append(Callback(CallbackKind(kind), target, positive, negative))

    @classmethod
    def skip_callback(
        cls,
        scope: str,
        kind: Union[str, CallbackKind],
        *targets: Target,
        only: Any = None,
        except_: Any = None,
        if_: Any = None,
        unless: Any = None,
    ) -> None:
        cls._check_scope(scope)
        positive, negative = compile_conditions(
            only=only, except_=except_, if_=if_, unless=unless,
            name_attribute=cls._callback_name_attribute,
        )
        chain = cls.callback_chain(scope)
        for target in targets:
            chain.skip(CallbackKind(kind), target, positive, negative)

    @classmethod
    def _active_chain(cls, scope: str) -> Optional[CallbackChain]:
        for klass in cls.__mro__:
            chains = klass.__dict__.get("_callback_chains")
            if chains and scope in chains:
                return chains[scope]
        return None

    def run_callbacks(self, scope: str, core: Callable[[], Any]) -> Tuple[bool, Any]:
        chain = type(self)._active_chain(scope)
        if not chain:
            return True, core()
        return chain.run(self, core)


def registrar(default_scope: str, kind: str) -> classmethod:
    """Build a ``before_x`` / ``after_x`` / ``around_x`` classmethod."""
    def register(cls, *targets: Target, on: Optional[str] = None, **options: Any):
        cls.set_callback(on or default_scope, kind, *targets, **options)
    register.__name__ = f"{kind}_{default_scope}"
    return classmethod(register)


def skipper(default_scope: str, kind: str) -> classmethod:
    """Build a ``skip_before_x``-style classmethod."""
    def skip(cls, *targets: Target, on: Optional[str] = None, **options: Any):
        cls.skip_callback(on or default_scope, kind, *targets, **options)
    skip.__name__ = f"skip_{kind}_{default_scope}"
    return classmethod(skip)
