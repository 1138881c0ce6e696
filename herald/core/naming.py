"""
naming.py — Dotted-name class lookup.

Handler classes cross process boundaries by name, and delivery lines
find their handlers by naming convention (``EventsDelivery`` →
``EventsMailer``). Both need "turn this string into a class, or give me
None" — the lookup never raises.

Lookup order:
    1. Classes registered at definition time (``register_constant``).
       This covers handlers defined somewhere importlib cannot reach,
       e.g. inside a function.
    2. ``importlib`` — longest importable module prefix, then attribute
       walk over the remaining qualified-name parts.
"""

from __future__ import annotations

import importlib
import logging
import sys
import weakref
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Latest definition wins, so reloaded classes replace stale ones.
_constants: "weakref.WeakValueDictionary[str, type]" = weakref.WeakValueDictionary()


def qualified_name(cls: type) -> str:
    """``module.QualName`` for a class."""
    return f"{cls.__module__}.{cls.__qualname__}"


def register_constant(cls: type) -> None:
    _constants[qualified_name(cls)] = cls


def namespace_of(cls: type) -> str:
    """Everything before the class's own name, with the trailing dot."""
    full = qualified_name(cls)
    return full[: len(full) - len(cls.__name__)]


def safe_constantize(path: Optional[str]) -> Optional[Any]:
    """Resolve a dotted path to an object; None when anything is missing."""
    if not path:
        return None

    found = _constants.get(path)
    if found is not None:
        return found

    parts = path.split(".")
    for split in range(len(parts) - 1, 0, -1):
        module_name = ".".join(parts[:split])
        module = sys.modules.get(module_name)
        if module is None:
            try:
                module = importlib.import_module(module_name)
            except ImportError:
                continue
            except Exception as exc:  # broken module body
                logger.debug("Import of %s failed during lookup: %s", module_name, exc)
                return None

        obj: Any = module
        for attr in parts[split:]:
            obj = getattr(obj, attr, None)
            if obj is None:
                break
        if obj is not None:
            return obj
        # the module exists, so a shorter prefix would not hold the name either
        return None

    return None
