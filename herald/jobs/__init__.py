"""
jobs — Queue adapters for deferred delivery.

Each adapter exposes:
    enqueue(handler_class_name, action_name, *, params, args, kwargs, **options)

Adapters only hand work off; executing it is the consumer's job
(``adapters.perform_delivery``). Retries and durability belong to the
queue backend.
"""

from herald.jobs.adapters import (
    ADAPTERS,
    EnqueuedJob,
    InlineAdapter,
    MemoryAdapter,
    lookup,
    perform_delivery,
    use_adapter,
)

__all__ = [
    "ADAPTERS",
    "EnqueuedJob",
    "InlineAdapter",
    "MemoryAdapter",
    "lookup",
    "perform_delivery",
    "use_adapter",
]
