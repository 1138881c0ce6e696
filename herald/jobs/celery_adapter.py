"""
celery_adapter.py — Deferred delivery through a Celery task.

The worker process must import the modules defining the handler
classes (the usual Celery ``imports`` / autodiscovery setup), since only
the handler's dotted name travels with the message.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Sequence

from celery import shared_task

from herald.jobs.adapters import perform_delivery

logger = logging.getLogger(__name__)

DEFAULT_QUEUE = "notifiers"


@shared_task(name="herald.perform_delivery", ignore_result=True)
def perform_delivery_task(
    handler_class_name: str,
    action_name: str,
    params: Dict[str, Any],
    args: List[Any],
    kwargs: Dict[str, Any],
) -> None:
    """Worker side: rebuild and deliver synchronously."""
    perform_delivery(handler_class_name, action_name, params, args, kwargs)


class CeleryAdapter:
    """Enqueues ``herald.perform_delivery`` on a Celery queue."""

    def __init__(self, queue: str = DEFAULT_QUEUE, task: Any = perform_delivery_task):
        self.queue = queue
        self.task = task

    def enqueue(self, handler_class_name: str, action_name: str, *,
                params: Mapping[str, Any], args: Sequence[Any],
                kwargs: Mapping[str, Any], **options: Any) -> None:
        options.setdefault("queue", self.queue)
        self.task.apply_async(
            args=[handler_class_name, action_name, dict(params), list(args), dict(kwargs)],
            **options,
        )
        logger.debug(
            "Celery task queued for %s.%s on %s",
            handler_class_name, action_name, options["queue"],
        )
