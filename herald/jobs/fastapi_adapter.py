"""
fastapi_adapter.py — Defer delivery until the current response is sent.

    @app.post("/events/{event_id}/cancel")
    def cancel(event_id: int, background_tasks: BackgroundTasks):
        with use_adapter(BackgroundTasksAdapter(background_tasks)):
            EventsDelivery.with_(profile=profile).notify("canceled", event_id)
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from fastapi import BackgroundTasks

from herald.core.errors import ConfigurationError
from herald.jobs.adapters import perform_delivery


class BackgroundTasksAdapter:
    """Hands each job to the request's ``BackgroundTasks``."""

    def __init__(self, background_tasks: Optional[BackgroundTasks] = None,
                 queue: Optional[str] = None):
        self.background_tasks = background_tasks
        self.queue = queue

    def enqueue(self, handler_class_name: str, action_name: str, *,
                params: Mapping[str, Any], args: Sequence[Any],
                kwargs: Mapping[str, Any], **options: Any) -> None:
        if self.background_tasks is None:
            raise ConfigurationError(
                "BackgroundTasksAdapter needs the request's BackgroundTasks; "
                "scope one per request with use_adapter()",
            )
        self.background_tasks.add_task(
            perform_delivery,
            handler_class_name, action_name,
            dict(params), list(args), dict(kwargs),
        )
