"""
test_jobs.py — Tests for async adapters and the worker entry point.

Covers:
    • Memory and inline adapters
    • Adapter lookup and scoping
    • Celery adapter (task mocked)
    • FastAPI BackgroundTasks adapter

Run with:
    pytest tests/test_jobs.py -v
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from fastapi import BackgroundTasks

from herald.core.config import override_settings
from herald.core.errors import ConfigurationError
from herald.core.naming import qualified_name
from herald.jobs.adapters import (
    EnqueuedJob,
    InlineAdapter,
    MemoryAdapter,
    default_adapter,
    lookup,
    perform_delivery,
    scoped_adapter,
    use_adapter,
)
from herald.jobs.celery_adapter import CeleryAdapter, perform_delivery_task
from herald.jobs.fastapi_adapter import BackgroundTasksAdapter
from herald.notifier import Notifier

SENT = []


class JobsNotifier(Notifier):
    driver = staticmethod(SENT.append)

    def ping(self, target, loud=False):
        return self.notification(
            body=f"ping {target}", loud=loud, team=self.params.get("team"),
        )


@pytest.fixture(autouse=True)
def normal_mode():
    SENT.clear()
    with override_settings(DELIVERY_MODE="normal"):
        yield


# ═══════════════════════════════════════════════════════════════════════════
# Worker entry point
# ═══════════════════════════════════════════════════════════════════════════

class TestPerformDelivery:

    def test_rebuilds_and_delivers(self):
        perform_delivery(qualified_name(JobsNotifier), "ping",
                         {"team": "ops"}, ["db"], {"loud": True})
        assert SENT == [{"body": "ping db", "loud": True, "team": "ops"}]

    def test_unknown_handler(self):
        with pytest.raises(ConfigurationError, match="not found"):
            perform_delivery("nowhere.GhostNotifier", "ping")

    def test_job_descriptor(self):
        job = EnqueuedJob(qualified_name(JobsNotifier), "ping", args=["db"])
        assert job.to_dict()["action_name"] == "ping"
        job.perform()
        assert SENT[0]["body"] == "ping db"


# ═══════════════════════════════════════════════════════════════════════════
# Built-in adapters
# ═══════════════════════════════════════════════════════════════════════════

class TestMemoryAdapter:

    def test_keeps_jobs_until_performed(self):
        adapter = MemoryAdapter(queue="q1")
        with use_adapter(adapter):
            JobsNotifier.with_(team="ops").ping("db").notify_later()

        assert SENT == []
        assert adapter.jobs[0].options == {"queue": "q1"}
        assert adapter.perform_enqueued() == 1
        assert adapter.jobs == []
        assert SENT[0]["team"] == "ops"

    def test_clear(self):
        adapter = MemoryAdapter()
        with use_adapter(adapter):
            JobsNotifier.build("ping", "db").notify_later()
        adapter.clear()
        assert adapter.perform_enqueued() == 0


class TestInlineAdapter:

    def test_performs_on_enqueue(self):
        with use_adapter("inline") as adapter:
            assert isinstance(adapter, InlineAdapter)
            JobsNotifier.build("ping", "db").notify_later()
        assert SENT == [{"body": "ping db", "loud": False, "team": None}]


class TestAdapterResolution:

    def test_lookup_by_name(self):
        assert isinstance(lookup("memory", {"queue": "x"}), MemoryAdapter)

    def test_lookup_unknown(self):
        with pytest.raises(ConfigurationError, match="hasn't been found"):
            lookup("carrier-pigeon")

    def test_objects_pass_through(self):
        adapter = object()
        assert lookup(adapter) is adapter

    def test_scope_restored(self):
        with use_adapter("memory"):
            assert scoped_adapter() is not None
        assert scoped_adapter() is None

    def test_class_adapter_by_name(self):
        class QueuedNotifier(Notifier):
            async_adapter = "memory"

        assert isinstance(QueuedNotifier.resolve_async_adapter(), MemoryAdapter)

    def test_set_async_adapter(self):
        class TunedNotifier(Notifier):
            pass

        TunedNotifier.set_async_adapter("memory", queue="tuned")
        assert TunedNotifier.resolve_async_adapter().queue == "tuned"

    def test_scoped_beats_class_adapter(self):
        class PinnedNotifier(Notifier):
            async_adapter = "inline"

        with use_adapter("memory") as scoped:
            assert PinnedNotifier.resolve_async_adapter() is scoped

    def test_settings_default_is_shared(self):
        default_adapter.cache_clear()
        with override_settings(NOTIFIER_ASYNC_ADAPTER="memory"):
            first = JobsNotifier.resolve_async_adapter()
            assert first is Notifier.resolve_async_adapter()
            assert first.queue == "notifiers"


# ═══════════════════════════════════════════════════════════════════════════
# Celery
# ═══════════════════════════════════════════════════════════════════════════

class TestCeleryAdapter:

    def test_apply_async_on_default_queue(self):
        task = MagicMock()
        with use_adapter(CeleryAdapter(queue="notifiers", task=task)):
            JobsNotifier.with_(team="ops").ping("db", loud=True).notify_later(countdown=30)

        task.apply_async.assert_called_once_with(
            args=[qualified_name(JobsNotifier), "ping", {"team": "ops"}, ["db"], {"loud": True}],
            queue="notifiers",
            countdown=30,
        )

    def test_queue_override(self):
        task = MagicMock()
        adapter = CeleryAdapter(task=task)
        adapter.enqueue("a.B", "c", params={}, args=[], kwargs={}, queue="urgent")
        assert task.apply_async.call_args.kwargs["queue"] == "urgent"

    def test_registered_by_name(self):
        assert isinstance(lookup("celery", {"queue": "mailers"}), CeleryAdapter)

    @patch("herald.jobs.celery_adapter.perform_delivery")
    def test_task_body_performs(self, perform):
        perform_delivery_task.run("a.BNotifier", "ping", {}, ["db"], {})
        perform.assert_called_once_with("a.BNotifier", "ping", {}, ["db"], {})


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI BackgroundTasks
# ═══════════════════════════════════════════════════════════════════════════

class TestBackgroundTasksAdapter:

    def test_adds_task(self):
        tasks = BackgroundTasks()
        with use_adapter(BackgroundTasksAdapter(tasks)):
            JobsNotifier.build("ping", "db").notify_later()

        task, = tasks.tasks
        assert task.func is perform_delivery
        assert task.args == (qualified_name(JobsNotifier), "ping", {}, ["db"], {})
        assert SENT == []

    def test_requires_background_tasks(self):
        with use_adapter("background_tasks"):
            with pytest.raises(ConfigurationError, match="BackgroundTasks"):
                JobsNotifier.build("ping", "db").notify_later()
