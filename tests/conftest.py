"""
Shared fixtures.

Every test runs in test delivery mode with empty recording stores;
tests that need the real transport path opt in with ``memory_adapter``.
"""

from __future__ import annotations

import pytest

from herald.core.config import override_settings
from herald.delivery import testing as delivery_testing
from herald.jobs.adapters import default_adapter, use_adapter
from herald.mailer import testing as mailer_testing
from herald.notifier import testing as notifier_testing


@pytest.fixture(autouse=True)
def delivery_test_mode():
    notifier_testing.clear()
    mailer_testing.clear()
    delivery_testing.clear()
    default_adapter.cache_clear()
    with override_settings(ENVIRONMENT="test", DELIVERY_MODE="test") as config:
        yield config


@pytest.fixture
def memory_adapter():
    """Normal delivery mode with every deferred job kept in memory."""
    with override_settings(DELIVERY_MODE="normal"), use_adapter("memory") as adapter:
        yield adapter
