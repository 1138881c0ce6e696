"""
drivers.py — Ready-made notifier drivers.

A driver is any callable taking the payload dict. ``WebhookDriver``
POSTs it as JSON:

    class ApplicationNotifier(Notifier):
        driver = WebhookDriver("https://hooks.example.com/herald")
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from herald.core.config import current_settings

logger = logging.getLogger(__name__)


class WebhookDriver:
    """POST each notification payload to a fixed URL."""

    def __init__(
        self,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.url = url
        self.headers = dict(headers or {})
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            timeout = self.timeout or current_settings().WEBHOOK_TIMEOUT
            self._client = httpx.Client(timeout=timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            self._client.close()

    def __call__(self, payload: Dict[str, Any]) -> Any:
        response = self._get_client().post(self.url, json=payload, headers=self.headers)
        response.raise_for_status()
        logger.info("[WEBHOOK] %s → %s", self.url, response.status_code)
        if not response.content:
            return None
        return response.json()
