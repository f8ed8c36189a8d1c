"""Observer notification sinks for refresh cycle events.

Every cycle start, success and failure is reported as
``notify(channel, message, alert=...)``. Notification is fire-and-forget:
sinks never raise into the engine.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, runtime_checkable

import httpx

from catalog_sync.core import NotifyConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class Notifier(Protocol):
    """Consumer of engine events (logging, operational alerting)."""

    def notify(self, channel: str, message: str, alert: bool = False) -> None: ...

    async def aclose(self) -> None: ...


class LogNotifier:
    """Writes notifications to the log only."""

    def notify(self, channel: str, message: str, alert: bool = False) -> None:
        level = logging.WARNING if alert else logging.INFO
        logger.log(level, "[%s] %s", channel, message)

    async def aclose(self) -> None:
        return None


class WebhookNotifier(LogNotifier):
    """Logs, then posts each notification to a chat webhook in the background.

    Alerts are prefixed with ``@here``; dev mode prefixes ``[DEV]``.
    Delivery failures are logged and dropped.
    """

    def __init__(
        self,
        config: NotifyConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not config.webhook_url:
            raise ValueError("WebhookNotifier needs notify.webhook_url")
        self._url = config.webhook_url
        self._dev_mode = config.dev_mode
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(config.timeout_seconds),
            transport=transport,
        )
        self._pending: set[asyncio.Task] = set()

    def notify(self, channel: str, message: str, alert: bool = False) -> None:
        super().notify(channel, message, alert)

        content = message
        if alert:
            content = "@here " + content
        if self._dev_mode:
            content = "[DEV] " + content

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, webhook notification for %s skipped", channel)
            return
        task = loop.create_task(self._send({"username": channel, "content": content}))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, payload: dict[str, str]) -> None:
        try:
            response = await self._client.post(self._url, json=payload)
            if response.status_code >= 400:
                logger.warning(
                    "Webhook returned HTTP %d for %s", response.status_code, payload["username"]
                )
        except httpx.HTTPError as e:
            logger.warning("Webhook delivery failed: %s", e)

    async def aclose(self) -> None:
        """Wait for in-flight deliveries, then close the HTTP client."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self._client.aclose()


def create_notifier(config: NotifyConfig) -> Notifier:
    """Pick the webhook sink when a URL is configured, else log only."""
    if config.webhook_url:
        return WebhookNotifier(config)
    return LogNotifier()
