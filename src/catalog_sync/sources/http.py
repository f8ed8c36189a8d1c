"""HTTP feed adapter: downloads pre-normalized JSON snapshots."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import httpx
from pydantic import ValidationError

from catalog_sync.core import (
    Listing,
    Snapshot,
    SourceConfig,
    SourceInfo,
    SourceUnavailableError,
    SyncConfig,
)
from catalog_sync.sources.base import source_info

logger = logging.getLogger(__name__)

_USER_AGENT = "catalog-sync/0.1"
_RETRY_STATUSES = (500, 502, 503, 504)
_CONNECTION_RETRY_DELAY = 2.0


class HttpFeedAdapter:
    """Fetches inventory/buylist snapshots from a JSON feed.

    The feed document is ``{"records": {item_id: [listing, ...]}}``; any
    other top-level keys are ignored. Listing order inside each record is
    preserved as the provider's ranking.

    Parameters
    ----------
    source : SourceConfig
        The configured source; supplies the feed URLs.
    request_timeout : float
        Per-request timeout in seconds.
    max_retries : int
        Retries for 5xx responses and connection errors.
    transport : httpx.AsyncBaseTransport | None
        Optional transport override.
    """

    def __init__(
        self,
        source: SourceConfig,
        request_timeout: float = 60.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._source = source
        self._max_retries = max_retries
        self._client = httpx.AsyncClient(
            headers={"User-Agent": _USER_AGENT},
            timeout=httpx.Timeout(request_timeout),
            follow_redirects=True,
            transport=transport,
        )

    def info(self) -> SourceInfo:
        return source_info(self._source)

    async def inventory(self) -> Snapshot:
        return await self._fetch_snapshot(self._source.inventory_url, "seller")

    async def buylist(self) -> Snapshot:
        return await self._fetch_snapshot(self._source.buylist_url, "vendor")

    async def close(self) -> None:
        await self._client.aclose()

    async def _fetch_snapshot(self, url: str | None, side: str) -> Snapshot:
        if not url:
            raise SourceUnavailableError(
                f"{self._source.code} has no {side} feed configured",
                context={"code": self._source.code, "side": side},
            )

        captured_at = datetime.now(timezone.utc)
        response = await self._request(url, side)
        try:
            payload = response.json()
        except ValueError as e:
            raise SourceUnavailableError(
                f"Unparseable JSON from {url}",
                context={"code": self._source.code, "side": side, "url": url},
            ) from e

        return _parse_feed(payload, captured_at, self._source.code, side, url)

    async def _request(self, url: str, side: str) -> httpx.Response:
        """GET with retry on server and connection errors.

        Retry policy:
            - HTTP 5xx: exponential backoff (1s, 2s, 4s...), up to max_retries.
            - Connection errors: fixed 2s delay, up to max_retries.
            - Other non-200 statuses: raise immediately.
        """
        context = {"code": self._source.code, "side": side, "url": url}

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._client.get(url)
            except (httpx.ConnectError, httpx.ReadError) as e:
                if attempt < self._max_retries:
                    logger.warning(
                        "Connection error on %s, retrying in %ds (attempt %d/%d)",
                        url, _CONNECTION_RETRY_DELAY, attempt + 1, self._max_retries,
                    )
                    await asyncio.sleep(_CONNECTION_RETRY_DELAY)
                    continue
                raise SourceUnavailableError(
                    f"Connection failed after retries: {url}",
                    context={**context, "error": str(e)},
                ) from e
            except httpx.TimeoutException as e:
                raise SourceUnavailableError(
                    f"Timed out fetching {url}", context=context
                ) from e

            if response.status_code == 200:
                return response

            if response.status_code in _RETRY_STATUSES and attempt < self._max_retries:
                delay = 2**attempt
                logger.warning(
                    "Server error %d on %s, retrying in %ds (attempt %d/%d)",
                    response.status_code, url, delay, attempt + 1, self._max_retries,
                )
                await asyncio.sleep(delay)
                continue

            raise SourceUnavailableError(
                f"HTTP {response.status_code} from {url}",
                context={**context, "status_code": response.status_code},
            )

        raise SourceUnavailableError(
            f"Request failed after all retries: {url}", context=context
        )


def _parse_feed(
    payload: object,
    captured_at: datetime,
    code: str,
    side: str,
    url: str,
) -> Snapshot:
    """Validate a feed document into a Snapshot."""
    if not isinstance(payload, dict) or not isinstance(payload.get("records"), dict):
        raise SourceUnavailableError(
            f"Feed from {url} has no 'records' mapping",
            context={"code": code, "side": side, "url": url},
        )

    records: dict[str, tuple[Listing, ...]] = {}
    try:
        for item_id, entries in payload["records"].items():
            records[str(item_id)] = tuple(Listing.model_validate(e) for e in entries)
    except (ValidationError, TypeError) as e:
        raise SourceUnavailableError(
            f"Malformed listing in feed from {url}: {e}",
            context={"code": code, "side": side, "url": url},
        ) from e

    return Snapshot(records=records, captured_at=captured_at)


def create_http_adapter(source: SourceConfig, config: SyncConfig) -> HttpFeedAdapter:
    """Adapter factory for ``kind: http`` sources."""
    timeout = source.timeout_seconds or config.sync.source_timeout
    return HttpFeedAdapter(
        source,
        request_timeout=timeout,
        max_retries=config.sync.max_retries,
    )
