"""CatalogEngine: the entry points the rest of the application may call."""

from __future__ import annotations

import asyncio
import logging

from catalog_sync.cache import (
    HistoryStore,
    SnapshotCache,
    create_history_store,
    create_snapshot_cache,
)
from catalog_sync.core import (
    CatalogSyncError,
    Generation,
    RefreshResult,
    SourceData,
    SyncConfig,
    SyncReport,
)
from catalog_sync.engine.bulk import BulkSynchronizer
from catalog_sync.engine.catalog import CatalogStore
from catalog_sync.engine.refresh import RefreshOrchestrator
from catalog_sync.engine.registry import SourceRegistry
from catalog_sync.engine.startup import load_from_cache
from catalog_sync.notify import Notifier, create_notifier

logger = logging.getLogger(__name__)


class CatalogEngine:
    """Wires registry, catalog, caches and both refresh paths together.

    Use via ``async with await CatalogEngine.create(config) as engine:``
    or call ``close()`` explicitly.
    """

    def __init__(
        self,
        config: SyncConfig,
        registry: SourceRegistry,
        catalog: CatalogStore,
        cache: SnapshotCache,
        notifier: Notifier,
        history: HistoryStore | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._catalog = catalog
        self._cache = cache
        self._notifier = notifier
        self._history = history
        self._refresher = RefreshOrchestrator(
            registry,
            catalog,
            cache,
            notifier,
            history=history,
            default_timeout=config.sync.source_timeout,
        )
        self._bulk = BulkSynchronizer(
            registry,
            catalog,
            cache,
            notifier,
            history=history,
            default_timeout=config.sync.source_timeout,
            skip_refresh_cooldown=config.sync.skip_refresh_cooldown,
        )

    @classmethod
    async def create(
        cls,
        config: SyncConfig,
        registry: SourceRegistry | None = None,
        notifier: Notifier | None = None,
    ) -> CatalogEngine:
        """Build an engine from config, opening the history store if enabled."""
        return cls(
            config,
            registry if registry is not None else SourceRegistry.from_config(config),
            CatalogStore(),
            create_snapshot_cache(config.cache, config.remote),
            notifier if notifier is not None else create_notifier(config.notify),
            history=await create_history_store(config.history),
        )

    async def __aenter__(self) -> CatalogEngine:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @property
    def catalog(self) -> CatalogStore:
        return self._catalog

    @property
    def registry(self) -> SourceRegistry:
        return self._registry

    @property
    def history(self) -> HistoryStore | None:
        return self._history

    # --- Operational triggers ---

    async def load_cache(self) -> Generation:
        """Publish the snapshot cache contents (cold start)."""
        return await load_from_cache(
            self._registry, self._catalog, self._cache, self._notifier
        )

    async def start(self) -> Generation:
        """Cold-start from cache, then run the first bulk cycle unless disabled."""
        await self.load_cache()
        if not self._config.sync.skip_initial_refresh:
            await self._bulk.sync_all()
        return self._catalog.current()

    async def refresh_source(self, code: str) -> RefreshResult:
        return await self._refresher.refresh_source(code)

    async def sync_all(self) -> SyncReport:
        return await self._bulk.sync_all()

    def is_busy(self, code: str) -> bool:
        return self._registry.is_busy(code)

    def catalog_ready(self) -> bool:
        return self._catalog.ready

    def current_generation(self) -> tuple[tuple[SourceData, ...], tuple[SourceData, ...]]:
        generation = self._catalog.current()
        return generation.sellers, generation.vendors

    async def run_forever(self, interval: float | None = None) -> None:
        """Re-run ``sync_all()`` on a fixed cadence until cancelled.

        A failing cycle is logged and retried at the next tick.
        """
        period = interval or self._config.sync.interval_seconds
        while True:
            await asyncio.sleep(period)
            try:
                report = await self._bulk.sync_all()
            except CatalogSyncError as e:
                logger.error("Scheduled sync failed: %s", e)
                continue
            logger.info(
                "Scheduled sync: published=%s ok=%d failed=%d",
                report.published, len(report.succeeded), len(report.failed),
            )

    async def close(self) -> None:
        await self._cache.close()
        if self._history is not None:
            await self._history.close()
        await self._notifier.aclose()
