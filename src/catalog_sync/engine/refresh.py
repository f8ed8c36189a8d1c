"""Single-source refresh: acquire, validate, splice, notify."""

from __future__ import annotations

import asyncio
import logging

from catalog_sync.cache import HistoryStore, SnapshotCache
from catalog_sync.core import RefreshConflictError, RefreshResult, Side
from catalog_sync.engine.catalog import CatalogStore
from catalog_sync.engine.pipeline import acquire_side, close_adapter, persist
from catalog_sync.engine.registry import SourceDescriptor, SourceRegistry
from catalog_sync.notify import Notifier

logger = logging.getLogger(__name__)


class RefreshOrchestrator:
    """Refreshes one source and splices its data into the live catalog.

    Only entries already present in the current generation are replaced:
    a single-source refresh changes the data of visible sources, never the
    set of visible sources. New sources and new market keepers appear only
    through a bulk cycle.

    Parameters
    ----------
    registry : SourceRegistry
        Source descriptors and busy guards.
    catalog : CatalogStore
        The live catalog to splice into.
    cache : SnapshotCache
        Receives every spliced snapshot.
    notifier : Notifier
        Gets cycle start/outcome messages on the ``refresh`` channel.
    history : HistoryStore | None
        Optional price history sink.
    default_timeout : float
        Per-side acquisition timeout when the source sets none.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        catalog: CatalogStore,
        cache: SnapshotCache,
        notifier: Notifier,
        history: HistoryStore | None = None,
        default_timeout: float = 300.0,
    ) -> None:
        self._registry = registry
        self._catalog = catalog
        self._cache = cache
        self._notifier = notifier
        self._history = history
        self._default_timeout = default_timeout

    async def refresh_source(self, code: str) -> RefreshResult:
        """Refresh one source end to end.

        Source failures are reported through the notifier and in the
        returned RefreshResult; the previously published data stays
        visible.

        Raises:
            UnknownSourceError: If ``code`` is not registered.
            RefreshConflictError: If the source is already refreshing.
        """
        descriptor = self._registry.require(code)
        if not descriptor.try_begin():
            msg = f"{descriptor.code} is already being refreshed"
            self._notifier.notify("refresh", msg)
            raise RefreshConflictError(msg, context={"code": descriptor.code})

        try:
            self._notifier.notify("refresh", f"Reloading {descriptor.code}")
            try:
                updated, failed = await self._run(descriptor)
            except Exception as e:
                logger.exception("Refresh of %s crashed", descriptor.code)
                self._notifier.notify("panic", f"{descriptor.code}: {e}", alert=True)
                updated, failed = [], {descriptor.code: f"{type(e).__name__}: {e}"}
        finally:
            descriptor.end()

        result = RefreshResult(code=descriptor.code, updated=updated, failed=failed)
        if result.ok:
            self._notifier.notify("refresh", f"{descriptor.name} refresh completed")
        elif updated:
            self._notifier.notify(
                "refresh",
                f"{descriptor.name} partially refreshed ({', '.join(sorted(failed))} failed)",
                alert=True,
            )
        else:
            self._notifier.notify("refresh", f"{descriptor.name} refresh failed", alert=True)
        return result

    async def _run(self, descriptor: SourceDescriptor) -> tuple[list[str], dict[str, str]]:
        updated: list[str] = []
        failed: dict[str, str] = {}
        timeout = descriptor.timeout or self._default_timeout

        try:
            adapter = descriptor.initializer()
        except Exception as e:
            logger.exception("Initializing %s failed", descriptor.code)
            self._notifier.notify(
                "refresh", f"error initializing {descriptor.code}: {e}", alert=True
            )
            return updated, {descriptor.code: f"initialization failed: {e}"}

        try:
            outcomes = await asyncio.gather(
                *(acquire_side(descriptor, adapter, side, timeout) for side in descriptor.sides())
            )
        finally:
            await close_adapter(adapter)

        for outcome in outcomes:
            for code, reason in outcome.failed.items():
                failed[code] = reason
                self._notifier.notify(
                    "refresh",
                    f"{outcome.side.value} {descriptor.name} {code} - {reason}",
                    alert=True,
                )
            for data in outcome.data:
                if not self._catalog.splice(data):
                    logger.info(
                        "%s %s is not published, refresh skipped", data.side.value, data.code
                    )
                    continue
                updated.append(data.code)
                kind = "inventory" if data.side == Side.SELLER else "buylist"
                self._notifier.notify("refresh", f"{data.code} {kind} updated")
                await persist(data, descriptor, self._cache, self._history)

        return updated, failed
