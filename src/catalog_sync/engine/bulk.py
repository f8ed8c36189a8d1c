"""Full-catalog resync across every configured source."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from datetime import datetime, timezone

from catalog_sync.cache import HistoryStore, SnapshotCache
from catalog_sync.core import (
    Generation,
    Side,
    SourceData,
    SyncInProgressError,
    SyncReport,
    sort_sources,
)
from catalog_sync.engine.catalog import CatalogStore
from catalog_sync.engine.pipeline import SideOutcome, acquire_side, close_adapter, persist
from catalog_sync.engine.registry import SourceDescriptor, SourceRegistry
from catalog_sync.notify import Notifier

logger = logging.getLogger(__name__)


class BulkSynchronizer:
    """Builds a brand-new catalog generation from all sources and publishes it.

    One task per source runs concurrently; each task holds that source's
    busy guard and fetches its sell and buy sides concurrently, bounded by
    the source timeout. A failing side only loses that side of that
    source. The tasks are joined before anything is published, and the
    new generation replaces the old one in a single swap.

    Sources that fail in a cycle keep whatever entry is live at publish
    time, so a single refresh that lands mid-cycle is not rolled back. A
    cycle in which a configured side gets no usable data at all is
    abandoned and the previous generation stays live. Only one cycle runs
    at a time.

    Parameters
    ----------
    registry : SourceRegistry
        Source descriptors and busy guards.
    catalog : CatalogStore
        The live catalog to publish into.
    cache : SnapshotCache
        Receives every fresh snapshot.
    notifier : Notifier
        Per-source errors go to the ``sync`` channel; cycle events go to
        ``init`` (first load) or ``refresh``.
    history : HistoryStore | None
        Optional price history sink.
    default_timeout : float
        Per-side acquisition timeout when the source sets none.
    skip_refresh_cooldown : float
        Seconds; published data younger than this is reused instead of
        re-fetched. 0 disables.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        catalog: CatalogStore,
        cache: SnapshotCache,
        notifier: Notifier,
        history: HistoryStore | None = None,
        default_timeout: float = 300.0,
        skip_refresh_cooldown: float = 0.0,
    ) -> None:
        self._registry = registry
        self._catalog = catalog
        self._cache = cache
        self._notifier = notifier
        self._history = history
        self._default_timeout = default_timeout
        self._cooldown = skip_refresh_cooldown
        self._cycle_lock = threading.Lock()
        self._cycle_started = datetime.now(timezone.utc)

    async def sync_all(self) -> SyncReport:
        """Run one bulk cycle and publish the result if it is usable.

        Raises SyncInProgressError when another cycle is still running.
        """
        if not self._cycle_lock.acquire(blocking=False):
            raise SyncInProgressError(
                "full refresh already in progress",
                context={"started_at": self._cycle_started.isoformat()},
            )
        self._cycle_started = datetime.now(timezone.utc)
        try:
            return await self._run_cycle()
        finally:
            self._cycle_lock.release()

    async def _run_cycle(self) -> SyncReport:
        start = time.monotonic()
        channel = "refresh" if self._catalog.ready else "init"
        self._notifier.notify(channel, "full refresh started")

        previous = self._catalog.current()
        descriptors = self._registry.descriptors()
        results = await asyncio.gather(
            *(self._sync_source(d, previous) for d in descriptors)
        )

        candidates: dict[Side, list[SourceData]] = {Side.SELLER: [], Side.VENDOR: []}
        succeeded: list[str] = []
        failed: dict[str, str] = {}
        for outcomes in results:
            for outcome in outcomes:
                candidates[outcome.side].extend(outcome.data)
                candidates[outcome.side].extend(outcome.reused)
                succeeded.extend(d.code for d in outcome.data)
                for code, reason in outcome.failed.items():
                    failed[f"{outcome.side.value}:{code}"] = reason

        empty_sides = [
            side.value
            for side in Side
            if self._registry.codes(side) and not candidates[side]
        ]
        if empty_sides:
            msg = f"full refresh abandoned: nothing loaded for {', '.join(empty_sides)}"
            logger.error(msg)
            self._notifier.notify(channel, msg, alert=True)
            return SyncReport(
                succeeded=succeeded,
                failed=failed,
                published=False,
                duration_seconds=time.monotonic() - start,
            )

        carried_over: list[str] = []

        def merge(live: Generation) -> tuple[tuple[SourceData, ...], tuple[SourceData, ...]]:
            # Failed sources keep whatever is live now, including a splice
            # from a single refresh that finished while this cycle ran.
            merged = {}
            for side in Side:
                entries = list(candidates[side])
                present = {d.code for d in entries}
                for entry in live.side(side):
                    if entry.code in present or f"{side.value}:{entry.code}" not in failed:
                        continue
                    logger.info("Keeping previous %s data for %s", side.value, entry.code)
                    entries.append(entry)
                    carried_over.append(f"{side.value}:{entry.code}")
                merged[side] = sort_sources(entries)
            return merged[Side.SELLER], merged[Side.VENDOR]

        generation = self._catalog.rebuild(merge)
        self._catalog.mark_ready()
        stats = self._catalog.recompute_derived()

        duration = time.monotonic() - start
        self._notifier.notify(channel, _generation_table(generation))
        self._notifier.notify(
            channel,
            f"full refresh completed in {duration:.1f}s: {stats.total_sellers} sellers, "
            f"{stats.total_vendors} vendors, {len(failed)} failures",
        )
        return SyncReport(
            succeeded=succeeded,
            failed=failed,
            carried_over=carried_over,
            published=True,
            duration_seconds=duration,
        )

    async def _sync_source(
        self,
        descriptor: SourceDescriptor,
        previous: Generation,
    ) -> list[SideOutcome]:
        sides = descriptor.sides()
        if not descriptor.try_begin():
            reason = "refresh already in progress"
            self._notifier.notify("sync", f"{descriptor.code}: {reason}")
            return [
                SideOutcome(side=side, failed={c: reason for c in descriptor.codes(side)})
                for side in sides
            ]

        try:
            return await self._fetch_source(descriptor, sides, previous)
        except Exception as e:
            logger.exception("Bulk task for %s crashed", descriptor.code)
            self._notifier.notify("panic", f"{descriptor.code}: {e}", alert=True)
            return [
                SideOutcome(side=side, failed={c: str(e) for c in descriptor.codes(side)})
                for side in sides
            ]
        finally:
            descriptor.end()

    async def _fetch_source(
        self,
        descriptor: SourceDescriptor,
        sides: list[Side],
        previous: Generation,
    ) -> list[SideOutcome]:
        outcomes: list[SideOutcome] = []
        to_fetch: list[Side] = []
        for side in sides:
            recent = self._recent_entries(descriptor, side, previous)
            if recent is not None:
                logger.info("Skipping %s %s, data too recent", descriptor.code, side.value)
                outcomes.append(SideOutcome(side=side, reused=recent))
            else:
                to_fetch.append(side)
        if not to_fetch:
            return outcomes

        started = time.monotonic()
        try:
            adapter = descriptor.initializer()
        except Exception as e:
            logger.exception("Initializing %s failed", descriptor.code)
            self._notifier.notify("sync", f"error initializing {descriptor.code}: {e}", alert=True)
            return outcomes + [
                SideOutcome(side=side, failed={c: str(e) for c in descriptor.codes(side)})
                for side in to_fetch
            ]

        timeout = descriptor.timeout or self._default_timeout
        try:
            fetched = await asyncio.gather(
                *(acquire_side(descriptor, adapter, side, timeout) for side in to_fetch)
            )
        finally:
            await close_adapter(adapter)
        logger.info("%s took %.1fs", descriptor.code, time.monotonic() - started)

        for outcome in fetched:
            for code, reason in outcome.failed.items():
                self._notifier.notify("sync", f"{outcome.side.value} {code} - {reason}")
            for data in outcome.data:
                await persist(data, descriptor, self._cache, self._history)
        return outcomes + list(fetched)

    def _recent_entries(
        self,
        descriptor: SourceDescriptor,
        side: Side,
        previous: Generation,
    ) -> list[SourceData] | None:
        """Published entries for every code of a side if all are within the cooldown."""
        if self._cooldown <= 0:
            return None
        now = datetime.now(timezone.utc)
        entries = []
        for code in descriptor.codes(side):
            entry = previous.get(side, code)
            if entry is None or entry.timestamp is None:
                return None
            if (now - entry.timestamp).total_seconds() >= self._cooldown:
                return None
            entries.append(entry)
        return entries


def _generation_table(generation: Generation) -> str:
    lines = ["Sellers table"]
    lines += [f"{i} {d.name} {d.code}" for i, d in enumerate(generation.sellers)]
    lines.append("Vendors table")
    lines += [f"{i} {d.name} {d.code}" for i, d in enumerate(generation.vendors)]
    return "\n".join(lines)
