"""Per-source acquisition and persistence steps shared by both refresh paths."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from catalog_sync.cache import HistoryStore, SnapshotCache, nm_equivalent
from catalog_sync.core import (
    CacheError,
    EmptySnapshotError,
    HistoryError,
    Side,
    Snapshot,
    SourceData,
    SourceError,
    SourceUnavailableError,
)
from catalog_sync.engine.registry import SourceDescriptor
from catalog_sync.sources import SourceAdapter, split_market

logger = logging.getLogger(__name__)


@dataclass
class SideOutcome:
    """What one side of one source produced in a cycle."""

    side: Side
    data: list[SourceData] = field(default_factory=list)
    reused: list[SourceData] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


async def fetch_snapshot(
    descriptor: SourceDescriptor,
    adapter: SourceAdapter,
    side: Side,
    timeout: float,
) -> Snapshot:
    """Call the adapter for one side, bounded by ``timeout`` seconds.

    Raises:
        SourceUnavailableError: On timeout.
        EmptySnapshotError: If the snapshot has no records.
    """
    call = adapter.inventory() if side == Side.SELLER else adapter.buylist()
    try:
        snapshot = await asyncio.wait_for(call, timeout=timeout)
    except TimeoutError as e:
        raise SourceUnavailableError(
            f"{descriptor.code} {side.value} timed out after {timeout:g}s",
            context={"code": descriptor.code, "side": side.value},
        ) from e
    if snapshot.is_empty:
        kind = "inventory" if side == Side.SELLER else "buylist"
        raise EmptySnapshotError(
            f"empty {kind}",
            context={"code": descriptor.code, "side": side.value},
        )
    return snapshot


async def acquire_side(
    descriptor: SourceDescriptor,
    adapter: SourceAdapter,
    side: Side,
    timeout: float,
) -> SideOutcome:
    """Fetch one side and turn it into publishable SourceData.

    Failures never raise: they are recorded in ``SideOutcome.failed``
    keyed by every code the side would have published under.
    """
    outcome = SideOutcome(side=side)
    codes = descriptor.codes(side)
    try:
        snapshot = await fetch_snapshot(descriptor, adapter, side, timeout)
        info = adapter.info()
    except SourceError as e:
        logger.warning("%s %s failed: %s", descriptor.code, side.value, e)
        outcome.failed = {code: str(e) for code in codes}
        return outcome
    except Exception as e:
        logger.exception("%s %s raised unexpectedly", descriptor.code, side.value)
        outcome.failed = {code: f"{type(e).__name__}: {e}" for code in codes}
        return outcome

    if side == Side.SELLER and descriptor.is_market:
        for sub_info, sub_snapshot in split_market(snapshot, info, descriptor.keepers):
            if sub_snapshot.is_empty:
                outcome.failed[sub_info.code] = "empty inventory"
                continue
            stamped = sub_info.model_copy(
                update={"inventory_timestamp": sub_snapshot.captured_at}
            )
            outcome.data.append(SourceData(info=stamped, side=side, snapshot=sub_snapshot))
        return outcome

    stamp_field = "inventory_timestamp" if side == Side.SELLER else "buylist_timestamp"
    stamped = info.model_copy(update={"code": codes[0], stamp_field: snapshot.captured_at})
    outcome.data.append(SourceData(info=stamped, side=side, snapshot=snapshot))
    return outcome


async def persist(
    data: SourceData,
    descriptor: SourceDescriptor,
    cache: SnapshotCache,
    history: HistoryStore | None = None,
) -> None:
    """Write fresh data to the snapshot cache and history store.

    Both are best effort: failures are logged and never propagate.
    """
    try:
        path = await cache.store(data)
        logger.debug("%s %s saved to %s", data.side.value, data.code, path)
    except CacheError as e:
        logger.warning("Cache write for %s %s failed: %s", data.side.value, data.code, e)

    if history is not None:
        await record_history(data, descriptor, history)


async def record_history(
    data: SourceData,
    descriptor: SourceDescriptor,
    history: HistoryStore,
) -> int:
    """Mirror the best price of every item into the source's history namespace.

    Sell-side prices are scaled to an NM equivalent and only fill days
    that have no point yet; buy-side prices overwrite.
    """
    key = data.code if descriptor.is_market and data.side == Side.SELLER else data.side.value
    namespace = descriptor.history.get(key)
    if namespace is None:
        return 0

    date_key = data.snapshot.captured_at.date().isoformat()
    if data.side == Side.SELLER:
        points = [
            (item_id, nm_equivalent(entries[0].price, entries[0].conditions))
            for item_id, entries in data.snapshot.records.items()
            if entries
        ]
        overwrite = False
    else:
        points = [
            (item_id, entries[0].buy_price)
            for item_id, entries in data.snapshot.records.items()
            if entries
        ]
        overwrite = True

    try:
        count = await history.record_many(namespace, date_key, points, overwrite=overwrite)
    except HistoryError as e:
        logger.warning("History for %s %s failed: %s", data.side.value, data.code, e)
        return 0
    logger.info("Stashed %d %s points for %s", count, namespace, data.code)
    return count


async def close_adapter(adapter: SourceAdapter) -> None:
    try:
        await adapter.close()
    except Exception:
        logger.exception("Closing adapter %r failed", adapter)
