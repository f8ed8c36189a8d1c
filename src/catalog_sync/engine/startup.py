"""Cold start: populate the catalog from the snapshot cache."""

from __future__ import annotations

import asyncio
import logging
import time

from catalog_sync.cache import SnapshotCache
from catalog_sync.core import Generation, Side, sort_sources
from catalog_sync.engine.catalog import CatalogStore
from catalog_sync.engine.registry import SourceRegistry
from catalog_sync.notify import Notifier

logger = logging.getLogger(__name__)


async def load_from_cache(
    registry: SourceRegistry,
    catalog: CatalogStore,
    cache: SnapshotCache,
    notifier: Notifier,
) -> Generation:
    """Publish whatever the cache holds for the registered sources.

    Missing or unreadable entries are skipped; those sources stay absent
    until their next successful refresh. The catalog is marked ready only
    when every configured side got data.
    """
    start = time.monotonic()
    notifier.notify("init", "loading started")

    sellers, vendors = await asyncio.gather(
        cache.load_all(Side.SELLER, registry.codes(Side.SELLER)),
        cache.load_all(Side.VENDOR, registry.codes(Side.VENDOR)),
    )

    if not sellers and not vendors:
        logger.warning("Nothing usable in the snapshot cache")
        notifier.notify("init", "no cached data available")
        return catalog.current()

    generation = catalog.publish(sort_sources(sellers), sort_sources(vendors))
    missing = [
        side.value
        for side in Side
        if registry.codes(side) and not generation.side(side)
    ]
    if not missing:
        catalog.mark_ready()
    catalog.recompute_derived()

    msg = (
        f"loaded {len(sellers)} sellers and {len(vendors)} vendors from cache "
        f"in {time.monotonic() - start:.1f}s"
    )
    logger.info(msg)
    notifier.notify("init", msg)
    return generation
