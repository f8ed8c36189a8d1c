"""Process-wide catalog of published source data.

Readers call ``current()`` and get an immutable Generation; they never
lock. Writers build a new Generation and replace the reference in one
assignment, so a reader holding an old reference keeps a coherent view.

Two publication paths with different guarantees:

- ``publish()`` replaces the whole generation (bulk cycles). Readers see
  either all of the old sources or all of the new ones.
- ``splice()`` replaces one source's entry on one side (single-source
  refresh). Readers may see source A already refreshed while source B is
  still from an earlier cycle; each individual entry is still swapped
  atomically.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Sequence

from catalog_sync.core import CatalogStats, Generation, Side, SourceData

logger = logging.getLogger(__name__)

PublishListener = Callable[[Generation], None]
GenerationBuilder = Callable[
    [Generation], tuple[Sequence[SourceData], Sequence[SourceData]]
]


class CatalogStore:
    """Atomically swappable handle on the current catalog generation."""

    def __init__(self) -> None:
        self._generation = Generation()
        self._write_lock = threading.Lock()
        self._ready = False
        self._stats = CatalogStats()
        self._last_update: datetime | None = None
        self._listeners: list[PublishListener] = []

    # --- Readers ---

    def current(self) -> Generation:
        return self._generation

    def sellers(self) -> tuple[SourceData, ...]:
        return self._generation.sellers

    def vendors(self) -> tuple[SourceData, ...]:
        return self._generation.vendors

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def stats(self) -> CatalogStats:
        return self._stats

    @property
    def last_update(self) -> datetime | None:
        return self._last_update

    # --- Writers ---

    def publish(
        self,
        sellers: tuple[SourceData, ...] | list[SourceData],
        vendors: tuple[SourceData, ...] | list[SourceData],
    ) -> Generation:
        """Replace the whole generation in one swap."""
        return self.rebuild(lambda _current: (sellers, vendors))

    def rebuild(self, build: GenerationBuilder) -> Generation:
        """Derive the next generation from the live one and swap it in.

        ``build`` runs under the write lock, so no splice can land between
        reading the live generation and replacing it.
        """
        with self._write_lock:
            sellers, vendors = build(self._generation)
            now = datetime.now(timezone.utc)
            generation = Generation(
                sellers=tuple(sellers),
                vendors=tuple(vendors),
                published_at=now,
            )
            self._generation = generation
            self._last_update = now
        logger.info(
            "Published generation with %d sellers and %d vendors",
            len(generation.sellers),
            len(generation.vendors),
        )
        return generation

    def splice(self, data: SourceData) -> bool:
        """Replace the entry with the same side and code.

        Returns False, changing nothing, when no such entry is published:
        a splice never introduces a new source.
        """
        attr = "sellers" if data.side == Side.SELLER else "vendors"
        with self._write_lock:
            current = self._generation
            entries = getattr(current, attr)
            for i, entry in enumerate(entries):
                if entry.code == data.code:
                    break
            else:
                return False
            replaced = entries[:i] + (data,) + entries[i + 1 :]
            self._generation = current.model_copy(update={attr: replaced})
            self._last_update = datetime.now(timezone.utc)
        return True

    def mark_ready(self) -> None:
        """Flag the catalog as ready. Only ever goes from False to True."""
        if not self._ready:
            logger.info("Catalog is ready")
        self._ready = True

    def add_listener(self, listener: PublishListener) -> None:
        """Register a callback run by ``recompute_derived()``."""
        self._listeners.append(listener)

    def recompute_derived(self) -> CatalogStats:
        """Rebuild aggregates and run derived-data listeners for the current generation."""
        generation = self._generation
        self._stats = CatalogStats.from_generation(generation)
        for listener in self._listeners:
            try:
                listener(generation)
            except Exception:
                logger.exception("Derived-data listener %r failed", listener)
        return self._stats
