"""Source adapter protocol and adapter-kind registry."""

from __future__ import annotations

import logging
from typing import Callable, Protocol, runtime_checkable

from catalog_sync.core import SourceConfig, SourceInfo, Snapshot, SyncConfig

logger = logging.getLogger("catalog_sync.sources")


@runtime_checkable
class SourceAdapter(Protocol):
    """Uniform capability exposed by every upstream provider.

    Adapters are single-use: the engine builds a fresh one for every
    refresh and closes it afterwards, so stale connections or tokens are
    never carried across cycles. Both acquisition calls may be slow and
    may fail; callers bound them with a timeout.
    """

    def info(self) -> SourceInfo: ...

    async def inventory(self) -> Snapshot: ...

    async def buylist(self) -> Snapshot: ...

    async def close(self) -> None: ...


AdapterFactory = Callable[[SourceConfig, SyncConfig], SourceAdapter]


class AdapterRegistry:
    """Registry of adapter factories keyed by source kind."""

    def __init__(self) -> None:
        self._factories: dict[str, AdapterFactory] = {}

    def register(self, kind: str, factory: AdapterFactory) -> None:
        if kind in self._factories:
            raise ValueError(
                f"Adapter kind '{kind}' is already registered. Use replace() to override."
            )
        self._factories[kind] = factory

    def replace(self, kind: str, factory: AdapterFactory) -> None:
        if kind not in self._factories:
            raise KeyError(f"Adapter kind '{kind}' is not registered.")
        self._factories[kind] = factory

    def get(self, kind: str) -> AdapterFactory:
        return self._factories[kind]

    def list_names(self) -> list[str]:
        return list(self._factories.keys())

    def create(self, source: SourceConfig, config: SyncConfig) -> SourceAdapter:
        """Instantiate a fresh adapter for a configured source."""
        factory = self.get(source.kind)
        logger.debug("Creating %s adapter for %s", source.kind, source.code)
        return factory(source, config)


def source_info(source: SourceConfig) -> SourceInfo:
    """Build the static SourceInfo for a configured source."""
    return SourceInfo(name=source.name, code=source.code, sealed=source.sealed)


# Module-level singleton registry
registry = AdapterRegistry()
