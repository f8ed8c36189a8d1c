"""Source registry: configured sources and their per-source busy guard."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Iterator

from catalog_sync.core import (
    FetchMode,
    RefreshConflictError,
    RegistryError,
    Side,
    SourceConfig,
    SyncConfig,
    UnknownSourceError,
)
from catalog_sync.sources import AdapterRegistry, SourceAdapter
from catalog_sync.sources import registry as default_adapters

logger = logging.getLogger(__name__)

_FETCH_MODES = {"http": FetchMode.NETWORK, "warehouse": FetchMode.WAREHOUSE}


@dataclass(frozen=True)
class SourceFlags:
    """Capabilities of a source."""

    sells: bool = True
    buys: bool = False
    sealed: bool = False
    fetch_mode: FetchMode = FetchMode.NETWORK


@dataclass(eq=False)
class SourceDescriptor:
    """Configuration plus synchronization state for one upstream provider.

    The busy state is an idle -> busy -> idle compare-and-swap on a
    non-blocking lock: ``try_begin()`` succeeds for exactly one caller
    until ``end()`` is called.
    """

    name: str
    code: str
    flags: SourceFlags
    initializer: Callable[[], SourceAdapter]
    keepers: tuple[str, ...] = ()
    keepers_buylist: str | None = None
    history: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    @property
    def is_market(self) -> bool:
        return bool(self.keepers)

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def try_begin(self) -> bool:
        return self._lock.acquire(blocking=False)

    def end(self) -> None:
        if self._lock.locked():
            self._lock.release()

    def sides(self) -> list[Side]:
        result = []
        if self.flags.sells:
            result.append(Side.SELLER)
        if self.flags.buys:
            result.append(Side.VENDOR)
        return result

    def codes(self, side: Side) -> tuple[str, ...]:
        """Codes this source publishes under on one side of the catalog."""
        if side == Side.SELLER:
            if not self.flags.sells:
                return ()
            return self.keepers or (self.code,)
        if not self.flags.buys:
            return ()
        return (self.keepers_buylist or self.code,)

    def all_codes(self) -> set[str]:
        return {self.code, *self.codes(Side.SELLER), *self.codes(Side.VENDOR)}


class SourceRegistry:
    """Directory of configured sources keyed by short code.

    Sub-source codes (market keepers, market buylist codes) resolve to the
    descriptor that produces them.
    """

    def __init__(self) -> None:
        self._descriptors: dict[str, SourceDescriptor] = {}
        self._aliases: dict[str, str] = {}

    def register(self, descriptor: SourceDescriptor) -> None:
        for code in descriptor.all_codes():
            if code in self._aliases:
                raise RegistryError(
                    f"Source code '{code}' is already registered",
                    context={"code": code},
                )
        self._descriptors[descriptor.code] = descriptor
        for code in descriptor.all_codes():
            self._aliases[code] = descriptor.code
        logger.debug("Registered source %s (%s)", descriptor.code, descriptor.name)

    def lookup(self, code: str) -> SourceDescriptor | None:
        key = self._aliases.get(code)
        if key is None:
            return None
        return self._descriptors[key]

    def require(self, code: str) -> SourceDescriptor:
        descriptor = self.lookup(code)
        if descriptor is None:
            raise UnknownSourceError(f"Unknown source: {code!r}", context={"code": code})
        return descriptor

    def descriptors(self) -> list[SourceDescriptor]:
        return list(self._descriptors.values())

    def codes(self, side: Side) -> list[str]:
        """All codes published on one side, in registration order."""
        return [c for d in self._descriptors.values() for c in d.codes(side)]

    def try_begin_refresh(self, code: str) -> bool:
        return self.require(code).try_begin()

    def end_refresh(self, code: str) -> None:
        self.require(code).end()

    def is_busy(self, code: str) -> bool:
        return self.require(code).busy

    @contextmanager
    def guard(self, code: str) -> Iterator[SourceDescriptor]:
        """Hold a source's busy flag for the duration of the block.

        Raises:
            RefreshConflictError: If the source is already refreshing.
        """
        descriptor = self.require(code)
        if not descriptor.try_begin():
            raise RefreshConflictError(
                f"{descriptor.code} is already being refreshed",
                context={"code": descriptor.code},
            )
        try:
            yield descriptor
        finally:
            descriptor.end()

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        adapters: AdapterRegistry = default_adapters,
    ) -> SourceRegistry:
        """Build descriptors for every configured source.

        With ``sync.dev_mode`` on, only sources marked ``dev_enabled`` are
        registered.
        """
        registry = cls()
        for source in config.sources:
            if config.sync.dev_mode and not source.dev_enabled:
                logger.info("Dev mode: skipping %s", source.code)
                continue
            registry.register(_descriptor_from_config(source, config, adapters))
        return registry


def _descriptor_from_config(
    source: SourceConfig,
    config: SyncConfig,
    adapters: AdapterRegistry,
) -> SourceDescriptor:
    return SourceDescriptor(
        name=source.name,
        code=source.code,
        flags=SourceFlags(
            sells=source.sells,
            buys=source.buys,
            sealed=source.sealed,
            fetch_mode=_FETCH_MODES[source.kind],
        ),
        initializer=partial(adapters.create, source, config),
        keepers=tuple(source.keepers),
        keepers_buylist=source.keepers_buylist,
        history=dict(source.history),
        timeout=source.timeout_seconds,
    )
