"""Shared pytest fixtures for catalog-sync."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path

import pytest

from catalog_sync.cache import SnapshotCache
from catalog_sync.core import (
    CacheConfig,
    FetchMode,
    Listing,
    Side,
    Snapshot,
    SourceData,
    SourceInfo,
)
from catalog_sync.engine import CatalogStore, SourceDescriptor, SourceFlags, SourceRegistry


def build_snapshot(n: int, price: float = 1.0, prefix: str = "item", **listing_fields) -> Snapshot:
    """Snapshot with ``n`` items, one NM listing each."""
    records = {
        f"{prefix}-{i}": (
            Listing(conditions="NM", price=price, buy_price=price, quantity=1, **listing_fields),
        )
        for i in range(n)
    }
    return Snapshot(records=records, captured_at=datetime.now(timezone.utc))


def build_source_data(
    code: str,
    side: Side = Side.SELLER,
    n: int = 3,
    name: str | None = None,
    price: float = 1.0,
) -> SourceData:
    snapshot = build_snapshot(n, price=price)
    stamp = "inventory_timestamp" if side == Side.SELLER else "buylist_timestamp"
    info = SourceInfo(name=name or code, code=code, **{stamp: snapshot.captured_at})
    return SourceData(info=info, side=side, snapshot=snapshot)


class FakeAdapter:
    """Scriptable SourceAdapter.

    ``inventory_result`` / ``buylist_result`` may be a Snapshot, an
    exception instance to raise, or a callable returning either.
    """

    def __init__(
        self,
        name: str,
        code: str,
        inventory_result=None,
        buylist_result=None,
        delay: float = 0.0,
        gate: asyncio.Event | None = None,
    ) -> None:
        self._info = SourceInfo(name=name, code=code)
        self.inventory_result = inventory_result
        self.buylist_result = buylist_result
        self.delay = delay
        self.gate = gate
        self.closed = False
        self.calls: list[str] = []

    def info(self) -> SourceInfo:
        return self._info

    async def _produce(self, result):
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if callable(result):
            result = result()
        if isinstance(result, BaseException):
            raise result
        if result is None:
            return Snapshot()
        return result

    async def inventory(self) -> Snapshot:
        self.calls.append("inventory")
        return await self._produce(self.inventory_result)

    async def buylist(self) -> Snapshot:
        self.calls.append("buylist")
        return await self._produce(self.buylist_result)

    async def close(self) -> None:
        self.closed = True


class RecordingNotifier:
    """Notifier that keeps every message for assertions."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str, bool]] = []

    def notify(self, channel: str, message: str, alert: bool = False) -> None:
        self.messages.append((channel, message, alert))

    async def aclose(self) -> None:
        return None

    def on(self, channel: str) -> list[str]:
        return [m for c, m, _ in self.messages if c == channel]

    @property
    def alerts(self) -> list[str]:
        return [m for _, m, alert in self.messages if alert]


def build_descriptor(
    code: str,
    name: str | None = None,
    sells: bool = True,
    buys: bool = False,
    keepers: tuple[str, ...] = (),
    keepers_buylist: str | None = None,
    history: dict[str, str] | None = None,
    timeout: float | None = None,
    **adapter_kwargs,
) -> tuple[SourceDescriptor, list[FakeAdapter]]:
    """Descriptor whose initializer builds FakeAdapters; returns the created list too."""
    created: list[FakeAdapter] = []

    def initializer() -> FakeAdapter:
        adapter = FakeAdapter(name or code, code, **adapter_kwargs)
        created.append(adapter)
        return adapter

    descriptor = SourceDescriptor(
        name=name or code,
        code=code,
        flags=SourceFlags(sells=sells, buys=buys, fetch_mode=FetchMode.NETWORK),
        initializer=initializer,
        keepers=keepers,
        keepers_buylist=keepers_buylist,
        history=history or {},
        timeout=timeout,
    )
    return descriptor, created


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def catalog() -> CatalogStore:
    return CatalogStore()


@pytest.fixture
def registry() -> SourceRegistry:
    return SourceRegistry()


@pytest.fixture
def cache_config(tmp_path: Path) -> CacheConfig:
    return CacheConfig(
        sellers_dir=str(tmp_path / "sellers"),
        vendors_dir=str(tmp_path / "vendors"),
    )


@pytest.fixture
def snapshot_cache(cache_config: CacheConfig) -> SnapshotCache:
    return SnapshotCache(cache_config)


@pytest.fixture
def make_snapshot():
    return build_snapshot


@pytest.fixture
def make_source_data():
    return build_source_data


@pytest.fixture
def make_descriptor():
    return build_descriptor
