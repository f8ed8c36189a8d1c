"""Integration tests for CatalogEngine.

Real warehouse SQLite, real snapshot cache on disk, real history store;
HTTP feeds are mocked with respx.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest
import respx

from catalog_sync.core import RefreshConflictError, Side
from catalog_sync.engine import CatalogEngine

FEED_BASE = "https://feeds.example.com"

pytestmark = pytest.mark.integration


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str, bool]] = []

    def notify(self, channel: str, message: str, alert: bool = False) -> None:
        self.messages.append((channel, message, alert))

    async def aclose(self) -> None:
        return None


def _mock_feeds(mock: respx.MockRouter, make_feed) -> dict[str, respx.Route]:
    return {
        "a": mock.get(f"{FEED_BASE}/a/inventory.json").mock(
            return_value=httpx.Response(200, json=make_feed(10))
        ),
        "b": mock.get(f"{FEED_BASE}/b/inventory.json").mock(
            return_value=httpx.Response(200, json=make_feed(5))
        ),
        "b_buy": mock.get(f"{FEED_BASE}/b/buylist.json").mock(
            return_value=httpx.Response(200, json=make_feed(3, "buy_price", 0.5))
        ),
    }


class TestFullCycle:
    async def test_start_builds_complete_catalog(self, engine_config, make_feed):
        notifier = RecordingNotifier()
        with respx.mock(assert_all_called=False) as mock:
            _mock_feeds(mock, make_feed)
            async with await CatalogEngine.create(engine_config, notifier=notifier) as engine:
                await engine.start()
                sellers, vendors = engine.current_generation()

                assert engine.catalog_ready()
                assert [(d.name, d.code) for d in sellers] == [
                    ("Alpha Cards", "A"),
                    ("Bravo Games", "B"),
                    ("MktDirect", "MktDirect"),
                    ("MktLow", "MktLow"),
                ]
                assert [d.code for d in vendors] == ["B", "MktBuy"]
                sizes = {d.code: len(d.snapshot) for d in sellers}
                assert sizes == {"A": 10, "B": 5, "MktDirect": 3, "MktLow": 6}
                low = engine.catalog.current().seller("MktLow")
                assert all(l.seller == "MktLow" for e in low.snapshot.records.values() for l in e)

                history = engine.history
                assert await history.namespaces() == ["a_retail", "b_buylist", "mkt_low"]
                assert await history.fetch_series("b_buylist", "uuid-0") != {}

    async def test_source_timeout_keeps_others(self, engine_config, make_feed):
        notifier = RecordingNotifier()

        async def hang(request):
            await asyncio.sleep(10)
            return httpx.Response(200, json=make_feed(5))

        config = engine_config.model_copy(
            update={"sync": engine_config.sync.model_copy(update={"source_timeout": 0.2})}
        )
        with respx.mock(assert_all_called=False) as mock:
            routes = _mock_feeds(mock, make_feed)
            routes["b"].side_effect = hang
            async with await CatalogEngine.create(config, notifier=notifier) as engine:
                report = await engine.sync_all()

                assert report.published
                assert "seller:B" in report.failed
                codes = engine.catalog.current().codes(Side.SELLER)
                assert "A" in codes
                assert "B" not in codes
                assert engine.catalog.current().vendor("B") is not None
                failures = [m for c, m, _ in notifier.messages if c == "sync"]
                assert len(failures) == 1
                assert "B" in failures[0]


class TestColdStart:
    async def test_restart_without_network_serves_cache(self, engine_config, make_feed):
        with respx.mock(assert_all_called=False) as mock:
            _mock_feeds(mock, make_feed)
            async with await CatalogEngine.create(engine_config, notifier=RecordingNotifier()) as engine:
                await engine.sync_all()
                first = engine.current_generation()

        with respx.mock(assert_all_called=False) as mock:
            mock.get(url__regex=r".*").mock(side_effect=httpx.ConnectError("offline"))
            async with await CatalogEngine.create(engine_config, notifier=RecordingNotifier()) as engine:
                await engine.load_cache()
                sellers, vendors = engine.current_generation()

                assert engine.catalog_ready()
                assert [d.code for d in sellers] == [d.code for d in first[0]]
                assert [d.code for d in vendors] == [d.code for d in first[1]]
                assert sellers[0].snapshot.records == first[0][0].snapshot.records


class TestSingleRefresh:
    async def test_refresh_after_bulk(self, engine_config, make_feed):
        with respx.mock(assert_all_called=False) as mock:
            routes = _mock_feeds(mock, make_feed)
            async with await CatalogEngine.create(engine_config, notifier=RecordingNotifier()) as engine:
                await engine.sync_all()
                routes["a"].return_value = httpx.Response(200, json=make_feed(12))

                result = await engine.refresh_source("A")

                assert result.ok
                assert len(engine.catalog.current().seller("A").snapshot) == 12

    async def test_refresh_failure_keeps_previous(self, engine_config, make_feed):
        with respx.mock(assert_all_called=False) as mock:
            routes = _mock_feeds(mock, make_feed)
            async with await CatalogEngine.create(engine_config, notifier=RecordingNotifier()) as engine:
                await engine.sync_all()
                before = engine.catalog.current().seller("B")
                routes["b"].return_value = httpx.Response(200, json={"records": {}})

                result = await engine.refresh_source("B")

                assert result.failed == {"B": "empty inventory"}
                assert result.updated == ["B"]
                assert engine.catalog.current().seller("B") is before

    async def test_market_refresh(self, engine_config, make_feed):
        with respx.mock(assert_all_called=False) as mock:
            _mock_feeds(mock, make_feed)
            async with await CatalogEngine.create(engine_config, notifier=RecordingNotifier()) as engine:
                await engine.sync_all()
                result = await engine.refresh_source("MktLow")
                assert sorted(result.updated) == ["MktBuy", "MktDirect", "MktLow"]

    async def test_concurrent_refresh_rejected(self, engine_config, make_feed):
        release = asyncio.Event()

        async def slow(request):
            await release.wait()
            return httpx.Response(200, json=make_feed(10))

        with respx.mock(assert_all_called=False) as mock:
            routes = _mock_feeds(mock, make_feed)
            async with await CatalogEngine.create(engine_config, notifier=RecordingNotifier()) as engine:
                await engine.sync_all()
                routes["a"].side_effect = slow

                first = asyncio.create_task(engine.refresh_source("A"))
                await asyncio.sleep(0)
                assert engine.is_busy("A")
                with pytest.raises(RefreshConflictError):
                    await engine.refresh_source("A")
                release.set()
                assert (await first).ok
                assert not engine.is_busy("A")


class TestRunForever:
    async def test_cycles_until_cancelled(self, engine_config, make_feed):
        with respx.mock(assert_all_called=False) as mock:
            _mock_feeds(mock, make_feed)
            async with await CatalogEngine.create(engine_config, notifier=RecordingNotifier()) as engine:
                task = asyncio.create_task(engine.run_forever(interval=0.01))
                while not engine.catalog_ready():
                    await asyncio.sleep(0.01)
                task.cancel()
                with pytest.raises(asyncio.CancelledError):
                    await task
                assert len(engine.current_generation()[0]) == 4
