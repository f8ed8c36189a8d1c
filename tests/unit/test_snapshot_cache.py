"""Tests for catalog_sync.cache.snapshot."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest
import respx

from catalog_sync.core import CacheConfig, CacheError, RemoteConfig, Side
from catalog_sync.cache.snapshot import (
    RemoteObjectStore,
    SnapshotCache,
    archive_key,
    cache_key,
    create_snapshot_cache,
)

REMOTE = RemoteConfig(
    enabled=True, base_url="https://storage.example.com", bucket="mtg", token="s3cr3t"
)


@pytest.fixture
async def remote():
    store = RemoteObjectStore(REMOTE)
    yield store
    await store.close()


class TestCacheKey:
    def test_layout(self):
        assert cache_key(Side.SELLER, "CK") == "sellers/CK.json"
        assert cache_key(Side.VENDOR, "CK") == "vendors/CK.json"

    def test_archive_layout(self):
        when = datetime(2026, 10, 18, 8, 45, tzinfo=timezone.utc)
        assert archive_key(Side.SELLER, "CK", when) == "sellers/2026-10-18/08/CK.json"
        assert archive_key(Side.VENDOR, "CK", when) == "vendors/2026-10-18/08/CK.json"


class TestLocalCache:
    async def test_store_then_load(self, snapshot_cache, make_source_data):
        data = make_source_data("CK", n=4)
        path = await snapshot_cache.store(data)
        assert path.exists()
        assert path.parent.name == "sellers"
        loaded = await snapshot_cache.load(Side.SELLER, "CK")
        assert loaded == data

    async def test_store_leaves_no_temp_files(self, snapshot_cache, make_source_data):
        path = await snapshot_cache.store(make_source_data("CK"))
        await snapshot_cache.store(make_source_data("CK", n=6))
        assert not [p for p in path.parent.rglob("*") if p.name.endswith(".tmp")]

    async def test_sides_are_separate(self, snapshot_cache, make_source_data):
        await snapshot_cache.store(make_source_data("CK", side=Side.VENDOR))
        with pytest.raises(CacheError, match="No cached data"):
            await snapshot_cache.load(Side.SELLER, "CK")

    async def test_corrupt_entry(self, snapshot_cache):
        path = snapshot_cache.path_for(Side.SELLER, "CK")
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        with pytest.raises(CacheError, match="Corrupt cache entry"):
            await snapshot_cache.load(Side.SELLER, "CK")

    async def test_mismatched_entry(self, snapshot_cache, make_source_data):
        await snapshot_cache.store(make_source_data("SCG"))
        snapshot_cache.path_for(Side.SELLER, "SCG").rename(
            snapshot_cache.path_for(Side.SELLER, "CK")
        )
        with pytest.raises(CacheError, match="holds seller SCG"):
            await snapshot_cache.load(Side.SELLER, "CK")

    async def test_load_all_skips_missing_and_empty(self, snapshot_cache, make_source_data):
        await snapshot_cache.store(make_source_data("A", n=2))
        await snapshot_cache.store(make_source_data("EMPTY", n=0))
        loaded = await snapshot_cache.load_all(Side.SELLER, ["A", "MISSING", "EMPTY"])
        assert [d.code for d in loaded] == ["A"]

    async def test_unwritable_directory(self, tmp_path, make_source_data):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        cache = SnapshotCache(CacheConfig(sellers_dir=str(blocker / "sellers")))
        with pytest.raises(CacheError, match="Failed to write cache file"):
            await cache.store(make_source_data("CK"))


class TestArchive:
    async def test_store_keeps_dated_copy(self, snapshot_cache, make_source_data):
        first = make_source_data("CK", n=2)
        latest = await snapshot_cache.store(first)

        archived = list(latest.parent.glob("*/*/CK.json"))
        assert len(archived) == 1
        day, hour = archived[0].parent.parent.name, archived[0].parent.name
        assert datetime.strptime(f"{day} {hour}", "%Y-%m-%d %H")
        assert archived[0].read_bytes() == latest.read_bytes()

    async def test_latest_is_what_loads(self, snapshot_cache, make_source_data):
        await snapshot_cache.store(make_source_data("CK", n=2))
        newer = make_source_data("CK", n=5)
        await snapshot_cache.store(newer)
        assert await snapshot_cache.load(Side.SELLER, "CK") == newer

    async def test_archive_can_be_disabled(self, tmp_path, make_source_data):
        cache = SnapshotCache(
            CacheConfig(sellers_dir=str(tmp_path / "sellers"), archive=False)
        )
        path = await cache.store(make_source_data("CK"))
        assert [p.name for p in path.parent.iterdir()] == ["CK.json"]

    @respx.mock
    async def test_archive_is_mirrored(self, cache_config, remote, make_source_data):
        latest = respx.put("https://storage.example.com/mtg/sellers/CK.json").mock(
            return_value=httpx.Response(200)
        )
        dated = respx.put(
            url__regex=r"https://storage\.example\.com/mtg/sellers/\d{4}-\d{2}-\d{2}/\d{2}/CK\.json"
        ).mock(return_value=httpx.Response(200))
        cache = SnapshotCache(cache_config, remote)
        await cache.store(make_source_data("CK"))
        assert latest.call_count == 1
        assert dated.call_count == 1
        assert dated.calls.last.request.content == latest.calls.last.request.content


class TestRemoteObjectStore:
    def test_requires_base_url(self):
        with pytest.raises(CacheError, match="needs a base_url"):
            RemoteObjectStore(RemoteConfig())

    @respx.mock
    async def test_put_sends_token(self, remote):
        route = respx.put("https://storage.example.com/mtg/sellers/CK.json").mock(
            return_value=httpx.Response(200)
        )
        await remote.put("sellers/CK.json", b"{}")
        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer s3cr3t"
        assert request.content == b"{}"

    @respx.mock
    async def test_put_failure(self, remote):
        respx.put(url__regex=r".*").mock(return_value=httpx.Response(403))
        with pytest.raises(CacheError, match="HTTP 403"):
            await remote.put("sellers/CK.json", b"{}")

    @respx.mock
    async def test_get_missing_is_none(self, remote):
        respx.get(url__regex=r".*").mock(return_value=httpx.Response(404))
        assert await remote.get("sellers/CK.json") is None

    @respx.mock
    async def test_get_error(self, remote):
        respx.get(url__regex=r".*").mock(return_value=httpx.Response(500))
        with pytest.raises(CacheError, match="HTTP 500"):
            await remote.get("sellers/CK.json")

    @respx.mock
    async def test_connection_error(self, remote):
        respx.get(url__regex=r".*").mock(side_effect=httpx.ConnectError("down"))
        with pytest.raises(CacheError, match="Download of sellers/CK.json failed"):
            await remote.get("sellers/CK.json")


class TestMirroredCache:
    @respx.mock
    async def test_store_mirrors_to_remote(self, cache_config, remote, make_source_data):
        route = respx.put("https://storage.example.com/mtg/vendors/CK.json").mock(
            return_value=httpx.Response(201)
        )
        respx.put(url__regex=r".*/vendors/\d{4}-.*").mock(return_value=httpx.Response(201))
        cache = SnapshotCache(cache_config, remote)
        data = make_source_data("CK", side=Side.VENDOR)
        await cache.store(data)
        assert route.called
        assert cache.path_for(Side.VENDOR, "CK").exists()

    @respx.mock
    async def test_load_falls_back_to_remote(self, cache_config, remote, make_source_data):
        data = make_source_data("CK", n=3)
        respx.get("https://storage.example.com/mtg/sellers/CK.json").mock(
            return_value=httpx.Response(200, content=data.model_dump_json().encode())
        )
        cache = SnapshotCache(cache_config, remote)
        loaded = await cache.load(Side.SELLER, "CK")
        assert loaded == data

    @respx.mock
    async def test_missing_everywhere(self, cache_config, remote):
        respx.get(url__regex=r".*").mock(return_value=httpx.Response(404))
        cache = SnapshotCache(cache_config, remote)
        with pytest.raises(CacheError, match="No cached data for seller CK"):
            await cache.load(Side.SELLER, "CK")


class TestFactory:
    async def test_remote_attached_only_when_enabled(self, cache_config):
        local_only = create_snapshot_cache(cache_config, RemoteConfig())
        assert local_only._remote is None
        mirrored = create_snapshot_cache(cache_config, REMOTE)
        assert isinstance(mirrored._remote, RemoteObjectStore)
        await mirrored.close()
