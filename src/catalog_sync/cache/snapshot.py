"""Snapshot cache: last-known-good source data on disk and in object storage.

Layout (local and remote share the same naming convention):

    sellers/<code>.json                  latest, read back on cold start
    sellers/YYYY-MM-DD/HH/<code>.json    archive, one per store (UTC hour)
    vendors/...                          same shape for buylists

Each file is one ``SourceData`` document (info, side, snapshot) encoded
with pydantic, so field names stay stable across versions.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import httpx
from pydantic import ValidationError

from catalog_sync.core import (
    CacheConfig,
    CacheError,
    RemoteConfig,
    Side,
    SourceData,
)

logger = logging.getLogger(__name__)

_PREFIXES: dict[Side, str] = {Side.SELLER: "sellers", Side.VENDOR: "vendors"}


def cache_key(side: Side, code: str) -> str:
    """Object key for a source's cached data, e.g. ``sellers/CK.json``."""
    return f"{_PREFIXES[side]}/{code}.json"


def archive_key(side: Side, code: str, when: datetime) -> str:
    """Dated object key, e.g. ``sellers/2026-10-18/08/CK.json``."""
    return f"{_PREFIXES[side]}/{when:%Y-%m-%d/%H}/{code}.json"


class RemoteObjectStore:
    """Minimal HTTP object storage client (PUT/GET by key under a bucket).

    Objects live at ``{base_url}/{bucket}/{key}``. A bearer token is sent
    when configured.
    """

    def __init__(
        self,
        config: RemoteConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not config.base_url:
            raise CacheError(
                "Remote object storage needs a base_url",
                context={"operation": "init"},
            )
        headers = {}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._prefix = f"{config.base_url.rstrip('/')}/{config.bucket}"
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(config.timeout_seconds),
            transport=transport,
        )

    def url_for(self, key: str) -> str:
        return f"{self._prefix}/{key}"

    async def put(self, key: str, body: bytes) -> None:
        url = self.url_for(key)
        try:
            response = await self._client.put(
                url, content=body, headers={"Content-Type": "application/json"}
            )
        except httpx.HTTPError as e:
            raise CacheError(
                f"Upload of {key} failed: {e}",
                context={"operation": "store", "path": url},
            ) from e
        if response.status_code not in (200, 201, 204):
            raise CacheError(
                f"Upload of {key} returned HTTP {response.status_code}",
                context={"operation": "store", "path": url},
            )

    async def get(self, key: str) -> bytes | None:
        """Return the object body, or None when the object does not exist."""
        url = self.url_for(key)
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise CacheError(
                f"Download of {key} failed: {e}",
                context={"operation": "load", "path": url},
            ) from e
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise CacheError(
                f"Download of {key} returned HTTP {response.status_code}",
                context={"operation": "load", "path": url},
            )
        return response.content

    async def close(self) -> None:
        await self._client.aclose()


class SnapshotCache:
    """Durable last-known-good storage for published source data.

    Local files are always written; when a remote store is attached,
    ``store()`` mirrors to it and ``load()`` falls back to it if the local
    file is missing. Every failure surfaces as CacheError, which callers
    treat as non-fatal.
    """

    def __init__(
        self,
        config: CacheConfig,
        remote: RemoteObjectStore | None = None,
    ) -> None:
        self._dirs = {
            Side.SELLER: Path(config.sellers_dir),
            Side.VENDOR: Path(config.vendors_dir),
        }
        self._remote = remote
        self._archive = config.archive

    def path_for(self, side: Side, code: str) -> Path:
        return self._dirs[side] / f"{code}.json"

    def archive_path_for(self, side: Side, code: str, when: datetime) -> Path:
        return self._dirs[side] / f"{when:%Y-%m-%d}" / f"{when:%H}" / f"{code}.json"

    async def store(self, data: SourceData) -> Path:
        """Persist one source's data; returns the latest-copy path written.

        With archiving on, the same body also lands under the dated key for
        the current UTC hour, locally and on the remote mirror.
        """
        path = self.path_for(data.side, data.code)
        body = data.model_dump_json().encode("utf-8")
        when = datetime.now(timezone.utc)
        targets = [(path, cache_key(data.side, data.code))]
        if self._archive:
            targets.append(
                (
                    self.archive_path_for(data.side, data.code, when),
                    archive_key(data.side, data.code, when),
                )
            )

        for target, _key in targets:
            try:
                await asyncio.to_thread(_atomic_write, target, body)
            except OSError as e:
                raise CacheError(
                    f"Failed to write cache file {target}: {e}",
                    context={"operation": "store", "path": str(target)},
                ) from e

        if self._remote is not None:
            for _target, key in targets:
                await self._remote.put(key, body)
        return path

    async def load(self, side: Side, code: str) -> SourceData:
        path = self.path_for(side, code)
        body: bytes | None = None
        try:
            body = await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            if self._remote is not None:
                logger.info("No local cache for %s, trying remote", code)
                body = await self._remote.get(cache_key(side, code))
        except OSError as e:
            raise CacheError(
                f"Failed to read cache file {path}: {e}",
                context={"operation": "load", "path": str(path)},
            ) from e

        if body is None:
            raise CacheError(
                f"No cached data for {side.value} {code}",
                context={"operation": "load", "path": str(path)},
            )

        try:
            data = SourceData.model_validate_json(body)
        except ValidationError as e:
            raise CacheError(
                f"Corrupt cache entry for {side.value} {code}: {e}",
                context={"operation": "load", "path": str(path)},
            ) from e
        if data.side != side or data.code != code:
            raise CacheError(
                f"Cache entry {path} holds {data.side.value} {data.code}",
                context={"operation": "load", "path": str(path)},
            )
        return data

    async def load_all(self, side: Side, codes: list[str]) -> list[SourceData]:
        """Load every code that has usable cached data, skipping the rest."""
        loaded = []
        for code in codes:
            logger.info("Loading %s %s from cache", side.value, code)
            try:
                data = await self.load(side, code)
            except CacheError as e:
                logger.warning("-- skipped: %s", e)
                continue
            if data.snapshot.is_empty:
                logger.warning("-- skipped: %s has no entries", code)
                continue
            logger.info("-- OK: %d entries", len(data.snapshot))
            loaded.append(data)
        return loaded

    async def close(self) -> None:
        if self._remote is not None:
            await self._remote.close()


def _atomic_write(path: Path, body: bytes) -> None:
    """Write via a temp file + rename so readers never see partial files."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(body)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def create_snapshot_cache(
    cache: CacheConfig,
    remote: RemoteConfig,
) -> SnapshotCache:
    """Build the cache, attaching the remote mirror when enabled."""
    remote_store = RemoteObjectStore(remote) if remote.enabled else None
    return SnapshotCache(cache, remote_store)
