"""Snapshot cache (local + remote mirror) and historical price store."""

from catalog_sync.cache.history import (
    GRADE_MULTIPLIERS,
    HistoryStore,
    create_history_store,
    nm_equivalent,
)
from catalog_sync.cache.snapshot import (
    RemoteObjectStore,
    SnapshotCache,
    archive_key,
    cache_key,
    create_snapshot_cache,
)

__all__ = [
    "SnapshotCache",
    "RemoteObjectStore",
    "cache_key",
    "archive_key",
    "create_snapshot_cache",
    "HistoryStore",
    "create_history_store",
    "GRADE_MULTIPLIERS",
    "nm_equivalent",
]
