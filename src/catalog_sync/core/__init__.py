"""Foundation types, config, and exceptions."""

from catalog_sync.core.config import (
    CacheConfig,
    HistoryConfig,
    NotifyConfig,
    RemoteConfig,
    SourceConfig,
    SyncConfig,
    SyncSettings,
    WarehouseConfig,
    load_config,
)
from catalog_sync.core.exceptions import (
    CacheError,
    CatalogSyncError,
    ConfigError,
    DecodeError,
    EmptySnapshotError,
    HistoryError,
    RefreshConflictError,
    RegistryError,
    SourceError,
    SourceUnavailableError,
    SyncInProgressError,
    UnknownSourceError,
)
from catalog_sync.core.models import (
    CatalogStats,
    DateKey,
    FetchMode,
    Generation,
    ItemId,
    Listing,
    RefreshResult,
    Side,
    Snapshot,
    SourceCode,
    SourceData,
    SourceInfo,
    SyncReport,
    sort_sources,
)

__all__ = [
    # Type aliases
    "ItemId",
    "SourceCode",
    "DateKey",
    # Enums
    "Side",
    "FetchMode",
    # Listing models
    "Listing",
    "Snapshot",
    "SourceInfo",
    "SourceData",
    "sort_sources",
    # Catalog models
    "Generation",
    "CatalogStats",
    "RefreshResult",
    "SyncReport",
    # Config
    "SyncConfig",
    "SourceConfig",
    "CacheConfig",
    "RemoteConfig",
    "HistoryConfig",
    "WarehouseConfig",
    "SyncSettings",
    "NotifyConfig",
    "load_config",
    # Exceptions
    "CatalogSyncError",
    "ConfigError",
    "SourceError",
    "SourceUnavailableError",
    "EmptySnapshotError",
    "DecodeError",
    "RefreshConflictError",
    "SyncInProgressError",
    "UnknownSourceError",
    "RegistryError",
    "CacheError",
    "HistoryError",
]
