"""Catalog refresh engine: registry, catalog store, refresh paths."""

from catalog_sync.engine.bulk import BulkSynchronizer
from catalog_sync.engine.catalog import CatalogStore
from catalog_sync.engine.pipeline import SideOutcome, acquire_side, persist, record_history
from catalog_sync.engine.refresh import RefreshOrchestrator
from catalog_sync.engine.registry import SourceDescriptor, SourceFlags, SourceRegistry
from catalog_sync.engine.service import CatalogEngine
from catalog_sync.engine.startup import load_from_cache

__all__ = [
    "CatalogEngine",
    "CatalogStore",
    "SourceRegistry",
    "SourceDescriptor",
    "SourceFlags",
    "RefreshOrchestrator",
    "BulkSynchronizer",
    "SideOutcome",
    "acquire_side",
    "persist",
    "record_history",
    "load_from_cache",
]
