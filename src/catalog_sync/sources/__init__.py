"""Upstream source adapters and their registry.

Built-in kinds:

- ``http``: ``HttpFeedAdapter`` downloads JSON snapshot feeds.
- ``warehouse``: ``WarehouseAdapter`` bulk-reads listing tables.

Adding a new kind: write a factory ``(SourceConfig, SyncConfig) ->
SourceAdapter`` and ``registry.register("kind", factory)``.
"""

from catalog_sync.sources.base import (
    AdapterFactory,
    AdapterRegistry,
    SourceAdapter,
    registry,
    source_info,
)
from catalog_sync.sources.http import HttpFeedAdapter, create_http_adapter
from catalog_sync.sources.market import split_market
from catalog_sync.sources.warehouse import (
    RowDecoder,
    WarehouseAdapter,
    create_warehouse_adapter,
)

registry.register("http", create_http_adapter)
registry.register("warehouse", create_warehouse_adapter)

__all__ = [
    "AdapterFactory",
    "AdapterRegistry",
    "SourceAdapter",
    "registry",
    "source_info",
    "HttpFeedAdapter",
    "create_http_adapter",
    "WarehouseAdapter",
    "RowDecoder",
    "create_warehouse_adapter",
    "split_market",
]
