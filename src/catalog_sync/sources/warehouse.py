"""Warehouse adapter: bulk-reads listing tables with a tagged-field decoder."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, ClassVar, Iterable

import aiosqlite
from pydantic import ValidationError

from catalog_sync.core import (
    DecodeError,
    Listing,
    Snapshot,
    SourceConfig,
    SourceInfo,
    SourceUnavailableError,
    SyncConfig,
)
from catalog_sync.sources.base import source_info

logger = logging.getLogger(__name__)

_ID_FIELD = "UUID"


def _as_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected text, got {type(value).__name__}")
    return value


def _as_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    return float(value)


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected an integer, got {type(value).__name__}")
    return value


class RowDecoder:
    """Decodes warehouse rows into (item id, Listing) pairs.

    Every column must be known: a fixed table of listing fields plus the
    custom field names allowed for the source. A column outside that set
    raises DecodeError instead of being dropped. NULL values are skipped.
    """

    _SETTERS: ClassVar[dict[str, tuple[str, Callable[[Any], Any]]]] = {
        "conditions": ("conditions", _as_str),
        "price": ("price", _as_float),
        "buy_price": ("buy_price", _as_float),
        "trade_price": ("trade_price", _as_float),
        "quantity": ("quantity", _as_int),
        "price_ratio": ("price_ratio", _as_float),
        "url": ("url", _as_str),
        "seller": ("seller", _as_str),
    }

    def __init__(self, table: str, custom_fields: Iterable[str] = ()) -> None:
        self._table = table
        self._custom = frozenset(custom_fields)

    def decode(self, row: dict[str, Any]) -> tuple[str, Listing]:
        item_id: str | None = None
        fields: dict[str, Any] = {}
        custom: dict[str, str] = {}

        for name, value in row.items():
            if value is None:
                continue
            try:
                if name == _ID_FIELD:
                    item_id = _as_str(value)
                elif name in self._SETTERS:
                    attr, cast = self._SETTERS[name]
                    fields[attr] = cast(value)
                elif name in self._custom:
                    custom[name] = _as_str(value)
                else:
                    raise DecodeError(
                        f"Unknown column {name!r} in table {self._table!r}",
                        context={"field": name, "table": self._table},
                    )
            except TypeError as e:
                raise DecodeError(
                    f"Bad value for column {name!r} in table {self._table!r}: {e}",
                    context={"field": name, "table": self._table},
                ) from e

        if not item_id:
            raise DecodeError(
                f"Row without {_ID_FIELD} in table {self._table!r}",
                context={"field": _ID_FIELD, "table": self._table},
            )
        if custom:
            fields["custom_fields"] = custom
        try:
            return item_id, Listing(**fields)
        except ValidationError as e:
            error = e.errors()[0]
            name = str(error["loc"][0]) if error["loc"] else "row"
            raise DecodeError(
                f"Bad value for column {name!r} in table {self._table!r}: {error['msg']}",
                context={"field": name, "table": self._table},
            ) from e


class WarehouseAdapter:
    """Reads full inventory/buylist tables from the bulk warehouse."""

    def __init__(self, source: SourceConfig, db_path: str) -> None:
        self._source = source
        self._db_path = db_path

    def info(self) -> SourceInfo:
        return source_info(self._source)

    async def inventory(self) -> Snapshot:
        return await self._load_table(self._source.inventory_table, "seller")

    async def buylist(self) -> Snapshot:
        return await self._load_table(self._source.buylist_table, "vendor")

    async def close(self) -> None:
        return None

    async def _load_table(self, table: str | None, side: str) -> Snapshot:
        context = {"code": self._source.code, "side": side, "table": table}
        if not table:
            raise SourceUnavailableError("empty table name", context=context)

        decoder = RowDecoder(table, self._source.custom_fields)
        captured_at = datetime.now(timezone.utc)
        grouped: dict[str, list[Listing]] = {}

        quoted = '"' + table.replace('"', '""') + '"'
        try:
            async with aiosqlite.connect(self._db_path) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(f"SELECT * FROM {quoted}") as cursor:
                    async for row in cursor:
                        item_id, listing = decoder.decode(dict(row))
                        grouped.setdefault(item_id, []).append(listing)
        except aiosqlite.Error as e:
            raise SourceUnavailableError(
                f"Failed to read table {table!r}: {e}", context=context
            ) from e

        logger.info("Read %d items from table %s", len(grouped), table)
        return Snapshot(
            records={k: tuple(v) for k, v in grouped.items()},
            captured_at=captured_at,
        )


def create_warehouse_adapter(source: SourceConfig, config: SyncConfig) -> WarehouseAdapter:
    """Adapter factory for ``kind: warehouse`` sources."""
    return WarehouseAdapter(source, config.warehouse.sqlite_path)
