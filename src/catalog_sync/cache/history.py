"""SQLite-backed historical price store.

Keeps one price per (namespace, item id, date) for charting. Namespaces
separate the series of different sources/sides ("ck_retail",
"ck_buylist", "tcg_low", ...). The store is written by the synchronizer
and read by reporting; nothing in catalog publication depends on it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import AsyncIterator, Iterable

import aiosqlite

from catalog_sync.core import HistoryConfig, HistoryError

logger = logging.getLogger(__name__)

# Scale for converting non-NM sell prices to an NM-equivalent price
GRADE_MULTIPLIERS: dict[str, float] = {
    "NM": 1.0,
    "SP": 1.25,
    "MP": 1.67,
    "HP": 2.5,
    "PO": 4.0,
}


def nm_equivalent(price: float, conditions: str) -> float:
    """Scale a sell price by its grade multiplier (unknown grades: 1)."""
    return price * GRADE_MULTIPLIERS.get(conditions, 1.0)


class HistoryStore:
    """Time series of daily price points keyed by item id and date.

    Parameters
    ----------
    db_path : str
        Path to the SQLite database file. Created if missing. ``:memory:``
        keeps a single private connection for the store's lifetime.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the connection and create the table."""
        try:
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self._db_path)
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute(
                """CREATE TABLE IF NOT EXISTS price_history (
                    namespace TEXT NOT NULL,
                    item_id TEXT NOT NULL,
                    date_key TEXT NOT NULL,
                    price REAL NOT NULL,
                    PRIMARY KEY (namespace, item_id, date_key)
                )"""
            )
            await self._db.commit()
        except Exception as e:
            raise HistoryError(
                f"Failed to initialize history store: {e}",
                context={"operation": "initialize", "path": self._db_path},
            ) from e

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise HistoryError(
                "History store is not initialized",
                context={"operation": "connect"},
            )
        return self._db

    async def record(
        self,
        namespace: str,
        item_id: str,
        date_key: str,
        price: float,
        overwrite: bool = True,
    ) -> None:
        """Store one price point.

        With ``overwrite=False`` an existing point is kept, so a price set
        from more accurate data is not replaced by a derived one.
        """
        await self.record_many(namespace, date_key, [(item_id, price)], overwrite)

    async def record_many(
        self,
        namespace: str,
        date_key: str,
        points: Iterable[tuple[str, float]],
        overwrite: bool = True,
    ) -> int:
        """Store many (item id, price) points for one date. Returns the count."""
        verb = "INSERT OR REPLACE" if overwrite else "INSERT OR IGNORE"
        rows = [(namespace, item_id, date_key, price) for item_id, price in points]
        if not rows:
            return 0
        try:
            db = self._conn()
            await db.executemany(
                f"""{verb} INTO price_history (namespace, item_id, date_key, price)
                    VALUES (?, ?, ?, ?)""",
                rows,
            )
            await db.commit()
        except HistoryError:
            raise
        except Exception as e:
            raise HistoryError(
                f"Failed to record history: {e}",
                context={"operation": "record", "namespace": namespace},
            ) from e
        logger.debug("Recorded %d points in %s for %s", len(rows), namespace, date_key)
        return len(rows)

    async def scan(self, namespace: str, pattern: str = "*") -> AsyncIterator[str]:
        """Yield distinct item ids matching a glob pattern (``*``, ``?``, ``[..]``)."""
        try:
            db = self._conn()
            async with db.execute(
                """SELECT DISTINCT item_id FROM price_history
                   WHERE namespace = ? AND item_id GLOB ?
                   ORDER BY item_id""",
                (namespace, pattern),
            ) as cursor:
                rows = await cursor.fetchall()
        except HistoryError:
            raise
        except Exception as e:
            raise HistoryError(
                f"Failed to scan history: {e}",
                context={"operation": "scan", "namespace": namespace},
            ) from e
        for row in rows:
            yield row[0]

    async def fetch_series(self, namespace: str, item_id: str) -> dict[str, float]:
        """Return ``{date_key: price}`` for one item, oldest first."""
        try:
            db = self._conn()
            async with db.execute(
                """SELECT date_key, price FROM price_history
                   WHERE namespace = ? AND item_id = ?
                   ORDER BY date_key""",
                (namespace, item_id),
            ) as cursor:
                rows = await cursor.fetchall()
        except HistoryError:
            raise
        except Exception as e:
            raise HistoryError(
                f"Failed to fetch history: {e}",
                context={"operation": "fetch", "namespace": namespace},
            ) from e
        return {row[0]: row[1] for row in rows}

    async def namespaces(self) -> list[str]:
        """Return all namespaces with stored points."""
        db = self._conn()
        async with db.execute(
            "SELECT DISTINCT namespace FROM price_history ORDER BY namespace"
        ) as cursor:
            rows = await cursor.fetchall()
        return [row[0] for row in rows]


async def create_history_store(config: HistoryConfig) -> HistoryStore | None:
    """Open the history store, or return None when history is disabled."""
    if not config.enabled:
        return None
    store = HistoryStore(config.sqlite_path)
    await store.initialize()
    return store
