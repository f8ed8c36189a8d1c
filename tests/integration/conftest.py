"""Integration test fixtures: real SQLite and filesystem I/O, mocked HTTP."""

from __future__ import annotations

import os
from pathlib import Path

import aiosqlite
import pytest

from catalog_sync.core import SyncConfig

FEED_BASE = "https://feeds.example.com"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("CATALOG_SYNC_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
async def warehouse_db(tmp_path: Path) -> str:
    """A warehouse with one market inventory table and one buylist table."""
    path = str(tmp_path / "warehouse.db")
    async with aiosqlite.connect(path) as db:
        await db.execute(
            """CREATE TABLE market_inventory (
                UUID TEXT, conditions TEXT, price REAL, quantity INTEGER, seller TEXT
            )"""
        )
        rows = []
        for i in range(6):
            rows.append((f"uuid-{i}", "NM", 2.0 + i, 1, "MktLow"))
            if i % 2 == 0:
                rows.append((f"uuid-{i}", "SP", 1.5 + i, 2, "MktDirect"))
            rows.append((f"uuid-{i}", "NM", 9.0, 1, "Stranger"))
        await db.executemany("INSERT INTO market_inventory VALUES (?, ?, ?, ?, ?)", rows)
        await db.execute(
            "CREATE TABLE market_buylist (UUID TEXT, conditions TEXT, buy_price REAL)"
        )
        await db.executemany(
            "INSERT INTO market_buylist VALUES (?, 'NM', ?)",
            [(f"uuid-{i}", 1.0 + i) for i in range(4)],
        )
        await db.commit()
    return path


@pytest.fixture
def engine_config(tmp_path: Path, warehouse_db: str) -> SyncConfig:
    return SyncConfig.model_validate(
        {
            "cache": {
                "sellers_dir": str(tmp_path / "cache" / "sellers"),
                "vendors_dir": str(tmp_path / "cache" / "vendors"),
            },
            "history": {"enabled": True, "sqlite_path": str(tmp_path / "history.db")},
            "warehouse": {"sqlite_path": warehouse_db},
            "sync": {"source_timeout": 5, "max_retries": 0},
            "sources": [
                {
                    "name": "Alpha Cards",
                    "code": "A",
                    "inventory_url": f"{FEED_BASE}/a/inventory.json",
                    "history": {"seller": "a_retail"},
                },
                {
                    "name": "Bravo Games",
                    "code": "B",
                    "buys": True,
                    "inventory_url": f"{FEED_BASE}/b/inventory.json",
                    "buylist_url": f"{FEED_BASE}/b/buylist.json",
                    "history": {"vendor": "b_buylist"},
                },
                {
                    "name": "Market",
                    "code": "MKT",
                    "kind": "warehouse",
                    "buys": True,
                    "inventory_table": "market_inventory",
                    "buylist_table": "market_buylist",
                    "keepers": ["MktLow", "MktDirect"],
                    "keepers_buylist": "MktBuy",
                    "history": {"MktLow": "mkt_low"},
                },
            ],
        }
    )


def feed(n: int, field: str = "price", value: float = 1.0) -> dict:
    return {"records": {f"uuid-{i}": [{"conditions": "NM", field: value}] for i in range(n)}}


@pytest.fixture
def make_feed():
    return feed
