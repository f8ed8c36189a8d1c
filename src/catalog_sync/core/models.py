"""Pydantic data models: the system's type contracts."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

# --- Type Aliases ---

ItemId = str
SourceCode = str
DateKey = str

# --- Enumerations ---


class Side(StrEnum):
    """Which half of the catalog a snapshot belongs to."""

    SELLER = "seller"
    VENDOR = "vendor"


class FetchMode(StrEnum):
    """How a source acquires its data."""

    NETWORK = "network"
    WAREHOUSE = "warehouse"


# --- Listing / Snapshot Models ---


class Listing(BaseModel):
    """One priced offer for one item variant at one source.

    Sell-side listings use ``price``; buy-side listings use ``buy_price``
    (and optionally ``trade_price`` / ``price_ratio``). ``seller`` is only
    set by market sources and names the sub-source the offer belongs to.
    """

    model_config = ConfigDict(frozen=True)

    conditions: str = ""
    price: float = 0.0
    buy_price: float = 0.0
    trade_price: float = 0.0
    quantity: int = 0
    price_ratio: float = 0.0
    url: str = ""
    seller: str = ""
    custom_fields: dict[str, str] = {}

    @field_validator("price", "buy_price", "trade_price")
    @classmethod
    def price_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"prices must be >= 0, got {v}")
        return v

    @field_validator("quantity")
    @classmethod
    def quantity_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"quantity must be >= 0, got {v}")
        return v


class Snapshot(BaseModel):
    """A complete set of listings captured from one source at one time.

    ``records`` maps item id to listings in provider ranking order (best
    condition first). Snapshots are produced wholesale and never merged.
    """

    model_config = ConfigDict(frozen=True)

    records: dict[ItemId, tuple[Listing, ...]] = {}
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def __len__(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def listing_count(self) -> int:
        return sum(len(entries) for entries in self.records.values())

    def best(self, item_id: ItemId) -> Listing | None:
        """Return the top-ranked listing for an item, or None."""
        entries = self.records.get(item_id)
        if not entries:
            return None
        return entries[0]


class SourceInfo(BaseModel):
    """Identity and capture timestamps of a published source."""

    model_config = ConfigDict(frozen=True)

    name: str
    code: SourceCode
    sealed: bool = False
    inventory_timestamp: datetime | None = None
    buylist_timestamp: datetime | None = None

    @field_validator("code")
    @classmethod
    def code_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("source code must not be blank")
        return v.strip()


class SourceData(BaseModel):
    """One source's data on one side of the catalog."""

    model_config = ConfigDict(frozen=True)

    info: SourceInfo
    side: Side
    snapshot: Snapshot

    @property
    def code(self) -> SourceCode:
        return self.info.code

    @property
    def name(self) -> str:
        return self.info.name

    @property
    def sort_key(self) -> tuple[str, str]:
        """Deterministic ordering: display name, then short code."""
        return (self.info.name, self.info.code)

    @property
    def timestamp(self) -> datetime | None:
        if self.side == Side.SELLER:
            return self.info.inventory_timestamp
        return self.info.buylist_timestamp


def sort_sources(sources: list[SourceData] | tuple[SourceData, ...]) -> tuple[SourceData, ...]:
    """Sort sources by (name, code) so positional consumers stay stable."""
    return tuple(sorted(sources, key=lambda s: s.sort_key))


# --- Catalog Models ---


class Generation(BaseModel):
    """The pair of source lists visible to readers at one point in time."""

    model_config = ConfigDict(frozen=True)

    sellers: tuple[SourceData, ...] = ()
    vendors: tuple[SourceData, ...] = ()
    published_at: datetime | None = None

    def side(self, side: Side) -> tuple[SourceData, ...]:
        return self.sellers if side == Side.SELLER else self.vendors

    def get(self, side: Side, code: SourceCode) -> SourceData | None:
        for data in self.side(side):
            if data.code == code:
                return data
        return None

    def seller(self, code: SourceCode) -> SourceData | None:
        return self.get(Side.SELLER, code)

    def vendor(self, code: SourceCode) -> SourceData | None:
        return self.get(Side.VENDOR, code)

    def codes(self, side: Side) -> list[SourceCode]:
        return [data.code for data in self.side(side)]

    @property
    def is_empty(self) -> bool:
        return not self.sellers and not self.vendors


class CatalogStats(BaseModel):
    """Aggregates derived from a published generation."""

    model_config = ConfigDict(frozen=True)

    total_sellers: int = 0
    total_vendors: int = 0
    unique_items: int = 0
    total_listings: int = 0
    per_source: dict[str, int] = {}
    last_update: datetime | None = None

    @classmethod
    def from_generation(cls, generation: Generation) -> CatalogStats:
        items: set[ItemId] = set()
        per_source: dict[str, int] = {}
        total = 0
        for side in Side:
            for data in generation.side(side):
                items.update(data.snapshot.records)
                count = data.snapshot.listing_count
                per_source[f"{side.value}:{data.code}"] = count
                total += count
        return cls(
            total_sellers=len(generation.sellers),
            total_vendors=len(generation.vendors),
            unique_items=len(items),
            total_listings=total,
            per_source=per_source,
            last_update=generation.published_at,
        )


# --- Outcome Models ---


class RefreshResult(BaseModel):
    """Outcome of a single-source refresh."""

    model_config = ConfigDict(frozen=True)

    code: SourceCode
    updated: list[str] = []
    failed: dict[str, str] = {}

    @property
    def ok(self) -> bool:
        return bool(self.updated) and not self.failed


class SyncReport(BaseModel):
    """Outcome of one bulk cycle."""

    model_config = ConfigDict(frozen=True)

    succeeded: list[str] = []
    failed: dict[str, str] = {}
    carried_over: list[str] = []
    published: bool = False
    duration_seconds: float = 0.0
