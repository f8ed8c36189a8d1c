"""Market decomposition: one market source into its keeper sub-sources."""

from __future__ import annotations

from catalog_sync.core import Listing, Snapshot, SourceInfo


def split_market(
    snapshot: Snapshot,
    info: SourceInfo,
    keepers: list[str] | tuple[str, ...],
) -> list[tuple[SourceInfo, Snapshot]]:
    """Split a market inventory into one snapshot per keeper code.

    Listings are grouped by their ``seller`` field; listings for sellers
    that are not keepers are dropped. Each sub-source keeps the market's
    capture time and sealed flag, and is named after its code. A keeper
    without listings gets an empty snapshot, which callers reject.
    """
    wanted = set(keepers)
    grouped: dict[str, dict[str, list[Listing]]] = {k: {} for k in keepers}

    for item_id, entries in snapshot.records.items():
        for entry in entries:
            if entry.seller not in wanted:
                continue
            grouped[entry.seller].setdefault(item_id, []).append(entry)

    result = []
    for code in keepers:
        sub_info = SourceInfo(name=code, code=code, sealed=info.sealed)
        sub_snapshot = Snapshot(
            records={k: tuple(v) for k, v in grouped[code].items()},
            captured_at=snapshot.captured_at,
        )
        result.append((sub_info, sub_snapshot))
    return result
