"""Price snapshots - the per-market probability time series."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from predindex.pricing import implied_price
from predindex.storage.db import fetch_dicts

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def append_snapshot(
    conn: DuckDBPyConnection,
    market_id: int,
    yes_pool: int,
    no_pool: int,
    total_collateral: int,
    slot: int,
    *,
    ordinal: int = 0,
    source: str = "event",
    timestamp: int | None = None,
) -> None:
    """Append one price_snapshots row priced from the pool ratio."""
    price = implied_price(yes_pool, no_pool)
    conn.execute(
        """
        INSERT INTO price_snapshots (market_id, yes_price, no_price, total_collateral, slot, ordinal, source, timestamp)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            market_id,
            price.yes,
            price.no,
            total_collateral,
            slot,
            ordinal,
            source,
            timestamp if timestamp is not None else int(time.time() * 1000),
        ],
    )


def price_history(conn: DuckDBPyConnection, market_id: int) -> list[dict[str, Any]]:
    """All snapshots for a market, oldest first."""
    return fetch_dicts(
        conn,
        """
        SELECT timestamp, yes_price, no_price, total_collateral, slot, ordinal, source
        FROM price_snapshots
        WHERE market_id = ?
        ORDER BY timestamp ASC, id ASC
        """,
        [market_id],
    )
