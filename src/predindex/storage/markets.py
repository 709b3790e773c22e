"""Market mirror persistence."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from predindex.models.market import MarketAccount, Outcome
from predindex.storage.db import fetch_dicts

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def _now_ms() -> int:
    return int(time.time() * 1000)


def upsert_market_snapshot(conn: DuckDBPyConnection, market: MarketAccount, slot: int) -> None:
    """Insert a market from its ledger account, or refresh its snapshot fields.

    Only status, pool totals and resolution fields are overwritten on conflict.
    volume_24h and participant_count belong to the event processors; a first
    insert seeds them from bets indexed before the market was mirrored.
    """
    now_ms = _now_ms()
    resolved = market.is_resolved
    volume, participants = conn.execute(
        "SELECT COALESCE(SUM(amount), 0), COUNT(DISTINCT user_wallet) FROM bets WHERE market_id = ?",
        [market.market_id],
    ).fetchone()
    conn.execute(
        """
        INSERT INTO markets (
            market_id, pubkey, creator, title, description, category, status,
            collateral_mint, yes_mint, no_mint, vault,
            oracle_source, oracle_feed, oracle_threshold,
            start_timestamp, lock_timestamp, end_timestamp,
            total_yes_shares, total_no_shares, total_collateral,
            resolved_outcome, resolution_price, resolved_at,
            volume_24h, participant_count,
            min_bet, max_bet, fee_bps, indexed_slot, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (market_id) DO UPDATE SET
            status = excluded.status,
            total_yes_shares = excluded.total_yes_shares,
            total_no_shares = excluded.total_no_shares,
            total_collateral = excluded.total_collateral,
            resolved_outcome = CASE WHEN excluded.status = 'resolved'
                THEN COALESCE(excluded.resolved_outcome, resolved_outcome) ELSE NULL END,
            resolution_price = CASE WHEN excluded.status = 'resolved'
                THEN COALESCE(excluded.resolution_price, resolution_price) ELSE NULL END,
            resolved_at = CASE WHEN excluded.status = 'resolved'
                THEN COALESCE(resolved_at, excluded.resolved_at) ELSE NULL END,
            indexed_slot = GREATEST(indexed_slot, excluded.indexed_slot),
            updated_at = excluded.updated_at
        """,
        [
            market.market_id,
            market.pubkey,
            market.creator,
            market.title,
            market.description,
            market.category,
            market.status,
            market.collateral_mint,
            market.yes_mint,
            market.no_mint,
            market.vault,
            market.oracle_source,
            market.oracle_feed,
            market.oracle_threshold,
            market.start_timestamp * 1000,
            market.lock_timestamp * 1000,
            market.end_timestamp * 1000,
            market.total_yes_shares,
            market.total_no_shares,
            market.total_collateral,
            market.resolved_outcome.value if resolved and market.resolved_outcome else None,
            market.resolution_price if resolved else None,
            market.resolved_at * 1000 if resolved and market.resolved_at is not None else None,
            int(volume),
            int(participants),
            market.min_bet,
            market.max_bet,
            market.fee_bps,
            slot,
            now_ms,
            now_ms,
        ],
    )


def update_pool_state(
    conn: DuckDBPyConnection,
    market_id: int,
    total_yes_shares: int,
    total_no_shares: int,
    total_collateral: int,
    slot: int,
) -> None:
    """Overwrite pool totals with a fresher reading."""
    conn.execute(
        """
        UPDATE markets SET
            total_yes_shares = ?,
            total_no_shares = ?,
            total_collateral = ?,
            indexed_slot = GREATEST(indexed_slot, ?),
            updated_at = ?
        WHERE market_id = ?
        """,
        [total_yes_shares, total_no_shares, total_collateral, slot, _now_ms(), market_id],
    )


def add_bet_volume(conn: DuckDBPyConnection, market_id: int, amount: int, new_participant: bool) -> None:
    """Accumulate a bet into volume_24h (and participant_count for a first-time bettor)."""
    conn.execute(
        """
        UPDATE markets SET
            volume_24h = volume_24h + ?,
            participant_count = participant_count + ?,
            updated_at = ?
        WHERE market_id = ?
        """,
        [amount, 1 if new_participant else 0, _now_ms(), market_id],
    )


def mark_resolved(
    conn: DuckDBPyConnection,
    market_id: int,
    outcome: Outcome,
    resolution_price: int,
    resolved_at: int | None = None,
) -> bool:
    """Set the resolution fields. Returns False when the market is not mirrored yet."""
    if get_market_row(conn, market_id) is None:
        return False
    now_ms = _now_ms()
    conn.execute(
        """
        UPDATE markets SET
            status = 'resolved',
            resolved_outcome = ?,
            resolution_price = ?,
            resolved_at = ?,
            updated_at = ?
        WHERE market_id = ?
        """,
        [outcome.value, resolution_price, resolved_at or now_ms, now_ms, market_id],
    )
    return True


def get_market_row(conn: DuckDBPyConnection, market_id: int) -> dict[str, Any] | None:
    rows = fetch_dicts(conn, "SELECT * FROM markets WHERE market_id = ?", [market_id])
    return rows[0] if rows else None


def find_market(conn: DuckDBPyConnection, market_ref: str) -> dict[str, Any] | None:
    """Look a market up by numeric id or by account address."""
    market_ref = (market_ref or "").strip()
    if not market_ref:
        return None
    if market_ref.isdigit():
        return get_market_row(conn, int(market_ref))
    rows = fetch_dicts(conn, "SELECT * FROM markets WHERE pubkey = ?", [market_ref])
    return rows[0] if rows else None


def list_markets(
    conn: DuckDBPyConnection,
    *,
    page: int = 1,
    limit: int = 20,
    category: str | None = None,
) -> list[dict[str, Any]]:
    """Newest markets first, paginated. category 'All' (or None) means no filter."""
    conditions = ["1=1"]
    params: list[Any] = []
    if category and category != "All":
        conditions.append("category = ?")
        params.append(category)
    where = " AND ".join(conditions)
    offset = (max(page, 1) - 1) * limit
    params.extend([limit, offset])
    return fetch_dicts(
        conn,
        f"""
        SELECT * FROM markets
        WHERE {where}
        ORDER BY created_at DESC, market_id DESC
        LIMIT ? OFFSET ?
        """,
        params,
    )


def count_markets(conn: DuckDBPyConnection, category: str | None = None) -> int:
    if category and category != "All":
        return conn.execute("SELECT COUNT(*) FROM markets WHERE category = ?", [category]).fetchone()[0]
    return conn.execute("SELECT COUNT(*) FROM markets").fetchone()[0]
