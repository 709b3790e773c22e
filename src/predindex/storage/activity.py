"""Bets and claims - append-only, keyed by transaction signature."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

from predindex.models.events import BetPlaced, PayoutClaimed
from predindex.storage.db import fetch_dicts

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def insert_bet(conn: DuckDBPyConnection, signature: str, slot: int, event: BetPlaced) -> bool:
    """Insert a bet unless its signature is already stored. Returns True if inserted."""
    row = conn.execute(
        """
        INSERT INTO bets (signature, market_id, user_wallet, outcome, amount, shares, slot, event_timestamp, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (signature) DO NOTHING
        RETURNING signature
        """,
        [
            signature,
            event.market_id,
            event.user,
            event.outcome.value,
            event.amount,
            event.shares,
            slot,
            event.timestamp * 1000,
            int(time.time() * 1000),
        ],
    ).fetchone()
    return row is not None


def insert_claim(conn: DuckDBPyConnection, signature: str, slot: int, event: PayoutClaimed) -> bool:
    """Insert a claim unless its signature is already stored. Returns True if inserted."""
    row = conn.execute(
        """
        INSERT INTO claims (signature, market_id, user_wallet, amount, shares_burned, slot, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (signature) DO NOTHING
        RETURNING signature
        """,
        [signature, event.market_id, event.user, event.amount, event.shares_burned, slot, int(time.time() * 1000)],
    ).fetchone()
    return row is not None


def user_has_bet_on_market(conn: DuckDBPyConnection, market_id: int, wallet: str, exclude_signature: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM bets WHERE market_id = ? AND user_wallet = ? AND signature != ? LIMIT 1",
        [market_id, wallet, exclude_signature],
    ).fetchone()
    return row is not None


def amount_wagered(conn: DuckDBPyConnection, market_id: int, wallet: str) -> int:
    """Total a wallet has bet on one market."""
    row = conn.execute(
        "SELECT COALESCE(SUM(amount), 0) FROM bets WHERE market_id = ? AND user_wallet = ?",
        [market_id, wallet],
    ).fetchone()
    return int(row[0])


def list_activity(conn: DuckDBPyConnection, wallet: str | None = None) -> list[dict[str, Any]]:
    """Bets and claims merged in the order they were applied (activity_seq)."""
    params: list[Any] = []
    where = ""
    if wallet:
        where = "WHERE user_wallet = ?"
        params = [wallet, wallet]
    return fetch_dicts(
        conn,
        f"""
        SELECT * FROM (
            SELECT 'bet' AS kind, seq, signature, market_id, user_wallet, amount FROM bets {where}
            UNION ALL
            SELECT 'claim' AS kind, seq, signature, market_id, user_wallet, amount FROM claims {where}
        ) ORDER BY seq
        """,
        params,
    )

