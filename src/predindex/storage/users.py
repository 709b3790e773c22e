"""User aggregates and the global leaderboard."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Iterable

from predindex.ingestion.aggregates import UserAggregate
from predindex.storage.db import fetch_dicts

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def get_user(conn: DuckDBPyConnection, wallet: str) -> UserAggregate | None:
    row = conn.execute(
        "SELECT wallet, total_bets, total_volume, total_pnl, win_rate, rank_score FROM users WHERE wallet = ?",
        [wallet],
    ).fetchone()
    if row is None:
        return None
    return UserAggregate(
        wallet=row[0],
        total_bets=int(row[1]),
        total_volume=int(row[2]),
        total_pnl=int(row[3]),
        win_rate=float(row[4]),
        rank_score=float(row[5]),
    )


def save_user(conn: DuckDBPyConnection, agg: UserAggregate) -> None:
    """Insert or overwrite a wallet's totals; profile fields and first_seen are kept."""
    now_ms = int(time.time() * 1000)
    conn.execute(
        """
        INSERT INTO users (wallet, total_bets, total_volume, total_pnl, win_rate, rank_score, first_seen, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (wallet) DO UPDATE SET
            total_bets = excluded.total_bets,
            total_volume = excluded.total_volume,
            total_pnl = excluded.total_pnl,
            win_rate = excluded.win_rate,
            rank_score = excluded.rank_score,
            updated_at = excluded.updated_at
        """,
        [agg.wallet, agg.total_bets, agg.total_volume, agg.total_pnl, agg.win_rate, agg.rank_score, now_ms, now_ms],
    )


def save_users(conn: DuckDBPyConnection, aggs: Iterable[UserAggregate]) -> int:
    n = 0
    for agg in aggs:
        save_user(conn, agg)
        n += 1
    return n


def leaderboard(conn: DuckDBPyConnection, limit: int = 50, min_bets: int = 1) -> list[dict[str, Any]]:
    """Top wallets by rank_score with their rank."""
    return fetch_dicts(
        conn,
        """
        SELECT
            wallet, username, avatar_url, total_volume, total_pnl, total_bets, win_rate, rank_score,
            RANK() OVER (ORDER BY rank_score DESC) AS rank
        FROM users
        WHERE total_bets >= ?
        ORDER BY rank_score DESC, wallet
        LIMIT ?
        """,
        [min_bets, limit],
    )
