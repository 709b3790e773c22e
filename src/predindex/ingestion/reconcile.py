"""Reconciliation - bring the market mirror in line with live ledger accounts."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

import structlog

from predindex.ingestion.base import LedgerSource
from predindex.models.market import MarketAccount
from predindex.storage.db import transaction
from predindex.storage.markets import upsert_market_snapshot
from predindex.storage.snapshots import append_snapshot

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def reconcile_markets(
    conn: DuckDBPyConnection,
    markets: Iterable[MarketAccount],
    slot: int,
    collateral_mint: str = "",
) -> int:
    """Upsert every market on collateral_mint and append one 'sync' snapshot each.

    All writes share one transaction. An empty collateral_mint accepts every market.
    Returns the number of markets written.
    """
    markets = list(markets)
    accepted = [m for m in markets if not collateral_mint or m.collateral_mint == collateral_mint]
    skipped = len(markets) - len(accepted)
    if skipped:
        log.info("markets_skipped_collateral", skipped=skipped, collateral_mint=collateral_mint)

    cur = conn.cursor()
    try:
        with transaction(cur):
            for market in accepted:
                upsert_market_snapshot(cur, market, slot)
                append_snapshot(
                    cur,
                    market.market_id,
                    market.total_yes_shares,
                    market.total_no_shares,
                    market.total_collateral,
                    slot,
                    source="sync",
                )
    finally:
        cur.close()
    return len(accepted)


async def sync_all_markets(conn: DuckDBPyConnection, ledger: LedgerSource, collateral_mint: str = "") -> int:
    """Fetch all market accounts, then reconcile them. RPC runs before the transaction opens."""
    slot, markets = await ledger.get_market_accounts()
    written = reconcile_markets(conn, markets, slot, collateral_mint)
    log.info("markets_synced", fetched=len(markets), written=written, slot=slot)
    return written
