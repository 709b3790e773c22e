"""Event processors - apply one decoded ledger event to the store.

Every call runs in its own transaction on its own cursor. Bets and claims
are keyed by transaction signature; a signature that is already stored makes
the whole call a no-op, so redelivery from any intake path is harmless.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from predindex.ingestion.aggregates import apply_bet, apply_claim, replay_aggregates
from predindex.models.events import BetPlaced, LedgerEvent, MarketResolved, PayoutClaimed
from predindex.models.market import MarketAccount
from predindex.pricing import quote
from predindex.storage.activity import (
    amount_wagered,
    insert_bet,
    insert_claim,
    list_activity,
    user_has_bet_on_market,
)
from predindex.storage.db import transaction
from predindex.storage.markets import add_bet_volume, get_market_row, mark_resolved, update_pool_state
from predindex.storage.snapshots import append_snapshot
from predindex.storage.users import get_user, save_user, save_users

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)


def _check_against_quote(market: dict, event: BetPlaced, signature: str) -> None:
    """Debug-log bets whose minted shares differ from a quote on the mirrored pools."""
    try:
        q = quote(
            int(market["total_yes_shares"]),
            int(market["total_no_shares"]),
            event.amount,
            event.outcome,
            int(market["fee_bps"] or 0),
        )
    except ValueError:
        return
    if q.shares_out != event.shares:
        log.debug(
            "bet_quote_mismatch",
            signature=signature,
            market_id=event.market_id,
            quoted=q.shares_out,
            recorded=event.shares,
        )


def process_bet_placed(
    conn: DuckDBPyConnection,
    event: BetPlaced,
    slot: int,
    signature: str,
    live: MarketAccount | None = None,
) -> bool:
    """Record a bet, its volume, the bettor's totals and a price snapshot.

    `live` is the market account read from the ledger just before this call;
    without it the post-trade pool totals carried by the event are used.
    Returns False when the signature was already indexed.
    """
    with transaction(conn):
        if not insert_bet(conn, signature, slot, event):
            log.debug("bet_already_indexed", signature=signature)
            return False

        save_user(conn, apply_bet(get_user(conn, event.user), event.user, event.amount))

        market = get_market_row(conn, event.market_id)
        if market is None:
            # volume and participants are seeded from bets when the market is first mirrored
            log.info("bet_for_unmirrored_market", market_id=event.market_id, signature=signature)
        else:
            _check_against_quote(market, event, signature)
            new_participant = not user_has_bet_on_market(conn, event.market_id, event.user, signature)
            add_bet_volume(conn, event.market_id, event.amount, new_participant)

            if live is not None and live.market_id == event.market_id:
                yes_pool, no_pool, collateral = live.total_yes_shares, live.total_no_shares, live.total_collateral
            else:
                yes_pool, no_pool = event.new_yes_total, event.new_no_total
                collateral = int(market["total_collateral"])
            update_pool_state(conn, event.market_id, yes_pool, no_pool, collateral, slot)
            append_snapshot(
                conn, event.market_id, yes_pool, no_pool, collateral, slot, ordinal=event.ordinal, source="event"
            )

    log.info(
        "bet_indexed",
        signature=signature,
        market_id=event.market_id,
        user=event.user,
        outcome=event.outcome.value,
        amount=event.amount,
    )
    return True


def process_market_resolved(conn: DuckDBPyConnection, event: MarketResolved, slot: int, signature: str) -> bool:
    """Mark a market resolved. Reapplying overwrites with the same values."""
    with transaction(conn):
        found = mark_resolved(conn, event.market_id, event.outcome, event.resolution_price)
    if not found:
        log.warning("resolution_for_unmirrored_market", market_id=event.market_id, signature=signature)
        return False
    log.info("market_resolved_indexed", market_id=event.market_id, outcome=event.outcome.value, signature=signature)
    return True


def process_payout_claimed(conn: DuckDBPyConnection, event: PayoutClaimed, slot: int, signature: str) -> bool:
    """Record a claim and fold its pnl into the claimant's totals.

    Returns False when the signature was already indexed.
    """
    with transaction(conn):
        if not insert_claim(conn, signature, slot, event):
            log.debug("claim_already_indexed", signature=signature)
            return False
        contribution = event.amount - amount_wagered(conn, event.market_id, event.user)
        agg = get_user(conn, event.user)
        if agg is None:
            log.info("claim_without_bets", user=event.user, market_id=event.market_id, signature=signature)
        else:
            save_user(conn, apply_claim(agg, contribution))

    log.info(
        "claim_indexed",
        signature=signature,
        market_id=event.market_id,
        user=event.user,
        payout=event.amount,
        pnl=contribution,
    )
    return True


def apply_event(
    conn: DuckDBPyConnection,
    event: LedgerEvent,
    slot: int,
    signature: str,
    live: MarketAccount | None = None,
) -> bool:
    """Dispatch one event to its processor on a fresh cursor of conn."""
    cur = conn.cursor()
    try:
        if isinstance(event, BetPlaced):
            return process_bet_placed(cur, event, slot, signature, live)
        if isinstance(event, MarketResolved):
            return process_market_resolved(cur, event, slot, signature)
        if isinstance(event, PayoutClaimed):
            return process_payout_claimed(cur, event, slot, signature)
        raise TypeError(f"unsupported event {type(event).__name__}")
    finally:
        cur.close()


def rebuild_user_aggregates(conn: DuckDBPyConnection) -> int:
    """Recompute every wallet's totals from bets/claims history and overwrite users."""
    cur = conn.cursor()
    try:
        with transaction(cur):
            aggs = replay_aggregates(list_activity(cur))
            written = save_users(cur, aggs.values())
    finally:
        cur.close()
    log.info("users_rebuilt", wallets=written)
    return written
