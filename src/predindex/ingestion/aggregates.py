"""Per-wallet running totals and the leaderboard rank score.

The event processors fold one event at a time into a stored aggregate; the
batch rebuild replays raw bets/claims history through the same two rules, so
both paths agree for any event order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Iterable

PNL_WEIGHT = 0.5
VOLUME_WEIGHT = 0.3
WIN_RATE_WEIGHT = 200


@dataclass(frozen=True)
class UserAggregate:
    wallet: str
    total_bets: int = 0
    total_volume: int = 0
    total_pnl: int = 0
    win_rate: float = 0.0
    rank_score: float = 0.0


def compute_rank_score(total_pnl: int, total_volume: int, win_rate: float, total_bets: int) -> float:
    return total_pnl * PNL_WEIGHT + total_volume * VOLUME_WEIGHT + win_rate * total_bets * WIN_RATE_WEIGHT


def apply_bet(agg: UserAggregate | None, wallet: str, amount: int) -> UserAggregate:
    """Fold one bet into a wallet's totals; pnl and win rate carry over unchanged."""
    if agg is None:
        return UserAggregate(wallet=wallet, total_bets=1, total_volume=amount, rank_score=amount * VOLUME_WEIGHT)
    total_bets = agg.total_bets + 1
    total_volume = agg.total_volume + amount
    return replace(
        agg,
        total_bets=total_bets,
        total_volume=total_volume,
        rank_score=compute_rank_score(agg.total_pnl, total_volume, agg.win_rate, total_bets),
    )


def apply_claim(agg: UserAggregate, contribution: int) -> UserAggregate:
    """Fold one payout (payout minus amount wagered on that market) into a wallet's totals."""
    # wins recovered from the stored rate, rounded half-up
    wins = math.floor(agg.win_rate * agg.total_bets / 100 + 0.5) + (1 if contribution > 0 else 0)
    win_rate = wins / agg.total_bets * 100 if agg.total_bets > 0 else 0.0
    total_pnl = agg.total_pnl + contribution
    return replace(
        agg,
        total_pnl=total_pnl,
        win_rate=win_rate,
        rank_score=compute_rank_score(total_pnl, agg.total_volume, win_rate, agg.total_bets),
    )


def replay_aggregates(activity: Iterable[dict[str, Any]]) -> dict[str, UserAggregate]:
    """Rebuild every wallet's aggregate from bets/claims rows in application order.

    Rows need kind ('bet' | 'claim'), market_id, user_wallet and amount.
    """
    aggs: dict[str, UserAggregate] = {}
    wagered: dict[tuple[int, str], int] = {}
    for row in activity:
        wallet = row["user_wallet"]
        key = (int(row["market_id"]), wallet)
        amount = int(row["amount"])
        if row["kind"] == "bet":
            aggs[wallet] = apply_bet(aggs.get(wallet), wallet, amount)
            wagered[key] = wagered.get(key, 0) + amount
        elif wallet in aggs:
            aggs[wallet] = apply_claim(aggs[wallet], amount - wagered.get(key, 0))
    return aggs
