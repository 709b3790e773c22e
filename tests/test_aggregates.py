"""Per-wallet aggregate rules."""

import pytest

from predindex.ingestion.aggregates import UserAggregate, apply_bet, apply_claim, compute_rank_score, replay_aggregates


def test_first_bet():
    agg = apply_bet(None, "w", 1_000)
    assert agg == UserAggregate(wallet="w", total_bets=1, total_volume=1_000, rank_score=300.0)


def test_later_bet_keeps_pnl_and_win_rate():
    agg = UserAggregate(wallet="w", total_bets=2, total_volume=500, total_pnl=100, win_rate=50.0)
    agg = apply_bet(agg, "w", 100)
    assert (agg.total_bets, agg.total_volume, agg.total_pnl, agg.win_rate) == (3, 600, 100, 50.0)
    assert agg.rank_score == pytest.approx(100 * 0.5 + 600 * 0.3 + 50.0 * 3 * 200)


def test_claim_recovers_wins_half_up():
    # 3 bets at 50% is 1.5 wins, which rounds up to 2
    agg = UserAggregate(wallet="w", total_bets=3, total_volume=300, win_rate=50.0)
    after = apply_claim(agg, 10)
    assert after.win_rate == pytest.approx(100.0)
    after = apply_claim(agg, -10)
    assert after.win_rate == pytest.approx(2 / 3 * 100)
    assert after.total_pnl == -10


def test_zero_contribution_is_not_a_win():
    agg = apply_claim(UserAggregate(wallet="w", total_bets=1, total_volume=10), 0)
    assert agg.win_rate == 0.0


def test_rank_score_formula():
    assert compute_rank_score(1_000, 2_000, 25.0, 4) == pytest.approx(500 + 600 + 20_000)


def test_replay_orders_claims_after_bets():
    rows = [
        {"kind": "claim", "market_id": 1, "user_wallet": "a", "amount": 50},
        {"kind": "bet", "market_id": 1, "user_wallet": "a", "amount": 100},
        {"kind": "bet", "market_id": 2, "user_wallet": "b", "amount": 40},
        {"kind": "claim", "market_id": 1, "user_wallet": "a", "amount": 180},
    ]
    aggs = replay_aggregates(rows)
    assert aggs["a"].total_pnl == 80
    assert aggs["a"].win_rate == pytest.approx(100.0)
    assert aggs["b"].total_volume == 40
