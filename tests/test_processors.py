"""Event processors: idempotency, accumulators, snapshots, rebuild."""

import random

import pytest

from helpers import key, make_market, sig
from predindex.ingestion import processors
from predindex.ingestion.processors import apply_event, rebuild_user_aggregates
from predindex.ingestion.reconcile import reconcile_markets
from predindex.models.events import BetPlaced, MarketResolved, PayoutClaimed
from predindex.models.market import Outcome
from predindex.pricing import implied_price
from predindex.storage.markets import get_market_row
from predindex.storage.users import get_user


def _bet(market_id=1, user=7, amount=100, outcome=Outcome.YES, shares=90, new_yes=910, new_no=1098):
    return BetPlaced(
        market_id=market_id,
        user=key(user),
        outcome=outcome,
        amount=amount,
        shares=shares,
        new_yes_total=new_yes,
        new_no_total=new_no,
        timestamp=1_700_000_500,
    )


def _claim(market_id=1, user=7, amount=700):
    return PayoutClaimed(market_id=market_id, user=key(user), amount=amount, shares_burned=amount)


def _count(conn, sql, params=None):
    return conn.execute(sql, params or []).fetchone()[0]


@pytest.fixture
def store(temp_db):
    reconcile_markets(temp_db, [make_market(1), make_market(2)], slot=10)
    return temp_db


def test_bet_updates_market_user_and_snapshot(store):
    assert apply_event(store, _bet(), slot=20, signature=sig(1))

    market = get_market_row(store, 1)
    assert market["volume_24h"] == 100
    assert market["participant_count"] == 1
    assert (market["total_yes_shares"], market["total_no_shares"]) == (910, 1098)
    assert market["indexed_slot"] == 20

    user = get_user(store, key(7))
    assert (user.total_bets, user.total_volume, user.total_pnl) == (1, 100, 0)
    assert user.rank_score == pytest.approx(30.0)

    yes_price, no_price, slot = store.execute(
        "SELECT yes_price, no_price, slot FROM price_snapshots WHERE source = 'event'"
    ).fetchone()
    expected = implied_price(910, 1098)
    assert (yes_price, no_price, slot) == (expected.yes, expected.no, 20)


def test_duplicate_signature_is_a_no_op(store):
    event = _bet()
    assert apply_event(store, event, 20, sig(1))
    assert not apply_event(store, event, 20, sig(1))

    assert _count(store, "SELECT COUNT(*) FROM bets") == 1
    assert get_market_row(store, 1)["volume_24h"] == 100
    assert get_user(store, key(7)).total_bets == 1
    assert _count(store, "SELECT COUNT(*) FROM price_snapshots WHERE source = 'event'") == 1


def test_participant_count_counts_wallets_once(store):
    apply_event(store, _bet(user=7), 20, sig(1))
    apply_event(store, _bet(user=7), 21, sig(2))
    apply_event(store, _bet(user=8), 22, sig(3))
    apply_event(store, _bet(market_id=2, user=7), 23, sig(4))

    assert get_market_row(store, 1)["participant_count"] == 2
    assert get_market_row(store, 1)["volume_24h"] == 300
    assert get_market_row(store, 2)["participant_count"] == 1


def test_live_account_wins_over_event_totals(store):
    live = make_market(1, total_yes_shares=5, total_no_shares=15, total_collateral=77)
    apply_event(store, _bet(), 20, sig(1), live=live)

    market = get_market_row(store, 1)
    assert (market["total_yes_shares"], market["total_no_shares"], market["total_collateral"]) == (5, 15, 77)
    row = store.execute("SELECT yes_price, total_collateral FROM price_snapshots WHERE source = 'event'").fetchone()
    assert row == (implied_price(5, 15).yes, 77)


def test_bet_before_market_is_mirrored_keeps_volume(store):
    assert apply_event(store, _bet(market_id=99, user=7, amount=100), 20, sig(1))
    assert apply_event(store, _bet(market_id=99, user=7, amount=40), 21, sig(2))
    assert apply_event(store, _bet(market_id=99, user=8, amount=60), 22, sig(3))
    assert get_market_row(store, 99) is None
    assert get_user(store, key(7)).total_volume == 140
    assert _count(store, "SELECT COUNT(*) FROM price_snapshots WHERE market_id = 99") == 0

    reconcile_markets(store, [make_market(99)], slot=30)
    reconcile_markets(store, [make_market(99)], slot=31)
    market = get_market_row(store, 99)
    assert market["volume_24h"] == 200
    assert market["participant_count"] == 2

    apply_event(store, _bet(market_id=99, user=9, amount=10), 40, sig(4))
    market = get_market_row(store, 99)
    assert market["volume_24h"] == 210
    assert market["participant_count"] == 3
    assert _count(store, "SELECT COUNT(*) FROM price_snapshots WHERE market_id = 99 AND source = 'event'") == 1


def test_failed_processor_rolls_back(store, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(processors, "append_snapshot", boom)
    with pytest.raises(RuntimeError):
        apply_event(store, _bet(), 20, sig(1))

    assert _count(store, "SELECT COUNT(*) FROM bets") == 0
    assert get_market_row(store, 1)["volume_24h"] == 0
    assert get_user(store, key(7)) is None


def test_winning_claim_updates_pnl_and_win_rate(store):
    apply_event(store, _bet(amount=300), 20, sig(1))
    assert apply_event(store, _claim(amount=700), 30, sig(2))

    user = get_user(store, key(7))
    assert user.total_pnl == 400
    assert user.win_rate == pytest.approx(100.0)
    assert user.rank_score == pytest.approx(400 * 0.5 + 300 * 0.3 + 100.0 * 1 * 200)


def test_duplicate_claim_is_a_no_op(store):
    apply_event(store, _bet(amount=300), 20, sig(1))
    apply_event(store, _claim(amount=700), 30, sig(2))
    assert not apply_event(store, _claim(amount=700), 30, sig(2))
    assert get_user(store, key(7)).total_pnl == 400
    assert _count(store, "SELECT COUNT(*) FROM claims") == 1


def test_losing_claim(store):
    apply_event(store, _bet(amount=300), 20, sig(1))
    apply_event(store, _bet(amount=100), 21, sig(2))
    apply_event(store, _claim(amount=150), 30, sig(3))

    user = get_user(store, key(7))
    assert user.total_pnl == -250
    assert user.win_rate == 0.0


def test_claim_without_bets_skips_user(store):
    assert apply_event(store, _claim(user=42, amount=10), 30, sig(1))
    assert _count(store, "SELECT COUNT(*) FROM claims") == 1
    assert get_user(store, key(42)) is None


def test_resolution(store):
    event = MarketResolved(market_id=1, outcome=Outcome.NO, resolution_price=77, total_collateral=0)
    assert apply_event(store, event, 40, sig(1))
    assert apply_event(store, event, 40, sig(1))
    market = get_market_row(store, 1)
    assert market["status"] == "resolved"
    assert market["resolved_outcome"] == "No"
    assert market["resolution_price"] == 77
    assert market["resolved_at"] is not None


def test_resolution_for_unknown_market(store):
    event = MarketResolved(market_id=99, outcome=Outcome.YES, resolution_price=0, total_collateral=0)
    assert not apply_event(store, event, 40, sig(1))


def test_incremental_aggregates_match_rebuild(store):
    rng = random.Random(3)
    n = 0
    for _ in range(120):
        n += 1
        market_id = rng.choice([1, 2])
        user = rng.choice([7, 8, 9])
        if rng.random() < 0.7:
            apply_event(store, _bet(market_id, user, rng.randint(1, 1_000)), n, sig(n))
        else:
            apply_event(store, _claim(market_id, user, rng.randint(0, 2_000)), n, sig(n))

    wallets = [key(u) for u in (7, 8, 9)]
    incremental = {w: get_user(store, w) for w in wallets}
    assert rebuild_user_aggregates(store) == sum(1 for a in incremental.values() if a is not None)
    rebuilt = {w: get_user(store, w) for w in wallets}

    for w in wallets:
        if incremental[w] is None:
            assert rebuilt[w] is None
            continue
        assert rebuilt[w].total_bets == incremental[w].total_bets
        assert rebuilt[w].total_volume == incremental[w].total_volume
        assert rebuilt[w].total_pnl == incremental[w].total_pnl
        assert rebuilt[w].win_rate == pytest.approx(incremental[w].win_rate)
        assert rebuilt[w].rank_score == pytest.approx(incremental[w].rank_score)
