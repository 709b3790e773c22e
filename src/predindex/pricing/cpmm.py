"""Constant-product (CPMM) pricing over integer pools.

All math is integer at full precision. Pools and amounts are in collateral base
units (lamports); prices are fixed-point integers over ``SCALE``, so
``SCALE`` means probability 1.0. Convert to float only for display.
"""

from __future__ import annotations

from dataclasses import dataclass

from predindex.models.market import Outcome

# Lamports per SOL; also the fixed-point denominator for prices.
SCALE = 10**9
BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class Quote:
    """Result of buying one side of the pool."""

    side: Outcome
    amount_in: int
    fee: int
    net_amount: int
    k: int
    new_yes_pool: int
    new_no_pool: int
    shares_out: int


@dataclass(frozen=True)
class ImpliedPrice:
    yes: int
    no: int

    def as_float(self) -> tuple[float, float]:
        return self.yes / SCALE, self.no / SCALE


def _check_bps(name: str, bps: int) -> None:
    if not 0 <= bps <= BPS_DENOMINATOR:
        raise ValueError(f"{name} must be within 0..{BPS_DENOMINATOR}, got {bps}")


def _check_pools(yes_pool: int, no_pool: int) -> None:
    if yes_pool < 0 or no_pool < 0:
        raise ValueError(f"pools must be nonnegative, got ({yes_pool}, {no_pool})")


def quote(yes_pool: int, no_pool: int, amount_in: int, side: Outcome, fee_bps: int) -> Quote:
    """Shares received for spending amount_in on `side`.

    The fee comes off the top; the net amount is added to the opposite pool and
    the bought pool shrinks so that the product stays at or below k. Floor
    division means rounding always favours the pool. With either pool empty
    there is nothing to trade against: no shares come out.
    """
    _check_pools(yes_pool, no_pool)
    _check_bps("fee_bps", fee_bps)
    if amount_in < 0:
        raise ValueError(f"amount_in must be nonnegative, got {amount_in}")
    side = Outcome(side)
    if side is Outcome.INVALID:
        raise ValueError("cannot buy the invalid outcome")

    fee = amount_in * fee_bps // BPS_DENOMINATOR
    net = amount_in - fee
    k = yes_pool * no_pool

    if yes_pool == 0 or no_pool == 0:
        if side is Outcome.YES:
            return Quote(side, amount_in, fee, net, k, yes_pool, no_pool + net, 0)
        return Quote(side, amount_in, fee, net, k, yes_pool + net, no_pool, 0)

    if side is Outcome.YES:
        new_no = no_pool + net
        new_yes = k // new_no
        shares = yes_pool - new_yes
    else:
        new_yes = yes_pool + net
        new_no = k // new_yes
        shares = no_pool - new_no
    return Quote(side, amount_in, fee, net, k, new_yes, new_no, shares)


def min_shares_out(expected: int, slippage_bps: int) -> int:
    """Slippage floor for an expected share count. Never below one share."""
    _check_bps("slippage_bps", slippage_bps)
    return max(1, expected * (BPS_DENOMINATOR - slippage_bps) // BPS_DENOMINATOR)


def payout(user_winning_shares: int, total_winning_shares: int, total_collateral: int) -> int:
    """Pro-rata share of the collateral for a winning holder (truncated)."""
    if total_winning_shares <= 0:
        return 0
    return user_winning_shares * total_collateral // total_winning_shares


def implied_price(yes_pool: int, no_pool: int) -> ImpliedPrice:
    """YES/NO prices from the pool ratio; yes + no == SCALE always."""
    _check_pools(yes_pool, no_pool)
    total = yes_pool + no_pool
    if total == 0:
        return ImpliedPrice(SCALE // 2, SCALE - SCALE // 2)
    if yes_pool == 0:
        return ImpliedPrice(0, SCALE)
    if no_pool == 0:
        return ImpliedPrice(SCALE, 0)
    yes = no_pool * SCALE // total
    return ImpliedPrice(yes, SCALE - yes)


def effective_price(amount_in: int, shares_out: int) -> int | None:
    """Average fixed-point price paid per share; None when nothing was bought."""
    if shares_out <= 0:
        return None
    return amount_in * SCALE // shares_out
