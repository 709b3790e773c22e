"""Quote command - price a hypothetical purchase."""

from __future__ import annotations

import typer

from predindex.models.market import Outcome
from predindex.pricing import SCALE, effective_price, implied_price, min_shares_out, quote as cpmm_quote
from predindex.storage.db import get_connection, init_schema
from predindex.storage.markets import find_market


def quote(
    ctx: typer.Context,
    amount: int = typer.Argument(..., help="Collateral in base units (lamports)"),
    side: str = typer.Option("Yes", "--side", "-s", help="Yes or No"),
    market: str | None = typer.Option(None, "--market", "-m", help="Market id or address; pools read from the store"),
    yes_pool: int = typer.Option(0, "--yes-pool", help="YES pool when no --market is given"),
    no_pool: int = typer.Option(0, "--no-pool", help="NO pool when no --market is given"),
    fee_bps: int = typer.Option(0, "--fee-bps", help="Fee when no --market is given"),
    slippage_bps: int = typer.Option(100, "--slippage-bps", help="Slippage tolerance for min shares"),
) -> None:
    """Shares minted for AMOUNT at the given (or mirrored) pool state."""
    if market is not None:
        conn = get_connection(ctx.obj["settings"].db_path)
        init_schema(conn)
        try:
            row = find_market(conn, market)
        finally:
            conn.close()
        if row is None:
            typer.echo(f"Market not found: {market}", err=True)
            raise typer.Exit(1)
        yes_pool, no_pool = int(row["total_yes_shares"]), int(row["total_no_shares"])
        fee_bps = int(row["fee_bps"] or 0)
    try:
        q = cpmm_quote(yes_pool, no_pool, amount, Outcome(side.strip().capitalize()), fee_bps)
        min_out = min_shares_out(q.shares_out, slippage_bps)
    except ValueError as e:
        typer.echo(f"Invalid quote: {e}", err=True)
        raise typer.Exit(2)
    before = implied_price(yes_pool, no_pool).as_float()
    after = implied_price(q.new_yes_pool, q.new_no_pool).as_float()
    paid = effective_price(amount, q.shares_out)
    typer.echo(f"Pools: yes={yes_pool} no={no_pool}  fee={q.fee} net={q.net_amount}")
    typer.echo(f"Shares out: {q.shares_out}  (min {min_out} at {slippage_bps} bps slippage)")
    if paid is not None:
        typer.echo(f"Effective price: {paid / SCALE:.6f}")
    typer.echo(f"YES price: {before[0]:.4f} -> {after[0]:.4f}")
