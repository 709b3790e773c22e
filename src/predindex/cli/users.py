"""Users subcommand: rebuild, top."""

from __future__ import annotations

import typer

from predindex.ingestion.processors import rebuild_user_aggregates
from predindex.storage.db import get_connection, init_schema
from predindex.storage.users import leaderboard

app = typer.Typer(help="User aggregates and leaderboard")


@app.command("rebuild")
def rebuild(ctx: typer.Context) -> None:
    """Recompute every wallet's totals from the stored bets and claims."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        written = rebuild_user_aggregates(conn)
    finally:
        conn.close()
    typer.echo(f"Rebuilt {written} wallets.")


@app.command("top")
def top(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", "-n", help="Number of wallets"),
    min_bets: int = typer.Option(1, "--min-bets", help="Only wallets with at least this many bets"),
) -> None:
    """Print the leaderboard."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        rows = leaderboard(conn, limit=limit, min_bets=min_bets)
    finally:
        conn.close()
    if not rows:
        typer.echo("No users indexed yet.")
        return
    for r in rows:
        typer.echo(
            f"{r['rank']:>4}  {r['wallet'][:12]}...  score={r['rank_score']:.1f}  "
            f"bets={r['total_bets']}  win_rate={r['win_rate']:.1f}%  pnl={r['total_pnl']}"
        )
