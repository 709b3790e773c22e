"""One-shot indexing commands: sync, index-tx."""

from __future__ import annotations

import asyncio

import typer

from predindex.ingestion.manager import Indexer


async def _run_sync(indexer: Indexer) -> int | None:
    try:
        return await indexer.run_sync_cycle()
    finally:
        await indexer.stop()


async def _run_index(indexer: Indexer, signature: str, refresh: bool):
    try:
        tx = await indexer.index_transaction(signature)
        if tx is not None and refresh:
            await indexer.refresh_markets(tx.market_ids)
        return tx
    finally:
        await indexer.stop()


def sync(ctx: typer.Context) -> None:
    """Run one reconciliation cycle against the ledger and exit."""
    indexer = Indexer(ctx.obj["settings"])
    try:
        written = asyncio.run(_run_sync(indexer))
    finally:
        indexer.close()
    if written is None:
        typer.echo("Sync failed (see log).", err=True)
        raise typer.Exit(1)
    typer.echo(f"Synced {written} markets.")


def index_tx(
    ctx: typer.Context,
    signature: str = typer.Argument(..., help="Transaction signature (base58)"),
    refresh: bool = typer.Option(True, "--refresh/--no-refresh", help="Refetch the markets the transaction touched"),
) -> None:
    """Fetch, decode and apply one confirmed transaction."""
    indexer = Indexer(ctx.obj["settings"])
    try:
        tx = asyncio.run(_run_index(indexer, signature, refresh))
    finally:
        indexer.close()
    if tx is None:
        typer.echo(f"Transaction not indexed: {signature}", err=True)
        raise typer.Exit(1)
    typer.echo(f"Decoded {len(tx.events)} events from {signature} (slot {tx.slot}).")
    for event in tx.events:
        typer.echo(f"  {event.kind}  market={event.market_id}")
