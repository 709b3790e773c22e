"""Indexer service - owns the store connection, the sync loop and the log subscription."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any

import structlog

from predindex.config import Settings
from predindex.ingestion.base import LedgerSource
from predindex.ingestion.processors import apply_event, rebuild_user_aggregates
from predindex.ingestion.reconcile import reconcile_markets, sync_all_markets
from predindex.ingestion.subscription import run_log_subscription
from predindex.ledger.client import LedgerClient
from predindex.ledger.decoder import decode_transaction
from predindex.models.events import BetPlaced, DecodedTransaction
from predindex.models.market import MarketAccount
from predindex.storage.db import get_connection, init_schema
from predindex.storage.markets import get_market_row

log = structlog.get_logger(__name__)


def webhook_signature(item: Any) -> str | None:
    """Transaction signature from one webhook item ({signature} or {transaction: {signatures: [...]}})."""
    if not isinstance(item, dict):
        return None
    sig = item.get("signature")
    if isinstance(sig, str) and sig:
        return sig
    tx = item.get("transaction")
    if isinstance(tx, dict):
        sigs = tx.get("signatures")
        if isinstance(sigs, list) and sigs and isinstance(sigs[0], str):
            return sigs[0]
    return None


class Indexer:
    """Keeps the DuckDB mirror in step with the ledger.

    Intake paths (subscription, webhook, resync) all funnel into apply_decoded;
    the scheduler reconciles market snapshots every sync_interval_sec.
    """

    def __init__(
        self,
        settings: Settings,
        ledger: LedgerSource | None = None,
        db_path: str | Path | None = None,
    ):
        self.settings = settings
        self.db_path = Path(db_path or settings.db_path)
        self._ledger = ledger
        self._owns_ledger = ledger is None
        self._conn = None
        self._stop: asyncio.Event | None = None
        self._tasks: list[asyncio.Task] = []
        self._last_sync_ts: float | None = None
        self._last_sync_error: str | None = None
        self._events_applied = 0

    def _get_conn(self):
        if self._conn is None:
            self._conn = get_connection(self.db_path)
            init_schema(self._conn)
        return self._conn

    def cursor(self):
        """A fresh cursor on the indexer's database for one unit of work."""
        return self._get_conn().cursor()

    @property
    def ledger(self) -> LedgerSource | None:
        if self._ledger is None and self._owns_ledger:
            try:
                self._ledger = LedgerClient(
                    self.settings.rpc_url,
                    self.settings.program_id,
                    timeout=self.settings.request_timeout_sec,
                    requests_per_sec=self.settings.requests_per_sec,
                )
            except ValueError as e:
                log.warning("ledger_unavailable", program_id=self.settings.program_id, error=str(e))
                self._owns_ledger = False
        return self._ledger

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def start(self) -> None:
        """Initial full sync, then the scheduler and subscription tasks (as enabled)."""
        self._get_conn()
        if self.ledger is None:
            log.warning("indexer_disabled", reason="no ledger connection")
            return
        self._stop = asyncio.Event()
        if self.settings.scheduler_enabled:
            await self.run_sync_cycle()
            self._tasks.append(asyncio.create_task(self._scheduler_loop(), name="predindex-sync"))
        if self.settings.subscription_enabled:
            self._tasks.append(
                asyncio.create_task(
                    run_log_subscription(
                        self.settings.ws_url,
                        self.settings.program_id,
                        self._on_subscription_tx,
                        reconnect_base_delay_sec=self.settings.reconnect_base_delay_sec,
                        reconnect_max_delay_sec=self.settings.reconnect_max_delay_sec,
                        reconnect_max_retries=self.settings.reconnect_max_retries,
                        stop_event=self._stop,
                    ),
                    name="predindex-subscription",
                )
            )
        log.info(
            "indexer_started",
            scheduler=self.settings.scheduler_enabled,
            subscription=self.settings.subscription_enabled,
            db_path=str(self.db_path),
        )

    async def stop(self) -> None:
        if self._stop is not None:
            self._stop.set()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._owns_ledger and self._ledger is not None:
            await self._ledger.close()
            self._ledger = None
        log.info("indexer_stopped", events_applied=self._events_applied)

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def _scheduler_loop(self) -> None:
        interval = self.settings.sync_interval_sec
        while self._stop is not None and not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                await self.run_sync_cycle()

    async def _on_subscription_tx(self, tx: DecodedTransaction) -> None:
        await self.apply_decoded(tx)

    async def run_sync_cycle(self) -> int | None:
        """One full reconciliation. Failures are logged; returns markets written or None."""
        ledger = self.ledger
        if ledger is None:
            return None
        try:
            written = await sync_all_markets(self._get_conn(), ledger, self.settings.collateral_mint)
        except Exception as e:
            self._last_sync_error = str(e)
            log.error("sync_failed", error=str(e))
            return None
        self._last_sync_ts = time.time()
        self._last_sync_error = None
        return written

    async def _live_account(self, market_id: int) -> MarketAccount | None:
        """Best-effort read of a mirrored market's current account."""
        ledger = self.ledger
        row = get_market_row(self._get_conn(), market_id)
        if ledger is None or row is None:
            return None
        try:
            _, account = await ledger.get_market_account(row["pubkey"])
        except Exception as e:
            log.warning("live_market_fetch_failed", market_id=market_id, error=str(e))
            return None
        return account

    async def apply_decoded(self, tx: DecodedTransaction) -> int:
        """Apply a decoded transaction's events in log order. Returns how many changed the store."""
        live: dict[int, MarketAccount | None] = {}
        for event in tx.events:
            if isinstance(event, BetPlaced) and event.market_id not in live:
                live[event.market_id] = await self._live_account(event.market_id)

        applied = 0
        conn = self._get_conn()
        for event in tx.events:
            if apply_event(conn, event, tx.slot, tx.signature, live.get(event.market_id)):
                applied += 1
        self._events_applied += applied
        return applied

    async def index_transaction(self, signature: str) -> DecodedTransaction | None:
        """Fetch a confirmed transaction's logs, decode and apply them."""
        ledger = self.ledger
        if ledger is None:
            log.warning("index_skipped_no_ledger", signature=signature)
            return None
        logs = await ledger.get_transaction_logs(signature)
        if logs is None:
            log.info("transaction_not_found", signature=signature)
            return None
        if logs.failed:
            log.info("transaction_failed_on_ledger", signature=signature)
            return None
        tx = decode_transaction(signature, logs.slot, logs.logs)
        if tx.events:
            await self.apply_decoded(tx)
        return tx

    async def handle_webhook(self, items: list[Any]) -> int:
        """Index every webhook item that names a signature; per-item failures are logged."""
        indexed = 0
        for item in items:
            signature = webhook_signature(item)
            if signature is None:
                log.info("webhook_item_without_signature")
                continue
            try:
                if await self.index_transaction(signature) is not None:
                    indexed += 1
            except Exception as e:
                log.error("webhook_item_failed", signature=signature, error=str(e))
        log.info("webhook_processed", items=len(items), indexed=indexed)
        return indexed

    async def refresh_markets(self, market_ids: list[int]) -> None:
        """Refetch only the given markets; any market not mirrored yet triggers a full cycle."""
        ledger = self.ledger
        if ledger is None or not market_ids:
            return
        conn = self._get_conn()
        pubkeys: list[str] = []
        for market_id in market_ids:
            row = get_market_row(conn, market_id)
            if row is None:
                await self.run_sync_cycle()
                return
            pubkeys.append(row["pubkey"])
        for pubkey in pubkeys:
            slot, account = await ledger.get_market_account(pubkey)
            if account is not None:
                reconcile_markets(conn, [account], slot, self.settings.collateral_mint)

    async def resync(self, signature: str) -> None:
        """Wait for confirmation, index the transaction, refresh the markets it touched.

        Every failure is logged and swallowed.
        """
        try:
            if self.settings.resync_delay_sec > 0:
                await asyncio.sleep(self.settings.resync_delay_sec)
            tx = await self.index_transaction(signature)
            if tx is not None:
                await self.refresh_markets(tx.market_ids)
        except Exception as e:
            log.error("resync_failed", signature=signature, error=str(e))

    def rebuild_users(self) -> int:
        return rebuild_user_aggregates(self._get_conn())

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "ledger_connected": self._ledger is not None,
            "scheduler_enabled": self.settings.scheduler_enabled,
            "subscription_enabled": self.settings.subscription_enabled,
            "last_sync_ts": self._last_sync_ts,
            "last_sync_error": self._last_sync_error,
            "events_applied": self._events_applied,
        }
