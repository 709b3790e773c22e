"""Ledger source protocol - what the indexer needs from an RPC connection."""

from __future__ import annotations

from typing import Protocol

from predindex.ledger.client import TransactionLogs
from predindex.models.market import MarketAccount


class LedgerSource(Protocol):
    """Read-only view of the ledger. LedgerClient implements it; tests use fakes."""

    async def get_transaction_logs(self, signature: str) -> TransactionLogs | None:
        """Logs of a confirmed transaction, or None if not found yet."""
        ...

    async def get_market_accounts(self) -> tuple[int, list[MarketAccount]]:
        """(slot, all decodable Market accounts)."""
        ...

    async def get_market_account(self, pubkey: str) -> tuple[int, MarketAccount | None]:
        """(slot, the Market account at pubkey or None)."""
        ...

    async def close(self) -> None: ...
