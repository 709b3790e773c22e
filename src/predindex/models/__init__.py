"""Canonical schema (Pydantic) - market accounts and ledger events."""

from predindex.models.events import (
    BetPlaced,
    DecodedTransaction,
    LedgerEvent,
    MarketResolved,
    PayoutClaimed,
)
from predindex.models.market import MarketAccount, Outcome

__all__ = [
    "BetPlaced",
    "DecodedTransaction",
    "LedgerEvent",
    "MarketAccount",
    "MarketResolved",
    "Outcome",
    "PayoutClaimed",
]
