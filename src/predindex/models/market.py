"""Market account snapshot and ledger enums - canonical entities."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Outcome(str, Enum):
    """Outcome side; the value is what the store records."""

    YES = "Yes"
    NO = "No"
    INVALID = "Invalid"

    @classmethod
    def from_tag(cls, tag: int) -> Outcome:
        """Map the 1-byte ledger enum tag (0 yes, 1 no, 2 invalid)."""
        try:
            return _OUTCOME_TAGS[tag]
        except KeyError:
            raise ValueError(f"unknown outcome tag {tag}") from None


_OUTCOME_TAGS = {0: Outcome.YES, 1: Outcome.NO, 2: Outcome.INVALID}

# Variant order of the ledger program's enums.
MARKET_STATUSES = ("pending", "active", "locked", "resolving", "resolved", "disputed", "cancelled", "paused")
MARKET_CATEGORIES = ("crypto", "sports", "politics", "entertainment", "weather", "custom")
ORACLE_SOURCES = ("pyth", "switchboard", "manualAdmin")


class MarketAccount(BaseModel):
    """Decoded `Market` account as published by the ledger program.

    Amounts are integers in collateral base units; timestamps are unix seconds.
    """

    model_config = ConfigDict(frozen=True)

    pubkey: str
    market_id: int = Field(..., ge=0)
    creator: str
    title: str = ""
    description: str = ""
    category: str
    status: str
    collateral_mint: str
    yes_mint: str
    no_mint: str
    vault: str
    total_yes_shares: int = Field(0, ge=0)
    total_no_shares: int = Field(0, ge=0)
    total_collateral: int = Field(0, ge=0)
    oracle_source: str
    oracle_feed: str
    oracle_threshold: int = 0
    start_timestamp: int = 0
    lock_timestamp: int = 0
    end_timestamp: int = 0
    resolved_outcome: Outcome | None = None
    resolution_price: int | None = None
    resolved_at: int | None = None
    min_bet: int = 0
    max_bet: int = 0
    fee_bps: int = 0
    is_recurring: bool = False
    round_duration: int | None = None
    current_round: int = 0

    @property
    def is_resolved(self) -> bool:
        return self.status == "resolved"
