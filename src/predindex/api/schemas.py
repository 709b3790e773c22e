"""Pydantic schemas for API request/response consistency and OpenAPI docs."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from predindex.pricing import SCALE, implied_price


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "ok"
    indexer: dict[str, Any] = Field(default_factory=dict)


# --- Error (consistent shape for 4xx/5xx) ---
class ErrorResponse(BaseModel):
    detail: str = Field(..., description="Human-readable message")
    code: str | None = Field(None, description="Machine-readable code, e.g. not_found, unauthorized")


# --- Intake ---
class StatusResponse(BaseModel):
    status: str = "ok"


class IndexTxResponse(BaseModel):
    status: str = "ok"
    signature: str


# --- Markets ---
class MarketResponse(BaseModel):
    market_id: int
    pubkey: str
    creator: str | None = None
    title: str | None = None
    description: str | None = None
    category: str | None = None
    status: str
    collateral_mint: str | None = None
    oracle_source: str | None = None
    oracle_feed: str | None = None
    oracle_threshold: int | None = None
    start_timestamp: int | None = None
    lock_timestamp: int | None = None
    end_timestamp: int | None = None
    total_yes_shares: int = 0
    total_no_shares: int = 0
    total_collateral: int = 0
    yes_price: float = Field(..., description="Implied YES probability from the pool ratio")
    no_price: float
    volume_24h: int = 0
    participant_count: int = 0
    resolved_outcome: str | None = None
    resolution_price: int | None = None
    resolved_at: int | None = None
    min_bet: int | None = None
    max_bet: int | None = None
    fee_bps: int | None = None
    indexed_slot: int = 0
    updated_at: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> MarketResponse:
        yes, no = implied_price(int(row["total_yes_shares"]), int(row["total_no_shares"])).as_float()
        fields = {k: row.get(k) for k in cls.model_fields if k in row}
        return cls(**fields, yes_price=yes, no_price=no)


class MarketsListResponse(BaseModel):
    markets: list[MarketResponse]
    total: int
    page: int
    limit: int


class PricePoint(BaseModel):
    timestamp: int
    yes_price: float
    no_price: float
    total_collateral: int
    slot: int
    source: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> PricePoint:
        return cls(
            timestamp=row["timestamp"],
            yes_price=row["yes_price"] / SCALE,
            no_price=row["no_price"] / SCALE,
            total_collateral=row["total_collateral"],
            slot=row["slot"],
            source=row["source"],
        )


class PriceHistoryResponse(BaseModel):
    market_id: int
    points: list[PricePoint]


class QuoteResponse(BaseModel):
    market_id: int
    side: str
    amount: int
    fee: int
    net_amount: int
    expected_shares: int
    min_shares: int
    slippage_bps: int
    effective_price: float | None = Field(None, description="Collateral paid per share; None when no shares")
    yes_price_after: float
    no_price_after: float


# --- Leaderboard ---
class LeaderboardEntry(BaseModel):
    rank: int
    wallet: str
    username: str | None = None
    avatar_url: str | None = None
    total_volume: int
    total_pnl: int
    total_bets: int
    win_rate: float
    rank_score: float


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]
