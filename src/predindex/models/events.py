"""Typed ledger events - the closed set the decoder can produce."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from predindex.models.market import Outcome


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    # Position of the event among the transaction's decoded events.
    ordinal: int = 0


class BetPlaced(_Event):
    kind: Literal["bet_placed"] = "bet_placed"
    market_id: int = Field(..., ge=0)
    user: str
    outcome: Outcome
    amount: int = Field(..., ge=0)
    shares: int = Field(..., ge=0)
    new_yes_total: int = Field(..., ge=0)
    new_no_total: int = Field(..., ge=0)
    timestamp: int


class MarketResolved(_Event):
    kind: Literal["market_resolved"] = "market_resolved"
    market_id: int = Field(..., ge=0)
    outcome: Outcome
    resolution_price: int
    total_collateral: int = Field(..., ge=0)


class PayoutClaimed(_Event):
    kind: Literal["payout_claimed"] = "payout_claimed"
    market_id: int = Field(..., ge=0)
    user: str
    amount: int = Field(..., ge=0)
    shares_burned: int = Field(..., ge=0)


LedgerEvent = Annotated[Union[BetPlaced, MarketResolved, PayoutClaimed], Field(discriminator="kind")]


class DecodedTransaction(BaseModel):
    """Events decoded from one transaction, with the slot it landed in."""

    signature: str
    slot: int = 0
    events: list[LedgerEvent] = Field(default_factory=list)

    @property
    def market_ids(self) -> list[int]:
        seen: list[int] = []
        for ev in self.events:
            if ev.market_id not in seen:
                seen.append(ev.market_id)
        return seen
