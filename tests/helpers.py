"""Ledger byte encoders and an in-memory ledger for tests."""

from __future__ import annotations

import base64
import struct

from solders.pubkey import Pubkey

from predindex.ledger.accounts import MARKET_ACCOUNT_DISCRIMINATOR
from predindex.ledger.client import TransactionLogs
from predindex.ledger.decoder import (
    BET_PLACED_DISCRIMINATOR,
    MARKET_RESOLVED_DISCRIMINATOR,
    PAYOUT_CLAIMED_DISCRIMINATOR,
    PROGRAM_DATA_PREFIX,
)
from predindex.models.market import MARKET_CATEGORIES, MARKET_STATUSES, ORACLE_SOURCES, MarketAccount

WSOL = "So11111111111111111111111111111111111111112"


def key(n: int) -> str:
    """Deterministic base58 address."""
    return str(Pubkey.from_bytes(bytes([n]) * 32))


def sig(n: int) -> str:
    """Deterministic signature-length string."""
    return f"{n:04d}".ljust(88, "s")


def program_data(payload: bytes) -> str:
    return PROGRAM_DATA_PREFIX + base64.b64encode(payload).decode()


def bet_placed_line(
    market_id: int,
    user: int,
    outcome_tag: int,
    amount: int,
    shares: int,
    new_yes: int,
    new_no: int,
    ts: int = 1_700_000_000,
) -> str:
    body = struct.pack(
        "<Q32sBQQQQq",
        market_id,
        bytes(Pubkey.from_string(key(user))),
        outcome_tag,
        amount,
        shares,
        new_yes,
        new_no,
        ts,
    )
    return program_data(BET_PLACED_DISCRIMINATOR + body)


def market_resolved_line(market_id: int, outcome_tag: int, price: int = 0, collateral: int = 0) -> str:
    return program_data(MARKET_RESOLVED_DISCRIMINATOR + struct.pack("<QBqQ", market_id, outcome_tag, price, collateral))


def payout_claimed_line(market_id: int, user: int, amount: int, shares_burned: int = 0) -> str:
    body = struct.pack("<Q32sQQ", market_id, bytes(Pubkey.from_string(key(user))), amount, shares_burned)
    return program_data(PAYOUT_CLAIMED_DISCRIMINATOR + body)


def _string(s: str) -> bytes:
    raw = s.encode()
    return struct.pack("<I", len(raw)) + raw


def _option_i64(v: int | None) -> bytes:
    return b"\x00" if v is None else b"\x01" + struct.pack("<q", v)


def make_market(market_id: int = 1, **overrides) -> MarketAccount:
    fields = dict(
        pubkey=key(100 + market_id),
        market_id=market_id,
        creator=key(1),
        title=f"Market {market_id}",
        description="Will it happen?",
        category="crypto",
        status="active",
        collateral_mint=WSOL,
        yes_mint=key(2),
        no_mint=key(3),
        vault=key(4),
        total_yes_shares=1000,
        total_no_shares=1000,
        total_collateral=0,
        oracle_source="pyth",
        oracle_feed=key(5),
        oracle_threshold=0,
        start_timestamp=1_700_000_000,
        lock_timestamp=1_700_100_000,
        end_timestamp=1_700_200_000,
        min_bet=1_000_000,
        max_bet=100_000_000_000,
        fee_bps=200,
    )
    fields.update(overrides)
    return MarketAccount(**fields)


def encode_market_account(m: MarketAccount) -> bytes:
    """Borsh bytes for a Market account, discriminator included."""
    out = bytearray(MARKET_ACCOUNT_DISCRIMINATOR)
    out += struct.pack("<Q", m.market_id)
    out += bytes(Pubkey.from_string(m.creator))
    out += _string(m.title) + _string(m.description)
    out += bytes([MARKET_CATEGORIES.index(m.category), MARKET_STATUSES.index(m.status)])
    for addr in (m.collateral_mint, m.yes_mint, m.no_mint, m.vault):
        out += bytes(Pubkey.from_string(addr))
    out += struct.pack("<QQQ", m.total_yes_shares, m.total_no_shares, m.total_collateral)
    out += bytes([ORACLE_SOURCES.index(m.oracle_source)])
    out += bytes(Pubkey.from_string(m.oracle_feed))
    out += struct.pack("<qqqq", m.oracle_threshold, m.start_timestamp, m.lock_timestamp, m.end_timestamp)
    if m.resolved_outcome is None:
        out += b"\x00"
    else:
        out += b"\x01" + bytes([("Yes", "No", "Invalid").index(m.resolved_outcome.value)])
    out += _option_i64(m.resolution_price) + _option_i64(m.resolved_at)
    out += struct.pack("<QQH", m.min_bet, m.max_bet, m.fee_bps)
    out += b"\x01" if m.is_recurring else b"\x00"
    out += _option_i64(m.round_duration)
    out += struct.pack("<Q", m.current_round)
    out += b"\xff"  # bump
    return bytes(out)


class FakeLedger:
    """In-memory ledger: transactions by signature, market accounts by address."""

    def __init__(self, slot: int = 500) -> None:
        self.slot = slot
        self.transactions: dict[str, TransactionLogs] = {}
        self.markets: dict[str, MarketAccount] = {}
        self.fail_account_reads = False
        self.fail_full_reads = False
        self.account_reads = 0
        self.full_reads = 0
        self.closed = False

    def add_market(self, market: MarketAccount) -> MarketAccount:
        self.markets[market.pubkey] = market
        return market

    def add_transaction(self, signature: str, logs: list[str], slot: int | None = None, failed: bool = False) -> None:
        self.transactions[signature] = TransactionLogs(signature, slot or self.slot, logs, failed)

    async def get_transaction_logs(self, signature: str) -> TransactionLogs | None:
        return self.transactions.get(signature)

    async def get_market_accounts(self) -> tuple[int, list[MarketAccount]]:
        self.full_reads += 1
        if self.fail_full_reads:
            raise ConnectionError("rpc unavailable")
        return self.slot, list(self.markets.values())

    async def get_market_account(self, pubkey: str) -> tuple[int, MarketAccount | None]:
        self.account_reads += 1
        if self.fail_account_reads:
            raise ConnectionError("rpc unavailable")
        return self.slot, self.markets.get(pubkey)

    async def close(self) -> None:
        self.closed = True
