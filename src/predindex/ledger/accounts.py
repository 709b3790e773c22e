"""Market account decoder (Borsh layout of the ledger program's `Market`)."""

from __future__ import annotations

import struct

from solders.pubkey import Pubkey

from predindex.models.market import (
    MARKET_CATEGORIES,
    MARKET_STATUSES,
    ORACLE_SOURCES,
    MarketAccount,
    Outcome,
)

MARKET_ACCOUNT_DISCRIMINATOR = bytes([219, 190, 213, 55, 0, 227, 198, 154])


class AccountDecodeError(ValueError):
    """Account data is shorter than its layout or holds an unknown enum tag."""


class _Reader:
    """Sequential little-endian reader over account bytes."""

    def __init__(self, data: bytes, offset: int = 0) -> None:
        self.data = data
        self.offset = offset

    def _take(self, n: int) -> bytes:
        end = self.offset + n
        if end > len(self.data):
            raise AccountDecodeError(f"account data truncated at offset {self.offset} (+{n}, len {len(self.data)})")
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def _unpack(self, fmt: str) -> int:
        size = struct.calcsize(fmt)
        return struct.unpack(fmt, self._take(size))[0]

    def u8(self) -> int:
        return self._unpack("<B")

    def u16(self) -> int:
        return self._unpack("<H")

    def u32(self) -> int:
        return self._unpack("<I")

    def u64(self) -> int:
        return self._unpack("<Q")

    def i64(self) -> int:
        return self._unpack("<q")

    def flag(self) -> bool:
        return self.u8() != 0

    def pubkey(self) -> str:
        return str(Pubkey.from_bytes(self._take(32)))

    def string(self) -> str:
        n = self.u32()
        return self._take(n).decode("utf-8", errors="replace")

    def enum(self, variants: tuple[str, ...]) -> str:
        tag = self.u8()
        if tag >= len(variants):
            raise AccountDecodeError(f"enum tag {tag} out of range for {variants}")
        return variants[tag]

    def option_i64(self) -> int | None:
        return self.i64() if self.u8() else None

    def option_outcome(self) -> Outcome | None:
        if not self.u8():
            return None
        try:
            return Outcome.from_tag(self.u8())
        except ValueError as e:
            raise AccountDecodeError(str(e)) from e


def decode_market_account(pubkey: str, data: bytes) -> MarketAccount | None:
    """Decode a program account. Returns None when it is not a Market account."""
    if bytes(data[:8]) != MARKET_ACCOUNT_DISCRIMINATOR:
        return None
    r = _Reader(bytes(data), 8)
    return MarketAccount(
        pubkey=pubkey,
        market_id=r.u64(),
        creator=r.pubkey(),
        title=r.string(),
        description=r.string(),
        category=r.enum(MARKET_CATEGORIES),
        status=r.enum(MARKET_STATUSES),
        collateral_mint=r.pubkey(),
        yes_mint=r.pubkey(),
        no_mint=r.pubkey(),
        vault=r.pubkey(),
        total_yes_shares=r.u64(),
        total_no_shares=r.u64(),
        total_collateral=r.u64(),
        oracle_source=r.enum(ORACLE_SOURCES),
        oracle_feed=r.pubkey(),
        oracle_threshold=r.i64(),
        start_timestamp=r.i64(),
        lock_timestamp=r.i64(),
        end_timestamp=r.i64(),
        resolved_outcome=r.option_outcome(),
        resolution_price=r.option_i64(),
        resolved_at=r.option_i64(),
        min_bet=r.u64(),
        max_bet=r.u64(),
        fee_bps=r.u16(),
        is_recurring=r.flag(),
        round_duration=r.option_i64(),
        current_round=r.u64(),
    )
