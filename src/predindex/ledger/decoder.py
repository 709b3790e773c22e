"""Program log decoder - `Program data:` lines to typed ledger events.

Event payloads are an 8-byte discriminator followed by fixed-offset,
little-endian fields. Unknown discriminators are skipped; a broken payload
for a known one is logged and skipped without touching sibling lines.
"""

from __future__ import annotations

import base64
import binascii
import struct
from typing import Callable, Iterable

import structlog
from solders.pubkey import Pubkey

from predindex.models.events import BetPlaced, DecodedTransaction, LedgerEvent, MarketResolved, PayoutClaimed
from predindex.models.market import Outcome

log = structlog.get_logger(__name__)

PROGRAM_DATA_PREFIX = "Program data: "

BET_PLACED_DISCRIMINATOR = bytes([88, 88, 145, 226, 126, 206, 32, 0])
MARKET_RESOLVED_DISCRIMINATOR = bytes([89, 67, 230, 95, 143, 106, 199, 202])
PAYOUT_CLAIMED_DISCRIMINATOR = bytes([200, 39, 105, 112, 116, 63, 58, 149])

# Layouts after the discriminator.
_BET_PLACED = struct.Struct("<Q32sBQQQQq")
_MARKET_RESOLVED = struct.Struct("<QBqQ")
_PAYOUT_CLAIMED = struct.Struct("<Q32sQQ")


class DecodeError(ValueError):
    """Payload carried a known discriminator but could not be decoded."""


def _unpack(layout: struct.Struct, body: bytes, name: str) -> tuple:
    if len(body) < layout.size:
        raise DecodeError(f"{name} payload truncated: {len(body)} < {layout.size} bytes")
    return layout.unpack_from(body, 0)


def _bet_placed(body: bytes, ordinal: int) -> BetPlaced:
    market_id, user, outcome, amount, shares, new_yes, new_no, ts = _unpack(_BET_PLACED, body, "BetPlaced")
    side = Outcome.from_tag(outcome)
    if side is Outcome.INVALID:
        raise DecodeError("BetPlaced outcome must be Yes or No")
    return BetPlaced(
        ordinal=ordinal,
        market_id=market_id,
        user=str(Pubkey.from_bytes(user)),
        outcome=side,
        amount=amount,
        shares=shares,
        new_yes_total=new_yes,
        new_no_total=new_no,
        timestamp=ts,
    )


def _market_resolved(body: bytes, ordinal: int) -> MarketResolved:
    market_id, outcome, price, collateral = _unpack(_MARKET_RESOLVED, body, "MarketResolved")
    return MarketResolved(
        ordinal=ordinal,
        market_id=market_id,
        outcome=Outcome.from_tag(outcome),
        resolution_price=price,
        total_collateral=collateral,
    )


def _payout_claimed(body: bytes, ordinal: int) -> PayoutClaimed:
    market_id, user, amount, shares_burned = _unpack(_PAYOUT_CLAIMED, body, "PayoutClaimed")
    return PayoutClaimed(
        ordinal=ordinal,
        market_id=market_id,
        user=str(Pubkey.from_bytes(user)),
        amount=amount,
        shares_burned=shares_burned,
    )


_DECODERS: dict[bytes, Callable[[bytes, int], LedgerEvent]] = {
    BET_PLACED_DISCRIMINATOR: _bet_placed,
    MARKET_RESOLVED_DISCRIMINATOR: _market_resolved,
    PAYOUT_CLAIMED_DISCRIMINATOR: _payout_claimed,
}


def decode_event_data(data: bytes, ordinal: int = 0) -> LedgerEvent | None:
    """Decode one raw event payload. None for unknown discriminators."""
    decoder = _DECODERS.get(bytes(data[:8]))
    if decoder is None:
        return None
    try:
        return decoder(bytes(data[8:]), ordinal)
    except DecodeError:
        raise
    except ValueError as e:
        # bad enum tags and pydantic validation errors
        raise DecodeError(str(e)) from e


def decode_log_lines(lines: Iterable[str], signature: str = "") -> list[LedgerEvent]:
    """Decode every `Program data:` line; never raises for bad payloads."""
    events: list[LedgerEvent] = []
    for line_no, line in enumerate(lines):
        if not line.startswith(PROGRAM_DATA_PREFIX):
            continue
        encoded = line[len(PROGRAM_DATA_PREFIX):].strip()
        try:
            data = base64.b64decode(encoded, validate=True)
            event = decode_event_data(data, ordinal=len(events))
        except (binascii.Error, DecodeError) as e:
            log.warning("event_decode_failed", signature=signature, line=line_no, error=str(e))
            continue
        if event is not None:
            events.append(event)
    return events


def decode_transaction(signature: str, slot: int, lines: Iterable[str] | None) -> DecodedTransaction:
    """Build a DecodedTransaction from a transaction's log messages."""
    events = decode_log_lines(lines or [], signature=signature)
    if events:
        log.debug("events_decoded", signature=signature, count=len(events), kinds=[e.kind for e in events])
    return DecodedTransaction(signature=signature, slot=slot, events=events)
