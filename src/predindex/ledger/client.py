"""Solana JSON-RPC access for the prediction market program."""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.pubkey import Pubkey
from solders.signature import Signature

from predindex.ledger.accounts import AccountDecodeError, decode_market_account
from predindex.ledger.rate_limit import TokenBucket
from predindex.models.market import MarketAccount

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TransactionLogs:
    """Log messages of one confirmed transaction."""

    signature: str
    slot: int
    logs: list[str] = field(default_factory=list)
    failed: bool = False


class LedgerClient:
    """Async RPC client scoped to one program. All calls carry the client timeout."""

    def __init__(
        self,
        rpc_url: str,
        program_id: str,
        *,
        timeout: float = 10.0,
        requests_per_sec: float = 10.0,
    ) -> None:
        self.rpc_url = rpc_url
        self.program_id = Pubkey.from_string(program_id)
        self._client = AsyncClient(rpc_url, commitment=Confirmed, timeout=timeout)
        self._bucket = TokenBucket(rate=requests_per_sec)

    async def get_transaction_logs(self, signature: str) -> TransactionLogs | None:
        """Logs for a confirmed transaction; None when it is not (yet) visible."""
        sig = Signature.from_string(signature)
        await self._bucket.acquire()
        resp = await self._client.get_transaction(
            sig,
            encoding="json",
            commitment=Confirmed,
            max_supported_transaction_version=0,
        )
        tx = resp.value
        if tx is None or tx.transaction.meta is None:
            return None
        meta = tx.transaction.meta
        return TransactionLogs(
            signature=signature,
            slot=tx.slot,
            logs=list(meta.log_messages or []),
            failed=meta.err is not None,
        )

    async def get_market_accounts(self) -> tuple[int, list[MarketAccount]]:
        """All Market accounts owned by the program, with the slot they were read at."""
        await self._bucket.acquire()
        slot = (await self._client.get_slot(commitment=Confirmed)).value
        await self._bucket.acquire()
        resp = await self._client.get_program_accounts(
            self.program_id,
            commitment=Confirmed,
            encoding="base64",
        )
        markets: list[MarketAccount] = []
        for keyed in resp.value:
            pubkey = str(keyed.pubkey)
            try:
                market = decode_market_account(pubkey, bytes(keyed.account.data))
            except AccountDecodeError as e:
                log.warning("market_account_decode_failed", pubkey=pubkey, error=str(e))
                continue
            if market is not None:
                markets.append(market)
        return slot, markets

    async def get_market_account(self, pubkey: str) -> tuple[int, MarketAccount | None]:
        """One Market account by address, with the slot it was read at."""
        await self._bucket.acquire()
        resp = await self._client.get_account_info(
            Pubkey.from_string(pubkey),
            commitment=Confirmed,
            encoding="base64",
        )
        if resp.value is None:
            return resp.context.slot, None
        return resp.context.slot, decode_market_account(pubkey, bytes(resp.value.data))

    async def close(self) -> None:
        await self._client.close()
