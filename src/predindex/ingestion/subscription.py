"""Program log subscription - logsSubscribe over the RPC websocket, reconnecting."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable

import structlog
import websockets

from predindex.ledger.decoder import decode_transaction
from predindex.models.events import DecodedTransaction

log = structlog.get_logger(__name__)


def subscribe_request(program_id: str, request_id: int = 1) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "method": "logsSubscribe",
        "params": [{"mentions": [program_id]}, {"commitment": "confirmed"}],
    }


def parse_notification(raw: str | bytes) -> DecodedTransaction | None:
    """Decode a logsNotification into events.

    Returns None for subscription acks, failed transactions, and anything
    that is not a notification.
    """
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        log.warning("ws_message_not_json")
        return None
    if not isinstance(msg, dict) or msg.get("method") != "logsNotification":
        if isinstance(msg, dict) and "error" in msg:
            log.warning("ws_rpc_error", error=msg["error"])
        return None
    result = (msg.get("params") or {}).get("result") or {}
    value = result.get("value") or {}
    signature = value.get("signature")
    if not signature or value.get("err") is not None:
        return None
    slot = (result.get("context") or {}).get("slot", 0)
    return decode_transaction(signature, slot, value.get("logs") or [])


async def run_log_subscription(
    ws_url: str,
    program_id: str,
    on_transaction: Callable[[DecodedTransaction], Awaitable[None]],
    *,
    reconnect_base_delay_sec: float = 1.0,
    reconnect_max_delay_sec: float = 60.0,
    reconnect_max_retries: int = 0,
    stop_event: asyncio.Event | None = None,
) -> None:
    """
    Subscribe to the program's logs and await on_transaction for each successful
    transaction that decoded to at least one event. Runs until stop_event is set,
    the task is cancelled, or reconnect_max_retries (0 = unlimited) is exhausted.
    Reconnect with exponential backoff; resubscribe on each reconnect.
    """
    stop = stop_event or asyncio.Event()
    delay = reconnect_base_delay_sec
    retries = 0

    while not stop.is_set():
        try:
            async with websockets.connect(
                ws_url,
                ping_interval=20,
                ping_timeout=20,
                close_timeout=5,
            ) as ws:
                delay = reconnect_base_delay_sec
                retries = 0
                log.info("ws_connected", url=ws_url)

                await ws.send(json.dumps(subscribe_request(program_id)))
                log.info("ws_subscribed", program_id=program_id)

                async for raw in ws:
                    if stop.is_set():
                        break
                    tx = parse_notification(raw)
                    if tx is None or not tx.events:
                        continue
                    try:
                        await on_transaction(tx)
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        log.error("ws_transaction_failed", signature=tx.signature, error=str(e))
        except asyncio.CancelledError:
            log.info("ws_cancelled")
            break
        except Exception as e:
            log.warning("ws_error", error=str(e), delay=delay)
        else:
            if stop.is_set():
                break
            log.warning("ws_closed", delay=delay)
        if reconnect_max_retries and retries >= reconnect_max_retries:
            log.error("ws_max_retries_reached")
            break
        retries += 1
        await asyncio.sleep(delay)
        delay = min(delay * 2, reconnect_max_delay_sec)

    log.info("ws_subscription_stopped")
