"""FastAPI app - webhook/resync intake and the read API over the market mirror."""

from __future__ import annotations

import hmac
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from predindex.api.schemas import (
    ErrorResponse,
    HealthResponse,
    IndexTxResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    MarketResponse,
    MarketsListResponse,
    PriceHistoryResponse,
    PricePoint,
    QuoteResponse,
    StatusResponse,
)
from predindex.config import Settings, get_settings
from predindex.ingestion.manager import Indexer
from predindex.models.market import Outcome
from predindex.pricing import SCALE, effective_price, implied_price, min_shares_out, quote
from predindex.storage.cache import ReadCache, history_key, market_key
from predindex.storage.markets import count_markets, find_market, list_markets
from predindex.storage.snapshots import price_history
from predindex.storage.users import leaderboard as storage_leaderboard

log = structlog.get_logger(__name__)

MIN_SIGNATURE_LEN = 32


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


def _authorized(header: str | None, secret: str) -> bool:
    """Constant-time check of the Authorization header against the shared secret."""
    if not secret:
        return True
    value = (header or "").strip()
    if value.lower().startswith("authorization:"):
        value = value[len("authorization:"):].strip()
    return hmac.compare_digest(value.encode(), secret.encode())


def _indexer(request: Request) -> Indexer:
    return request.app.state.indexer


def _cache(request: Request) -> ReadCache:
    return request.app.state.cache


def create_app(
    settings: Settings | None = None,
    indexer: Indexer | None = None,
    cache: ReadCache | None = None,
) -> FastAPI:
    """Build the app. The indexer is started and stopped with the app lifespan."""
    settings = settings or get_settings()
    owns_indexer = indexer is None
    indexer = indexer or Indexer(settings)
    cache = cache or ReadCache.from_url(settings.redis_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await indexer.start()
        yield
        await indexer.stop()
        if owns_indexer:
            indexer.close()
        cache.close()

    app = FastAPI(title="predindex API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.state.settings = settings
    app.state.indexer = indexer
    app.state.cache = cache

    @app.get("/health", response_model=HealthResponse)
    def health(request: Request) -> HealthResponse:
        return HealthResponse(status="ok", indexer=_indexer(request).status())

    @app.post(
        "/webhook",
        response_model=StatusResponse,
        responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    )
    async def webhook(request: Request):
        """Transaction notifications pushed by an RPC provider; one object or an array."""
        if not _authorized(request.headers.get("authorization"), settings.webhook_secret):
            log.warning("webhook_unauthorized")
            return _error_json("unauthorized", "Unauthorized", 401)
        try:
            body = await request.json()
        except ValueError:
            return _error_json("invalid_json", "Invalid JSON", 400)
        if isinstance(body, list):
            items = body
        elif isinstance(body, dict):
            items = [body]
        else:
            return _error_json("invalid_payload", "Invalid payload", 400)
        await _indexer(request).handle_webhook(items)
        return StatusResponse()

    @app.post(
        "/index-tx",
        response_model=IndexTxResponse,
        responses={400: {"model": ErrorResponse}},
    )
    async def index_tx(request: Request):
        """Index one transaction by signature after a short confirmation delay."""
        try:
            body = await request.json()
        except ValueError:
            body = None
        signature = body.get("signature") if isinstance(body, dict) else None
        if not isinstance(signature, str) or len(signature) < MIN_SIGNATURE_LEN:
            return _error_json("invalid_signature", "Invalid transaction signature", 400)
        await _indexer(request).resync(signature)
        return IndexTxResponse(signature=signature)

    @app.get("/markets", response_model=MarketsListResponse)
    def markets_list(
        request: Request,
        page: int = Query(1, ge=1),
        limit: int = Query(20, ge=1, le=100),
        category: str | None = Query(None, description="Filter by category; 'All' for no filter"),
    ) -> MarketsListResponse:
        """Newest markets first, paginated."""
        cur = _indexer(request).cursor()
        try:
            rows = list_markets(cur, page=page, limit=limit, category=category)
            total = count_markets(cur, category=category)
        finally:
            cur.close()
        return MarketsListResponse(
            markets=[MarketResponse.from_row(r) for r in rows],
            total=total,
            page=page,
            limit=limit,
        )

    @app.get(
        "/markets/{market_ref}",
        response_model=MarketResponse,
        responses={404: {"description": "Market not found", "model": ErrorResponse}},
    )
    def market_detail(request: Request, market_ref: str):
        """One market by numeric id or account address."""

        def load() -> dict[str, Any] | None:
            cur = _indexer(request).cursor()
            try:
                row = find_market(cur, market_ref)
            finally:
                cur.close()
            return MarketResponse.from_row(row).model_dump() if row is not None else None

        data = _cache(request).get_or_load(market_key(market_ref), settings.market_ttl_sec, load)
        if data is None:
            return _error_json("not_found", f"Market not found: {market_ref}")
        return data

    @app.get(
        "/markets/{market_ref}/history",
        response_model=PriceHistoryResponse,
        responses={404: {"description": "Market not found", "model": ErrorResponse}},
    )
    def market_history(request: Request, market_ref: str):
        """Price snapshots, oldest first."""

        def load() -> dict[str, Any] | None:
            cur = _indexer(request).cursor()
            try:
                row = find_market(cur, market_ref)
                if row is None:
                    return None
                points = [PricePoint.from_row(p) for p in price_history(cur, row["market_id"])]
            finally:
                cur.close()
            return PriceHistoryResponse(market_id=row["market_id"], points=points).model_dump()

        data = _cache(request).get_or_load(history_key(market_ref), settings.history_ttl_sec, load)
        if data is None:
            return _error_json("not_found", f"Market not found: {market_ref}")
        return data

    @app.get(
        "/markets/{market_ref}/quote",
        response_model=QuoteResponse,
        responses={
            400: {"description": "Bad quote parameters", "model": ErrorResponse},
            404: {"description": "Market not found", "model": ErrorResponse},
        },
    )
    def market_quote(
        request: Request,
        market_ref: str,
        amount: int = Query(..., gt=0, description="Collateral in base units"),
        side: str = Query("Yes", description="Yes or No"),
        slippage_bps: int = Query(100, ge=0, le=10000),
    ):
        """Shares a purchase would mint at the mirrored pool state."""
        cur = _indexer(request).cursor()
        try:
            row = find_market(cur, market_ref)
        finally:
            cur.close()
        if row is None:
            return _error_json("not_found", f"Market not found: {market_ref}")
        try:
            outcome = Outcome(side.strip().capitalize())
            q = quote(
                int(row["total_yes_shares"]),
                int(row["total_no_shares"]),
                amount,
                outcome,
                int(row["fee_bps"] or 0),
            )
        except ValueError as e:
            return _error_json("invalid_quote", str(e), 400)
        after_yes, after_no = implied_price(q.new_yes_pool, q.new_no_pool).as_float()
        paid = effective_price(amount, q.shares_out)
        return QuoteResponse(
            market_id=row["market_id"],
            side=outcome.value,
            amount=amount,
            fee=q.fee,
            net_amount=q.net_amount,
            expected_shares=q.shares_out,
            min_shares=min_shares_out(q.shares_out, slippage_bps),
            slippage_bps=slippage_bps,
            effective_price=paid / SCALE if paid is not None else None,
            yes_price_after=after_yes,
            no_price_after=after_no,
        )

    @app.get("/leaderboard", response_model=LeaderboardResponse)
    def leaderboard(
        request: Request,
        limit: int = Query(50, ge=1, le=500),
        min_bets: int = Query(1, ge=0),
    ) -> LeaderboardResponse:
        """Top wallets by rank score."""
        cur = _indexer(request).cursor()
        try:
            rows = storage_leaderboard(cur, limit=limit, min_bets=min_bets)
        finally:
            cur.close()
        return LeaderboardResponse(entries=[LeaderboardEntry(**r) for r in rows])

    return app


def run_api(
    settings: Settings | None = None,
    host: str = "127.0.0.1",
    port: int = 8000,
) -> None:
    import uvicorn

    uvicorn.run(create_app(settings), host=host, port=port, reload=False, log_config=None)
