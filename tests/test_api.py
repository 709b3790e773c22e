"""HTTP surface: webhook, index-tx, read endpoints."""

import asyncio

import fakeredis
import pytest
from fastapi.testclient import TestClient

from helpers import bet_placed_line, key, make_market, sig
from predindex.api.main import create_app
from predindex.ingestion.manager import Indexer
from predindex.storage.cache import ReadCache


@pytest.fixture
def indexer(settings, ledger):
    ledger.add_market(make_market(1, category="crypto"))
    ledger.add_market(make_market(2, category="sports"))
    ledger.add_transaction(sig(1), [bet_placed_line(1, 7, 0, 100, 90, 910, 1098)])
    idx = Indexer(settings, ledger=ledger)
    asyncio.run(idx.run_sync_cycle())
    yield idx
    idx.close()


@pytest.fixture
def client(settings, indexer):
    with TestClient(create_app(settings, indexer=indexer)) as c:
        yield c


def _bets(indexer):
    cur = indexer.cursor()
    try:
        return cur.execute("SELECT COUNT(*) FROM bets").fetchone()[0]
    finally:
        cur.close()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["indexer"]["ledger_connected"] is True


def test_webhook_rejects_bad_secret(settings, indexer):
    settings.webhook["secret"] = "s3cret"
    with TestClient(create_app(settings, indexer=indexer)) as c:
        assert c.post("/webhook", json={"signature": sig(1)}).status_code == 401
        r = c.post("/webhook", json={"signature": sig(1)}, headers={"Authorization": "wrong"})
        assert r.status_code == 401
        assert r.json()["code"] == "unauthorized"
        assert _bets(indexer) == 0

        r = c.post("/webhook", json={"signature": sig(1)}, headers={"Authorization": "Authorization: s3cret"})
        assert r.status_code == 200
        assert _bets(indexer) == 1


def test_webhook_rejects_malformed_payloads(client):
    r = client.post("/webhook", content=b"{not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json()["code"] == "invalid_json"
    assert client.post("/webhook", json=5).status_code == 400


def test_webhook_duplicate_delivery_counts_once(client, indexer):
    for _ in range(2):
        r = client.post("/webhook", json=[{"signature": sig(1)}])
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

    assert _bets(indexer) == 1
    assert client.get("/markets/1").json()["volume_24h"] == 100


def test_index_tx_validation(client):
    assert client.post("/index-tx", json={}).status_code == 400
    assert client.post("/index-tx", json={"signature": "short"}).status_code == 400
    assert client.post("/index-tx", json={"signature": 123}).status_code == 400
    assert client.post("/index-tx", content=b"nope").status_code == 400


def test_index_tx_indexes_and_refreshes(client, indexer, ledger):
    r = client.post("/index-tx", json={"signature": sig(1)})
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "signature": sig(1)}
    assert _bets(indexer) == 1
    assert ledger.account_reads >= 1


def test_index_tx_unknown_signature_is_ok(client, indexer):
    r = client.post("/index-tx", json={"signature": sig(9)})
    assert r.status_code == 200
    assert _bets(indexer) == 0


def test_markets_list_and_filter(client):
    body = client.get("/markets").json()
    assert body["total"] == 2
    assert {m["market_id"] for m in body["markets"]} == {1, 2}
    assert client.get("/markets", params={"category": "All"}).json()["total"] == 2
    sports = client.get("/markets", params={"category": "sports"}).json()
    assert [m["market_id"] for m in sports["markets"]] == [2]
    assert client.get("/markets", params={"limit": 1, "page": 2}).json()["markets"][0]["market_id"] in {1, 2}


def test_market_detail_by_id_and_address(client):
    r = client.get("/markets/1")
    assert r.status_code == 200
    body = r.json()
    assert body["yes_price"] == pytest.approx(0.5)
    assert body["no_price"] == pytest.approx(0.5)
    assert client.get(f"/markets/{body['pubkey']}").json()["market_id"] == 1

    r = client.get("/markets/404")
    assert r.status_code == 404
    assert r.json() == {"detail": "Market not found: 404", "code": "not_found"}


def test_market_history(client):
    client.post("/webhook", json={"signature": sig(1)})
    body = client.get("/markets/1/history").json()
    assert body["market_id"] == 1
    assert [p["source"] for p in body["points"]] == ["sync", "event"]
    assert body["points"][0]["yes_price"] == pytest.approx(0.5)
    assert client.get("/markets/99/history").status_code == 404


def test_market_quote(client):
    r = client.get("/markets/1/quote", params={"amount": 100, "side": "yes"})
    assert r.status_code == 200
    body = r.json()
    assert body["fee"] == 2
    assert body["expected_shares"] == 90
    assert body["min_shares"] == 89
    assert body["effective_price"] == pytest.approx(100 / 90, rel=1e-6)
    assert client.get("/markets/1/quote", params={"amount": 100, "side": "maybe"}).status_code == 400
    assert client.get("/markets/9/quote", params={"amount": 100}).status_code == 404


def test_leaderboard(client):
    client.post("/webhook", json={"signature": sig(1)})
    entries = client.get("/leaderboard").json()["entries"]
    assert len(entries) == 1
    assert entries[0]["wallet"] == key(7)
    assert entries[0]["rank"] == 1
    assert entries[0]["rank_score"] == pytest.approx(30.0)


def test_market_detail_served_from_cache(settings, indexer):
    cache = ReadCache(fakeredis.FakeRedis())
    with TestClient(create_app(settings, indexer=indexer, cache=cache)) as c:
        assert c.get("/markets/1").json()["volume_24h"] == 0
        c.post("/webhook", json={"signature": sig(1)})
        # still inside the 5 s window
        assert c.get("/markets/1").json()["volume_24h"] == 0
