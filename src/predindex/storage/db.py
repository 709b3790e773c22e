"""DuckDB connection, schema init and transactions."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
-- Shared by bets and claims so the merged history keeps application order
CREATE SEQUENCE IF NOT EXISTS activity_seq START 1;
CREATE SEQUENCE IF NOT EXISTS snapshot_seq START 1;

-- Mirror of the ledger's Market accounts. volume_24h and participant_count
-- are written by the event processors only, never by reconciliation.
CREATE TABLE IF NOT EXISTS markets (
    market_id           UBIGINT PRIMARY KEY,
    pubkey              VARCHAR NOT NULL,
    creator             VARCHAR,
    title               VARCHAR,
    description         VARCHAR,
    category            VARCHAR,
    status              VARCHAR NOT NULL,
    collateral_mint     VARCHAR,
    yes_mint            VARCHAR,
    no_mint             VARCHAR,
    vault               VARCHAR,
    oracle_source       VARCHAR,
    oracle_feed         VARCHAR,
    oracle_threshold    BIGINT,
    start_timestamp     BIGINT,
    lock_timestamp      BIGINT,
    end_timestamp       BIGINT,
    total_yes_shares    UBIGINT NOT NULL DEFAULT 0,
    total_no_shares     UBIGINT NOT NULL DEFAULT 0,
    total_collateral    UBIGINT NOT NULL DEFAULT 0,
    resolved_outcome    VARCHAR,
    resolution_price    BIGINT,
    resolved_at         BIGINT,
    volume_24h          HUGEINT NOT NULL DEFAULT 0,
    participant_count   INTEGER NOT NULL DEFAULT 0,
    min_bet             UBIGINT,
    max_bet             UBIGINT,
    fee_bps             INTEGER,
    indexed_slot        UBIGINT NOT NULL DEFAULT 0,
    created_at          BIGINT NOT NULL,
    updated_at          BIGINT NOT NULL
);

-- Append-only, one row per transaction signature
CREATE TABLE IF NOT EXISTS bets (
    signature           VARCHAR PRIMARY KEY,
    seq                 BIGINT NOT NULL DEFAULT nextval('activity_seq'),
    market_id           UBIGINT NOT NULL,
    user_wallet         VARCHAR NOT NULL,
    outcome             VARCHAR NOT NULL,
    amount              UBIGINT NOT NULL,
    shares              UBIGINT NOT NULL,
    slot                UBIGINT NOT NULL,
    event_timestamp     BIGINT,
    created_at          BIGINT NOT NULL
);

CREATE TABLE IF NOT EXISTS claims (
    signature           VARCHAR PRIMARY KEY,
    seq                 BIGINT NOT NULL DEFAULT nextval('activity_seq'),
    market_id           UBIGINT NOT NULL,
    user_wallet         VARCHAR NOT NULL,
    amount              UBIGINT NOT NULL,
    shares_burned       UBIGINT NOT NULL,
    slot                UBIGINT NOT NULL,
    created_at          BIGINT NOT NULL
);

-- Probability chart points, prices fixed-point over pricing.SCALE
CREATE TABLE IF NOT EXISTS price_snapshots (
    id                  BIGINT PRIMARY KEY DEFAULT nextval('snapshot_seq'),
    market_id           UBIGINT NOT NULL,
    yes_price           BIGINT NOT NULL,
    no_price            BIGINT NOT NULL,
    total_collateral    UBIGINT NOT NULL,
    slot                UBIGINT NOT NULL,
    ordinal             INTEGER NOT NULL DEFAULT 0,
    source              VARCHAR NOT NULL,
    timestamp           BIGINT NOT NULL
);

-- Running per-wallet totals, maintained incrementally
CREATE TABLE IF NOT EXISTS users (
    wallet              VARCHAR PRIMARY KEY,
    username            VARCHAR,
    avatar_url          VARCHAR,
    total_bets          BIGINT NOT NULL DEFAULT 0,
    total_volume        HUGEINT NOT NULL DEFAULT 0,
    total_pnl           HUGEINT NOT NULL DEFAULT 0,
    win_rate            DOUBLE NOT NULL DEFAULT 0,
    rank_score          DOUBLE NOT NULL DEFAULT 0,
    first_seen          BIGINT NOT NULL,
    updated_at          BIGINT NOT NULL
);
"""


def get_connection(db_path: str | Path) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager.
    Connections to the same file within one process share the database instance."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path))


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist. Safe to call repeatedly."""
    conn.execute(SCHEMA_SQL)


@contextmanager
def transaction(conn: DuckDBPyConnection) -> Iterator[DuckDBPyConnection]:
    """BEGIN ... COMMIT, ROLLBACK on any exception."""
    conn.execute("BEGIN TRANSACTION")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def fetch_dicts(conn: DuckDBPyConnection, sql: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
    """Run a query and return rows as dicts keyed by column name."""
    cur = conn.execute(sql, params or [])
    columns = [d[0] for d in cur.description]
    return [dict(zip(columns, r)) for r in cur.fetchall()]
