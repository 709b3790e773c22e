import shutil
import tempfile
from pathlib import Path

import pytest

from helpers import FakeLedger
from predindex.config import Settings
from predindex.storage.db import get_connection, init_schema


@pytest.fixture
def db_path():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    yield path
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def temp_db(db_path):
    conn = get_connection(db_path)
    init_schema(conn)
    yield conn
    conn.close()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def settings(db_path, monkeypatch):
    monkeypatch.delenv("PREDINDEX_WEBHOOK_SECRET", raising=False)
    return Settings.from_dict(
        {
            "ledger": {"program_id": "F4JxF7aePgrKKwmVM9tXHUadeTKNLXwFMZFQoiBowLcr"},
            "indexer": {
                "scheduler_enabled": False,
                "subscription_enabled": False,
                "resync_delay_sec": 0,
            },
            "storage": {"db_path": str(db_path)},
            "cache": {"redis_url": ""},
            "webhook": {"secret": ""},
        }
    )
