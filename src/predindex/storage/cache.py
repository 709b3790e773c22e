"""Short-TTL read cache (Redis) in front of the store.

Entries expire passively; writes never invalidate, so readers see new data
within one TTL. Redis trouble is logged and treated as a miss.
"""

from __future__ import annotations

import json
from typing import Any, Callable, TypeVar

import redis
import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")


def market_key(market_id: int | str) -> str:
    return f"market:{market_id}"


def history_key(market_id: int | str) -> str:
    return f"market:{market_id}:history"


class ReadCache:
    """JSON values with per-key TTL. client=None disables caching."""

    def __init__(self, client: redis.Redis | None) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> ReadCache:
        if not url:
            return cls(None)
        return cls(redis.Redis.from_url(url, socket_timeout=1.0, socket_connect_timeout=1.0))

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def get(self, key: str) -> Any | None:
        if self.client is None:
            return None
        try:
            raw = self.client.get(key)
        except redis.RedisError as e:
            log.warning("cache_get_failed", key=key, error=str(e))
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            log.warning("cache_entry_corrupt", key=key)
            return None

    def set(self, key: str, ttl_sec: int, value: Any) -> None:
        if self.client is None:
            return
        try:
            self.client.setex(key, ttl_sec, json.dumps(value))
        except redis.RedisError as e:
            log.warning("cache_set_failed", key=key, error=str(e))

    def get_or_load(self, key: str, ttl_sec: int, loader: Callable[[], T]) -> T:
        """Cached value for key, or loader() stored for ttl_sec. None results are not cached."""
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        if value is not None:
            self.set(key, ttl_sec, value)
        return value

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
