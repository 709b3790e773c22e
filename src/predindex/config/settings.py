"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"

WSOL_MINT = "So11111111111111111111111111111111111111112"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = _find_config_dir(config_dir)
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        ledger: dict[str, Any] | None = None,
        indexer: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        cache: dict[str, Any] | None = None,
        webhook: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.ledger = ledger or {}
        self.indexer = indexer or {}
        self.storage = storage or {}
        self.cache = cache or {}
        self.webhook = webhook or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            ledger=raw.get("ledger"),
            indexer=raw.get("indexer"),
            storage=raw.get("storage"),
            cache=raw.get("cache"),
            webhook=raw.get("webhook"),
            logging=raw.get("logging"),
        )

    # Ledger / RPC
    @property
    def rpc_url(self) -> str:
        return self.ledger.get("rpc_url", "https://api.devnet.solana.com")

    @property
    def ws_url(self) -> str:
        """Websocket endpoint; derived from rpc_url when not set."""
        url = self.ledger.get("ws_url") or ""
        if url:
            return url
        rpc = self.rpc_url
        if rpc.startswith("https://"):
            return "wss://" + rpc[len("https://"):]
        if rpc.startswith("http://"):
            return "ws://" + rpc[len("http://"):]
        return rpc

    @property
    def program_id(self) -> str:
        return self.ledger.get("program_id", "")

    @property
    def collateral_mint(self) -> str:
        return self.ledger.get("collateral_mint", WSOL_MINT)

    @property
    def request_timeout_sec(self) -> float:
        return float(self.ledger.get("request_timeout_sec", 10.0))

    @property
    def requests_per_sec(self) -> float:
        return float(self.ledger.get("requests_per_sec", 10.0))

    # Indexer
    @property
    def sync_interval_sec(self) -> float:
        return float(self.indexer.get("sync_interval_sec", 30.0))

    @property
    def resync_delay_sec(self) -> float:
        return float(self.indexer.get("resync_delay_sec", 2.0))

    @property
    def scheduler_enabled(self) -> bool:
        return bool(self.indexer.get("scheduler_enabled", True))

    @property
    def subscription_enabled(self) -> bool:
        return bool(self.indexer.get("subscription_enabled", True))

    @property
    def reconnect_base_delay_sec(self) -> float:
        return float(self.indexer.get("reconnect_base_delay_sec", 1.0))

    @property
    def reconnect_max_delay_sec(self) -> float:
        return float(self.indexer.get("reconnect_max_delay_sec", 60.0))

    @property
    def reconnect_max_retries(self) -> int:
        return int(self.indexer.get("reconnect_max_retries", 0))

    # Storage
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/predindex.duckdb")

    # Read cache
    @property
    def redis_url(self) -> str:
        return self.cache.get("redis_url", "")

    @property
    def market_ttl_sec(self) -> int:
        return int(self.cache.get("market_ttl_sec", 5))

    @property
    def history_ttl_sec(self) -> int:
        return int(self.cache.get("history_ttl_sec", 10))

    # Webhook
    @property
    def webhook_secret(self) -> str:
        """Shared secret for POST /webhook. Environment wins over TOML."""
        return os.environ.get("PREDINDEX_WEBHOOK_SECRET") or self.webhook.get("secret", "")

    # Logging
    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
