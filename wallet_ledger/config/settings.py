"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and .env files.
- Validate required settings (tracked wallet, scan horizon) and provide defaults for optional ones.
- Expose a frozen IngestionSettings used by the worker, the API server and the CLI.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from solders.pubkey import Pubkey

from wallet_ledger.config.env import get_solana_rpc_url, get_tracked_wallet, load_ledger_env
from wallet_ledger.core.exceptions import ConfigError
from wallet_ledger.ledger.models import ScanHorizon

DEFAULT_REQUESTS_PER_SECOND = 0.5
DEFAULT_ERROR_PENALTY_SEC = 2.0
DEFAULT_COOLDOWN_BASE_SEC = 15.0
DEFAULT_COOLDOWN_MAX_SEC = 600.0
DEFAULT_REQUEST_TIMEOUT_SEC = 30.0
DEFAULT_RESOLVER_MAX_RETRIES = 5
DEFAULT_RESOLVER_RETRY_BASE_SEC = 10.0
DEFAULT_RESOLVER_RETRY_MAX_SEC = 120.0
DEFAULT_PAGER_MAX_RETRIES = 3
DEFAULT_PAGER_RETRY_BASE_SEC = 5.0
DEFAULT_PAGE_SIZE = 20
DEFAULT_RUN_TIME_BUDGET_SEC = 50.0
DEFAULT_SCHEDULE_INTERVAL_SEC = 300.0
STORE_KINDS = ("json", "sqlite", "memory")


@dataclass(frozen=True)
class IngestionSettings:
    """Typed settings for one tracked wallet; see get_settings() for env names."""

    wallet: str
    rpc_url: str
    scan_horizon: ScanHorizon
    rpc_auth_header: str | None = None
    requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND
    error_penalty_sec: float = DEFAULT_ERROR_PENALTY_SEC
    cooldown_base_sec: float = DEFAULT_COOLDOWN_BASE_SEC
    cooldown_max_sec: float = DEFAULT_COOLDOWN_MAX_SEC
    request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC
    resolver_max_retries: int = DEFAULT_RESOLVER_MAX_RETRIES
    resolver_retry_base_sec: float = DEFAULT_RESOLVER_RETRY_BASE_SEC
    resolver_retry_max_sec: float = DEFAULT_RESOLVER_RETRY_MAX_SEC
    pager_max_retries: int = DEFAULT_PAGER_MAX_RETRIES
    pager_retry_base_sec: float = DEFAULT_PAGER_RETRY_BASE_SEC
    page_size: int = DEFAULT_PAGE_SIZE
    run_time_budget_sec: float = DEFAULT_RUN_TIME_BUDGET_SEC
    store_kind: str = "json"
    ledger_json_path: Path = Path("data/ledger.json")
    ledger_db_path: Path = Path("data/ledger.db")
    database_url: str | None = None
    telegram_bot_token: str | None = None
    telegram_chat_id: str | None = None
    schedule_interval_sec: float = DEFAULT_SCHEDULE_INTERVAL_SEC


def is_valid_wallet(w: str) -> bool:
    """Return True if w is a valid Solana wallet (Pubkey) address."""
    try:
        Pubkey.from_string(w.strip())
        return True
    except Exception:
        return False


def _env_str(name: str) -> str | None:
    raw = (os.getenv(name) or "").strip()
    return raw or None


def _env_float(name: str, default: float) -> float:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def get_settings() -> IngestionSettings:
    """
    Build settings from the environment (after loading .env).

    Raises:
        ConfigError: TRACKED_WALLET_ADDRESS missing/invalid, SCAN_HORIZON missing/invalid,
            or a numeric setting out of range.
    """
    load_ledger_env()

    wallet = get_tracked_wallet()
    if not wallet:
        raise ConfigError("TRACKED_WALLET_ADDRESS must be set")
    if not is_valid_wallet(wallet):
        raise ConfigError(f"Invalid Solana wallet: {wallet!r}")

    horizon_raw = _env_str("SCAN_HORIZON")
    if horizon_raw is None:
        raise ConfigError("SCAN_HORIZON must be set explicitly ('all', '<N>d' or 'YYYY-MM-DD')")
    try:
        horizon = ScanHorizon.parse(horizon_raw)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    page_size = _env_int("PAGE_SIZE", DEFAULT_PAGE_SIZE)
    if not (1 <= page_size <= 1000):
        raise ConfigError("PAGE_SIZE must be between 1 and 1000")

    store_kind = (_env_str("LEDGER_STORE") or "json").lower()
    if store_kind not in STORE_KINDS:
        raise ConfigError(f"LEDGER_STORE must be one of {', '.join(STORE_KINDS)}")

    return IngestionSettings(
        wallet=wallet,
        rpc_url=get_solana_rpc_url(),
        scan_horizon=horizon,
        rpc_auth_header=_env_str("RPC_AUTH_HEADER"),
        requests_per_second=_env_float("RPC_REQUESTS_PER_SECOND", DEFAULT_REQUESTS_PER_SECOND),
        error_penalty_sec=_env_float("RPC_ERROR_PENALTY_SEC", DEFAULT_ERROR_PENALTY_SEC),
        cooldown_base_sec=_env_float("RPC_COOLDOWN_BASE_SEC", DEFAULT_COOLDOWN_BASE_SEC),
        cooldown_max_sec=_env_float("RPC_COOLDOWN_MAX_SEC", DEFAULT_COOLDOWN_MAX_SEC),
        request_timeout_sec=_env_float("RPC_REQUEST_TIMEOUT_SEC", DEFAULT_REQUEST_TIMEOUT_SEC),
        resolver_max_retries=max(0, _env_int("RESOLVER_MAX_RETRIES", DEFAULT_RESOLVER_MAX_RETRIES)),
        resolver_retry_base_sec=_env_float("RESOLVER_RETRY_BASE_SEC", DEFAULT_RESOLVER_RETRY_BASE_SEC),
        resolver_retry_max_sec=_env_float("RESOLVER_RETRY_MAX_SEC", DEFAULT_RESOLVER_RETRY_MAX_SEC),
        pager_max_retries=max(0, _env_int("PAGER_MAX_RETRIES", DEFAULT_PAGER_MAX_RETRIES)),
        pager_retry_base_sec=_env_float("PAGER_RETRY_BASE_SEC", DEFAULT_PAGER_RETRY_BASE_SEC),
        page_size=page_size,
        run_time_budget_sec=_env_float("RUN_TIME_BUDGET_SEC", DEFAULT_RUN_TIME_BUDGET_SEC),
        store_kind=store_kind,
        ledger_json_path=Path(_env_str("LEDGER_JSON_PATH") or "data/ledger.json"),
        ledger_db_path=Path(_env_str("LEDGER_DB_PATH") or "data/ledger.db"),
        database_url=_env_str("DATABASE_URL"),
        telegram_bot_token=_env_str("TELEGRAM_BOT_TOKEN"),
        telegram_chat_id=_env_str("TELEGRAM_CHAT_ID"),
        schedule_interval_sec=_env_float("SCHEDULE_INTERVAL_SEC", DEFAULT_SCHEDULE_INTERVAL_SEC),
    )
