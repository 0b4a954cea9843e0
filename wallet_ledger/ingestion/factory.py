"""
Wire an IngestionRun from IngestionSettings.
"""

from __future__ import annotations

import httpx

from wallet_ledger.alerts import Notifier, build_notifier
from wallet_ledger.config.env import mask_rpc_url
from wallet_ledger.config.settings import IngestionSettings
from wallet_ledger.core.exceptions import RateLimitError, TransientNetworkError
from wallet_ledger.core.retry import RetryPolicy
from wallet_ledger.database import LedgerStore, build_store
from wallet_ledger.ingestion.run import IngestionRun
from wallet_ledger.ledger_logging import get_logger, short
from wallet_ledger.solana_listener import (
    RateLimiter,
    SignaturePager,
    SolanaRpcClient,
    TransactionResolver,
)

logger = get_logger(__name__)


def build_ingestion(
    settings: IngestionSettings,
    *,
    store: LedgerStore | None = None,
    notifier: Notifier | None = None,
    http_client: httpx.Client | None = None,
) -> IngestionRun:
    limiter = RateLimiter(
        settings.requests_per_second,
        error_penalty_sec=settings.error_penalty_sec,
        cooldown_base_sec=settings.cooldown_base_sec,
        cooldown_max_sec=settings.cooldown_max_sec,
    )
    client = SolanaRpcClient(
        settings.rpc_url,
        limiter,
        auth_header=settings.rpc_auth_header,
        timeout_sec=settings.request_timeout_sec,
        client=http_client,
    )
    resolver = TransactionResolver(
        client,
        settings.wallet,
        retry=RetryPolicy(
            max_attempts=settings.resolver_max_retries + 1,
            base_delay_sec=settings.resolver_retry_base_sec,
            max_delay_sec=settings.resolver_retry_max_sec,
            retry_on=(TransientNetworkError, RateLimitError),
        ),
    )
    pager_retry = RetryPolicy(
        max_attempts=settings.pager_max_retries + 1,
        base_delay_sec=settings.pager_retry_base_sec,
        max_delay_sec=settings.resolver_retry_max_sec,
    )
    run = IngestionRun(
        settings.wallet,
        limiter=limiter,
        pager_factory=lambda ledger: SignaturePager(
            client,
            is_known=ledger.has,
            horizon=settings.scan_horizon,
            retry=pager_retry,
        ),
        resolver=resolver,
        store=store if store is not None else build_store(settings),
        notifier=notifier if notifier is not None else build_notifier(settings),
        page_size=settings.page_size,
        time_budget_sec=settings.run_time_budget_sec,
    )
    logger.info(
        "ingestion_built",
        wallet_id=short(settings.wallet),
        rpc=mask_rpc_url(settings.rpc_url),
        store=settings.store_kind,
        scan_horizon=settings.scan_horizon.not_before,
        page_size=settings.page_size,
    )
    return run
