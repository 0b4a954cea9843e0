"""
Backward signature pager over getSignaturesForAddress.

Each call fetches one page strictly older than cursor.before_signature and
decides whether the scan should continue. A page never moves the ledger's
cursor itself; the run adopts page.next_cursor once every signature in the
page has been resolved.
"""

from __future__ import annotations

import time
from typing import Callable

from wallet_ledger.core.retry import RetryPolicy
from wallet_ledger.ledger.models import FetchCursor, ScanHorizon
from wallet_ledger.ledger_logging import get_logger, short
from wallet_ledger.solana_listener.models import SignatureInfo, SignaturePage, StopReason
from wallet_ledger.solana_listener.rpc import SolanaRpcClient

logger = get_logger(__name__)


class RunBudget:
    """Wall-clock budget for one run; clock is injectable for tests."""

    def __init__(self, seconds: float | None, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._deadline = None if seconds is None else clock() + max(0.0, seconds)

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def exceeded(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline


class SignaturePager:
    """
    Pages one address backward in time.

    is_known: membership check against the ledger (early stop on known history).
    horizon: signatures older than the horizon are dropped and end the scan.
    """

    def __init__(
        self,
        client: SolanaRpcClient,
        *,
        is_known: Callable[[str], bool],
        horizon: ScanHorizon | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._client = client
        self._is_known = is_known
        self._horizon = horizon or ScanHorizon.unbounded()
        self._retry = retry or RetryPolicy(max_attempts=4, base_delay_sec=5.0, max_delay_sec=60.0)

    def fetch_page(
        self,
        address: str,
        cursor: FetchCursor,
        page_size: int,
        budget: RunBudget | None = None,
    ) -> SignaturePage:
        """
        Fetch the next page older than cursor.before_signature.

        Raises ProviderError / CooldownError when the page itself cannot be
        fetched after retries; the caller aborts the run. Raises
        BudgetExceededError when a retry backoff would outlast the budget.
        """
        if page_size < 1:
            raise ValueError("page_size must be positive")
        if budget is not None and budget.exceeded():
            return SignaturePage((), cursor, has_more=False, stop_reason=StopReason.BUDGET_EXCEEDED)

        before = cursor.before_signature
        raw = self._retry.call(
            lambda: self._client.get_signatures_for_address(address, limit=page_size, before=before),
            operation="get_signatures_for_address",
            remaining=budget.remaining if budget is not None else None,
        )
        infos = [SignatureInfo.from_rpc_item(item) for item in raw]
        if not infos:
            logger.info("pager_end_of_history", wallet_id=short(address), before=short(before))
            return SignaturePage((), cursor, has_more=False, stop_reason=StopReason.END_OF_HISTORY)

        next_cursor = cursor.advanced(infos[-1].signature)
        in_range = tuple(i for i in infos if not self._horizon.excludes(i.block_time))

        stop: StopReason | None = None
        if len(in_range) < len(infos):
            stop = StopReason.HORIZON_REACHED
        elif not cursor.rescan and self._is_known(infos[-1].signature):
            stop = StopReason.KNOWN_SIGNATURE
        elif len(infos) < page_size:
            stop = StopReason.END_OF_HISTORY
        elif budget is not None and budget.exceeded():
            stop = StopReason.BUDGET_EXCEEDED

        logger.info(
            "page_fetched",
            wallet_id=short(address),
            before=short(before),
            signature_count=len(in_range),
            oldest=short(infos[-1].signature),
            stop_reason=stop.value if stop else None,
        )
        return SignaturePage(
            signatures=in_range,
            next_cursor=next_cursor,
            has_more=stop is None,
            stop_reason=stop,
        )
