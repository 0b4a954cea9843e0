"""
Shared retry policy for provider calls.

One abstraction used by both the signature pager and the transaction resolver:
max attempts, exponential backoff (base * 2**attempt, capped) and a predicate
deciding which errors are retryable. CooldownError is never retried; the
limiter already refused the call and the run must back off instead. When a
remaining-time callable is given, a backoff that would not fit in it raises
BudgetExceededError instead of sleeping.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from wallet_ledger.core.exceptions import BudgetExceededError, CooldownError, TransientNetworkError
from wallet_ledger.ledger_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """
    max_attempts: total tries including the first one (>= 1).
    base_delay_sec / max_delay_sec: backoff is min(base * 2**attempt, max).
    retry_on: exception types considered retryable.
    sleep: injectable for tests.
    """

    max_attempts: int = 3
    base_delay_sec: float = 1.0
    max_delay_sec: float = 60.0
    retry_on: tuple[type[BaseException], ...] = (TransientNetworkError,)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        self.max_attempts = max(1, int(self.max_attempts))
        self.base_delay_sec = max(0.0, float(self.base_delay_sec))
        self.max_delay_sec = max(self.base_delay_sec, float(self.max_delay_sec))

    def backoff(self, attempt: int) -> float:
        """Delay before retry number attempt + 1 (attempt is 0-based)."""
        return min(self.base_delay_sec * (2 ** attempt), self.max_delay_sec)

    def is_retryable(self, exc: BaseException) -> bool:
        if isinstance(exc, CooldownError):
            return False
        return isinstance(exc, self.retry_on)

    def call(
        self,
        fn: Callable[[], T],
        *,
        operation: str = "rpc_call",
        remaining: Callable[[], float | None] | None = None,
    ) -> T:
        """
        Run fn until it succeeds, raises a non-retryable error, or attempts run out.
        The last error is re-raised unchanged when retries are exhausted.

        remaining: seconds left in the caller's budget (None = unbounded).
        """
        for attempt in range(self.max_attempts):
            try:
                return fn()
            except Exception as e:
                if not self.is_retryable(e) or attempt + 1 >= self.max_attempts:
                    raise
                delay = self.backoff(attempt)
                left = remaining() if remaining is not None else None
                if left is not None and delay >= left:
                    logger.warning(
                        "retry_abandoned_budget",
                        operation=operation,
                        attempt=attempt + 1,
                        delay_sec=round(delay, 3),
                        remaining_sec=round(left, 3),
                        error=str(e),
                    )
                    raise BudgetExceededError(operation, left) from e
                logger.warning(
                    "retry_scheduled",
                    operation=operation,
                    attempt=attempt + 1,
                    max_attempts=self.max_attempts,
                    delay_sec=round(delay, 3),
                    error_type=type(e).__name__,
                    error=str(e),
                )
                self.sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover
