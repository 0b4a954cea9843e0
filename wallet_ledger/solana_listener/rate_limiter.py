"""
Outbound request gate for the Solana RPC provider.

Serializes calls one at a time in FIFO order, enforces a minimum interval
between dispatches (plus a penalty per consecutive error) and trips a cooldown
on HTTP 429. While the cooldown is active every submit fails fast with
CooldownError; nothing is queued behind it.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, TypeVar

from wallet_ledger.core.exceptions import CooldownError, RateLimitError
from wallet_ledger.ledger_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Min-interval limiter with consecutive-error penalty and 429 circuit breaker."""

    def __init__(
        self,
        requests_per_second: float = 0.5,
        *,
        error_penalty_sec: float = 2.0,
        cooldown_base_sec: float = 15.0,
        cooldown_max_sec: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._interval = 1.0 / requests_per_second if requests_per_second > 0 else 0.0
        self._error_penalty = max(0.0, error_penalty_sec)
        self._cooldown_base = max(0.0, cooldown_base_sec)
        self._cooldown_max = max(self._cooldown_base, cooldown_max_sec)
        self._clock = clock
        self._sleep = sleep

        self._cond = threading.Condition()
        self._next_ticket = 0
        self._serving = 0
        self._last_dispatch: float | None = None
        self._consecutive_errors = 0
        self._cooldown_until = 0.0

    @property
    def consecutive_errors(self) -> int:
        with self._cond:
            return self._consecutive_errors

    def cooldown_remaining(self) -> float:
        """Seconds until submit() accepts calls again; 0.0 when not cooling down."""
        with self._cond:
            return max(0.0, self._cooldown_until - self._clock())

    def in_cooldown(self) -> bool:
        return self.cooldown_remaining() > 0

    def _dispatch_delay(self) -> float:
        with self._cond:
            wait = 0.0
            if self._last_dispatch is not None:
                elapsed = self._clock() - self._last_dispatch
                wait = max(0.0, self._interval - elapsed)
            return wait + self._consecutive_errors * self._error_penalty

    def _on_success(self) -> None:
        with self._cond:
            self._consecutive_errors = 0

    def _on_error(self, rate_limited: bool) -> None:
        with self._cond:
            self._consecutive_errors += 1
            if not rate_limited:
                return
            cooldown = min(
                self._cooldown_base * (2 ** self._consecutive_errors),
                self._cooldown_max,
            )
            self._cooldown_until = self._clock() + cooldown
            errors = self._consecutive_errors
        logger.warning(
            "rate_limiter_cooldown_tripped",
            consecutive_errors=errors,
            cooldown_sec=round(cooldown, 3),
        )

    def submit(self, call: Callable[[], T]) -> T:
        """
        Run call() once it is this caller's turn and the interval has elapsed.

        Raises:
            CooldownError: cooldown active; call() is not invoked.
            Whatever call() raises, after updating the error counters.
        """
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._cond.wait()
        try:
            remaining = self.cooldown_remaining()
            if remaining > 0:
                raise CooldownError(remaining)
            delay = self._dispatch_delay()
            if delay > 0:
                self._sleep(delay)
            with self._cond:
                self._last_dispatch = self._clock()
            try:
                result = call()
            except RateLimitError:
                self._on_error(rate_limited=True)
                raise
            except Exception:
                self._on_error(rate_limited=False)
                raise
            self._on_success()
            return result
        finally:
            with self._cond:
                self._serving += 1
                self._cond.notify_all()
