"""
Application-level exceptions.

Provider failures are split by how the ingestion pipeline reacts to them:
transient errors are retried, rate limits trip the limiter's cooldown, and
terminal errors skip a single signature. Integrity and config errors abort.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error raised by wallet_ledger."""


class ProviderError(LedgerError):
    """An RPC call to the upstream provider failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientNetworkError(ProviderError):
    """Transport failure, timeout or 5xx; safe to retry with backoff."""


class RateLimitError(ProviderError):
    """Provider answered HTTP 429; trips the rate limiter cooldown."""


class TerminalRpcError(ProviderError):
    """Malformed or unexpected response; retrying will not help."""


class RateLimiterError(LedgerError):
    """The rate limiter refused to dispatch a call."""


class CooldownError(RateLimiterError):
    """Submitted while the circuit breaker cooldown is active."""

    def __init__(self, remaining_sec: float) -> None:
        super().__init__(f"Rate limiter cooling down for {remaining_sec:.1f}s")
        self.remaining_sec = remaining_sec


class DataIntegrityError(LedgerError):
    """Persisted ledger state could not be parsed."""


class ConfigError(LedgerError):
    """Required configuration is missing or invalid."""


class BudgetExceededError(LedgerError):
    """A retry backoff would outlast the run's time budget; the run suspends."""

    def __init__(self, operation: str, remaining_sec: float) -> None:
        super().__init__(f"{operation}: retry abandoned, {remaining_sec:.1f}s of run budget left")
        self.operation = operation
        self.remaining_sec = remaining_sec
