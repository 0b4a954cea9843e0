"""
Core utilities — exceptions and the shared retry policy.

Cross-cutting pieces used by the RPC layer, the ledger stores and the
ingestion orchestrator.
"""

from wallet_ledger.core.exceptions import (
    ConfigError,
    CooldownError,
    DataIntegrityError,
    LedgerError,
    ProviderError,
    RateLimitError,
    RateLimiterError,
    TerminalRpcError,
    TransientNetworkError,
)
from wallet_ledger.core.retry import RetryPolicy

__all__ = [
    "ConfigError",
    "CooldownError",
    "DataIntegrityError",
    "LedgerError",
    "ProviderError",
    "RateLimitError",
    "RateLimiterError",
    "RetryPolicy",
    "TerminalRpcError",
    "TransientNetworkError",
]
