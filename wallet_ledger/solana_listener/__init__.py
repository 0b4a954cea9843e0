"""
Solana listener — rate-limited JSON-RPC access, signature paging and
transaction resolution for the tracked wallet.
"""

from wallet_ledger.solana_listener.models import SignatureInfo, SignaturePage, StopReason
from wallet_ledger.solana_listener.pager import RunBudget, SignaturePager
from wallet_ledger.solana_listener.rate_limiter import RateLimiter
from wallet_ledger.solana_listener.resolver import Resolution, TransactionResolver
from wallet_ledger.solana_listener.rpc import SolanaRpcClient

__all__ = [
    "RateLimiter",
    "Resolution",
    "RunBudget",
    "SignatureInfo",
    "SignaturePage",
    "SignaturePager",
    "SolanaRpcClient",
    "StopReason",
    "TransactionResolver",
]
