"""
Ledger package — transaction models, the deduplicated Ledger and derived Stats.
"""

from wallet_ledger.ledger.ledger import Ledger
from wallet_ledger.ledger.models import (
    LAMPORTS_PER_SOL,
    NATIVE_SOL_MINT,
    FetchCursor,
    LedgerSnapshot,
    ReceivedTransaction,
    ScanHorizon,
    SentTransaction,
    Transaction,
    TransactionKind,
    UnknownTransaction,
    transaction_from_dict,
)
from wallet_ledger.ledger.stats import Stats, StatsAggregator, TokenSummary

__all__ = [
    "LAMPORTS_PER_SOL",
    "NATIVE_SOL_MINT",
    "FetchCursor",
    "Ledger",
    "LedgerSnapshot",
    "ReceivedTransaction",
    "ScanHorizon",
    "SentTransaction",
    "Stats",
    "StatsAggregator",
    "TokenSummary",
    "Transaction",
    "TransactionKind",
    "UnknownTransaction",
    "transaction_from_dict",
]
