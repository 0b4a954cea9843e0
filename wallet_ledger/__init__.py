"""
Wallet Ledger — deduplicated Solana wallet transaction ledger.

Pages backward through a wallet's signature history on a rate-limited RPC
provider, resolves and classifies each transaction, merges results into an
idempotent ledger and derives statistics from it. Runs are time-boxed and
resumable; the worker loop, CLI and HTTP surface all drive one IngestionRun.
"""

__version__ = "0.1.0"
