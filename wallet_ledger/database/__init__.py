"""
Database package — ledger persistence (JSON file, SQL, in-memory).
"""

from __future__ import annotations

from wallet_ledger.database.sql_store import SqlLedgerStore, sqlite_url
from wallet_ledger.database.store import JsonFileLedgerStore, LedgerStore, MemoryLedgerStore

__all__ = [
    "JsonFileLedgerStore",
    "LedgerStore",
    "MemoryLedgerStore",
    "SqlLedgerStore",
    "build_store",
    "sqlite_url",
]


def build_store(settings) -> LedgerStore:
    """Build the store selected by settings.store_kind (json | sqlite | memory)."""
    if settings.store_kind == "memory":
        return MemoryLedgerStore()
    if settings.store_kind == "sqlite":
        url = settings.database_url or sqlite_url(settings.ledger_db_path)
        return SqlLedgerStore(url, settings.wallet)
    return JsonFileLedgerStore(settings.ledger_json_path)
