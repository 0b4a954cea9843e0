"""
Deduplicated in-memory ledger for one wallet.

Signature -> Transaction map plus the pagination cursor and the set of
discarded signatures (failed on-chain). upsert is idempotent; the set of known
signatures only grows until an explicit reset(). All access is guarded by a
re-entrant lock so the contract holds if resolution is ever parallelised.
"""

from __future__ import annotations

import threading

from wallet_ledger.ledger.models import FetchCursor, LedgerSnapshot, Transaction
from wallet_ledger.ledger_logging import get_logger, short

logger = get_logger(__name__)


class Ledger:
    """Deduplicated store of resolved transactions plus the current FetchCursor."""

    def __init__(self, wallet: str) -> None:
        if not wallet.strip():
            raise ValueError("wallet must be non-empty")
        self._wallet = wallet.strip()
        self._transactions: dict[str, Transaction] = {}
        self._discarded: set[str] = set()
        self._cursor = FetchCursor()
        self._version = 0
        self._lock = threading.RLock()

    @property
    def wallet(self) -> str:
        return self._wallet

    @property
    def version(self) -> int:
        """Monotonic mutation counter; cached views compare it to detect staleness."""
        with self._lock:
            return self._version

    @property
    def cursor(self) -> FetchCursor:
        with self._lock:
            return self._cursor

    def set_cursor(self, cursor: FetchCursor) -> None:
        with self._lock:
            self._cursor = cursor

    def upsert(self, tx: Transaction) -> bool:
        """
        Insert or replace by signature. Returns True if the signature was new.
        Replacing with an equal record is a no-op (version unchanged).
        """
        with self._lock:
            existing = self._transactions.get(tx.signature)
            if existing == tx:
                return False
            self._transactions[tx.signature] = tx
            self._discarded.discard(tx.signature)
            self._version += 1
            return existing is None

    def discard(self, signature: str) -> None:
        """Remember a signature whose transaction failed on-chain; it is known but never stored."""
        with self._lock:
            if signature in self._transactions or signature in self._discarded:
                return
            self._discarded.add(signature)
            self._version += 1

    def has(self, signature: str) -> bool:
        with self._lock:
            return signature in self._transactions or signature in self._discarded

    def get(self, signature: str) -> Transaction | None:
        with self._lock:
            return self._transactions.get(signature)

    def all(self) -> list[Transaction]:
        with self._lock:
            return list(self._transactions.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._transactions)

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                wallet=self._wallet,
                transactions=tuple(self._transactions.values()),
                cursor=self._cursor,
                discarded=frozenset(self._discarded),
            )

    def restore(self, snapshot: LedgerSnapshot) -> None:
        """
        Seed from a persisted snapshot: merge its transactions and discarded
        signatures and adopt its cursor. Raises ValueError on a wallet mismatch.
        """
        if snapshot.wallet != self._wallet:
            raise ValueError(
                f"Snapshot belongs to {short(snapshot.wallet)}, ledger tracks {short(self._wallet)}"
            )
        with self._lock:
            for tx in snapshot.transactions:
                self._transactions[tx.signature] = tx
            self._discarded.update(s for s in snapshot.discarded if s not in self._transactions)
            self._cursor = snapshot.cursor
            self._version += 1
        logger.info(
            "ledger_restored",
            wallet_id=short(self._wallet),
            transaction_count=len(snapshot.transactions),
            discarded_count=len(snapshot.discarded),
            before_signature=short(snapshot.cursor.before_signature),
            scan_complete=snapshot.cursor.scan_complete,
        )

    def reset(self) -> None:
        """Explicit full reset: forget every signature and the cursor."""
        with self._lock:
            count = len(self._transactions)
            self._transactions.clear()
            self._discarded.clear()
            self._cursor = FetchCursor()
            self._version += 1
        logger.warning("ledger_reset", wallet_id=short(self._wallet), cleared_count=count)
