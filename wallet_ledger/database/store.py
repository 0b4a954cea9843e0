"""
Ledger persistence collaborators.

A LedgerStore hands LedgerSnapshot objects to and from some medium. load()
returns None on a cold start and raises DataIntegrityError when stored state
cannot be parsed; save() returns False on failure instead of raising, since a
failed checkpoint is retried at the next one and is never fatal to a run.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from wallet_ledger.core.exceptions import DataIntegrityError
from wallet_ledger.ledger.models import LedgerSnapshot
from wallet_ledger.ledger_logging import get_logger, short

logger = get_logger(__name__)


class LedgerStore(ABC):
    """Abstract interface for ledger persistence; implement for files, SQL, memory."""

    @abstractmethod
    def load(self) -> LedgerSnapshot | None:
        """Return the persisted snapshot, or None if nothing was saved yet."""
        ...

    @abstractmethod
    def save(self, snapshot: LedgerSnapshot) -> bool:
        """Persist snapshot; return True on success, False on a (logged) failure."""
        ...


class MemoryLedgerStore(LedgerStore):
    """In-process store for tests and serverless runs; keeps the serialized form."""

    def __init__(self, initial: LedgerSnapshot | None = None) -> None:
        self._lock = threading.Lock()
        self._data: dict | None = initial.to_dict() if initial is not None else None
        self.save_count = 0

    def load(self) -> LedgerSnapshot | None:
        with self._lock:
            data = self._data
        return LedgerSnapshot.from_dict(data) if data is not None else None

    def save(self, snapshot: LedgerSnapshot) -> bool:
        with self._lock:
            self._data = snapshot.to_dict()
            self.save_count += 1
        return True


class JsonFileLedgerStore(LedgerStore):
    """
    Single JSON document on disk.

    Writes go to a temp file in the same directory and are moved into place with
    os.replace, so readers never observe a half-written ledger.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> LedgerSnapshot | None:
        if not self._path.exists():
            logger.info("ledger_store_cold_start", path=str(self._path))
            return None
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as e:
            raise DataIntegrityError(f"Cannot read ledger file {self._path}: {e}") from e
        if not text.strip():
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise DataIntegrityError(f"Ledger file {self._path} is not valid JSON: {e}") from e
        return LedgerSnapshot.from_dict(data)

    def save(self, snapshot: LedgerSnapshot) -> bool:
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=self._path.name + ".", suffix=".tmp", dir=self._path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f, indent=2)
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as e:
            logger.error("ledger_store_save_failed", path=str(self._path), error=str(e))
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
        logger.debug(
            "ledger_store_saved",
            path=str(self._path),
            wallet_id=short(snapshot.wallet),
            transaction_count=len(snapshot.transactions),
        )
        return True
