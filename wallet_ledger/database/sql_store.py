"""
SQLAlchemy-backed ledger store.

Uses DATABASE_URL (e.g. PostgreSQL) when given; otherwise a SQLite file. One
row per transaction (payload kept as the JSON of Transaction.to_dict), one
cursor row per wallet and one row per discarded signature. A save replaces the
wallet's rows inside a single transaction, so a crash mid-save leaves the
previous checkpoint intact.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import Boolean, Column, Integer, String, Text, create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from wallet_ledger.core.exceptions import DataIntegrityError
from wallet_ledger.database.store import LedgerStore
from wallet_ledger.ledger.models import FetchCursor, LedgerSnapshot, transaction_from_dict
from wallet_ledger.ledger_logging import get_logger, short

logger = get_logger(__name__)

Base = declarative_base()


class TransactionRow(Base):
    __tablename__ = "ledger_transactions"

    signature = Column(String(128), primary_key=True)
    wallet = Column(String(64), nullable=False, index=True)
    kind = Column(String(16), nullable=False, index=True)
    block_time = Column(Integer, nullable=True, index=True)  # Unix seconds
    payload = Column(Text, nullable=False)  # JSON of Transaction.to_dict()


class CursorRow(Base):
    __tablename__ = "ledger_cursors"

    wallet = Column(String(64), primary_key=True)
    before_signature = Column(String(128), nullable=True)
    scan_complete = Column(Boolean, nullable=False, default=False)
    last_fetch_timestamp = Column(String(64), nullable=True)
    rescan = Column(Boolean, nullable=False, default=False)


class DiscardedRow(Base):
    """Signatures whose transactions failed on-chain."""

    __tablename__ = "ledger_discarded"

    signature = Column(String(128), primary_key=True)
    wallet = Column(String(64), nullable=False, index=True)


def sqlite_url(path: str | Path) -> str:
    return f"sqlite:///{Path(path)}"


class SqlLedgerStore(LedgerStore):
    """LedgerStore on any SQLAlchemy URL; the wallet scopes every row."""

    def __init__(self, url: str, wallet: str) -> None:
        if url.startswith("sqlite:///"):
            Path(url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self._engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self._engine)
        self._wallet = wallet
        Base.metadata.create_all(bind=self._engine)
        logger.info("ledger_sql_store_ready", url=url.split("?")[0].split("//")[-1], wallet_id=short(wallet))

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        """Commits on success, rolls back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self._engine.dispose()

    def load(self) -> LedgerSnapshot | None:
        """Raises DataIntegrityError when the database cannot be read."""
        try:
            return self._load()
        except SQLAlchemyError as e:
            logger.error("ledger_store_load_failed", wallet_id=short(self._wallet), error=str(e))
            raise DataIntegrityError(f"Cannot read ledger database: {e}") from e

    def _load(self) -> LedgerSnapshot | None:
        with self._session_scope() as session:
            cursor_row = session.get(CursorRow, self._wallet)
            tx_rows = session.scalars(
                select(TransactionRow).where(TransactionRow.wallet == self._wallet)
            ).all()
            discarded = session.scalars(
                select(DiscardedRow.signature).where(DiscardedRow.wallet == self._wallet)
            ).all()
            if cursor_row is None and not tx_rows and not discarded:
                return None
            transactions = []
            for row in tx_rows:
                try:
                    data = json.loads(row.payload)
                except json.JSONDecodeError as e:
                    raise DataIntegrityError(f"Transaction {short(row.signature)} payload is not JSON") from e
                transactions.append(transaction_from_dict(data))
            cursor = FetchCursor()
            if cursor_row is not None:
                cursor = FetchCursor(
                    before_signature=cursor_row.before_signature,
                    scan_complete=bool(cursor_row.scan_complete),
                    last_fetch_timestamp=cursor_row.last_fetch_timestamp,
                    rescan=bool(cursor_row.rescan),
                )
        return LedgerSnapshot(
            wallet=self._wallet,
            transactions=tuple(transactions),
            cursor=cursor,
            discarded=frozenset(discarded),
        )

    def save(self, snapshot: LedgerSnapshot) -> bool:
        if snapshot.wallet != self._wallet:
            logger.error(
                "ledger_store_wallet_mismatch",
                wallet_id=short(self._wallet),
                snapshot_wallet=short(snapshot.wallet),
            )
            return False
        try:
            with self._session_scope() as session:
                session.execute(delete(TransactionRow).where(TransactionRow.wallet == self._wallet))
                session.execute(delete(DiscardedRow).where(DiscardedRow.wallet == self._wallet))
                session.add_all(
                    TransactionRow(
                        signature=tx.signature,
                        wallet=self._wallet,
                        kind=tx.kind.value,
                        block_time=tx.block_time,
                        payload=json.dumps(tx.to_dict()),
                    )
                    for tx in snapshot.transactions
                )
                session.add_all(
                    DiscardedRow(signature=sig, wallet=self._wallet) for sig in sorted(snapshot.discarded)
                )
                c = snapshot.cursor
                session.merge(
                    CursorRow(
                        wallet=self._wallet,
                        before_signature=c.before_signature,
                        scan_complete=c.scan_complete,
                        last_fetch_timestamp=c.last_fetch_timestamp,
                        rescan=c.rescan,
                    )
                )
        except SQLAlchemyError as e:
            logger.error("ledger_store_save_failed", wallet_id=short(self._wallet), error=str(e))
            return False
        return True
