"""
Domain models for the wallet ledger.

Transactions are a closed tagged variant (Sent | Received | Unknown); each
variant carries only the fields meaningful to it. All models are frozen and
serialize to plain JSON-compatible dicts for the persistence collaborators.
Amounts are Decimal in display units (SOL), serialized as strings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union

from wallet_ledger.core.exceptions import DataIntegrityError

LAMPORTS_PER_SOL = 1_000_000_000
NATIVE_SOL_MINT = "So11111111111111111111111111111111111111112"
NATIVE_TOKEN = "SOL"
STATUS_SUCCESS = "success"
SNAPSHOT_VERSION = 1


class TransactionKind(str, Enum):
    SENT = "sent"
    RECEIVED = "received"
    UNKNOWN = "unknown"


def _iso_from_block_time(block_time: int | None) -> str | None:
    if block_time is None:
        return None
    return datetime.fromtimestamp(block_time, tz=timezone.utc).isoformat()


@dataclass(frozen=True, kw_only=True)
class _TransactionBase:
    signature: str
    wallet: str
    """The tracked wallet (counterparty on our side)."""
    block_time: int | None
    slot: int | None
    fee: Decimal = Decimal(0)
    """Network fee in SOL."""
    status: str = STATUS_SUCCESS

    def __post_init__(self) -> None:
        for name in ("block_time", "slot"):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
                raise TypeError(f"{name} must be an int or None, got {value!r}")

    @property
    def timestamp_iso(self) -> str | None:
        return _iso_from_block_time(self.block_time)

    def _base_dict(self, kind: TransactionKind) -> dict[str, Any]:
        return {
            "signature": self.signature,
            "kind": kind.value,
            "wallet": self.wallet,
            "block_time": self.block_time,
            "slot": self.slot,
            "timestamp": self.timestamp_iso,
            "fee": str(self.fee),
            "status": self.status,
        }


@dataclass(frozen=True, kw_only=True)
class SentTransaction(_TransactionBase):
    """Wallet balance decreased; receiver is the first account whose balance increased."""

    amount: Decimal
    token: str = NATIVE_TOKEN
    token_mint: str | None = NATIVE_SOL_MINT
    receiver: str | None = None

    kind = TransactionKind.SENT

    @property
    def counterparty(self) -> str | None:
        return self.receiver

    def to_dict(self) -> dict[str, Any]:
        out = self._base_dict(self.kind)
        out.update(
            amount=str(self.amount),
            token=self.token,
            token_mint=self.token_mint,
            sender=self.wallet,
            receiver=self.receiver,
        )
        return out


@dataclass(frozen=True, kw_only=True)
class ReceivedTransaction(_TransactionBase):
    """Wallet balance increased; sender is the first account whose balance decreased."""

    amount: Decimal
    token: str = NATIVE_TOKEN
    token_mint: str | None = NATIVE_SOL_MINT
    sender: str | None = None

    kind = TransactionKind.RECEIVED

    @property
    def counterparty(self) -> str | None:
        return self.sender

    def to_dict(self) -> dict[str, Any]:
        out = self._base_dict(self.kind)
        out.update(
            amount=str(self.amount),
            token=self.token,
            token_mint=self.token_mint,
            sender=self.sender,
            receiver=self.wallet,
        )
        return out


@dataclass(frozen=True, kw_only=True)
class UnknownTransaction(_TransactionBase):
    """Wallet not in the account list, or its native balance did not change."""

    kind = TransactionKind.UNKNOWN

    @property
    def amount(self) -> Decimal:
        return Decimal(0)

    @property
    def counterparty(self) -> str | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return self._base_dict(self.kind)


Transaction = Union[SentTransaction, ReceivedTransaction, UnknownTransaction]


def _decimal(raw: Any, name: str) -> Decimal:
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError) as e:
        raise DataIntegrityError(f"Invalid decimal for {name}: {raw!r}") from e
    if not value.is_finite() or value < 0:
        raise DataIntegrityError(f"{name} must be a finite non-negative decimal, got {raw!r}")
    return value


def _optional_int(raw: Any, name: str) -> int | None:
    if raw is None:
        return None
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise DataIntegrityError(f"Invalid integer for {name}: {raw!r}") from e


def transaction_from_dict(data: Any) -> Transaction:
    """Rebuild a Transaction from to_dict() output; raise DataIntegrityError if malformed."""
    if not isinstance(data, dict):
        raise DataIntegrityError(f"Transaction record must be an object, got {type(data).__name__}")
    try:
        signature = data["signature"]
        kind = TransactionKind(data["kind"])
        wallet = data["wallet"]
    except (KeyError, ValueError) as e:
        raise DataIntegrityError(f"Transaction record missing/invalid field: {e}") from e
    if not isinstance(signature, str) or not signature:
        raise DataIntegrityError("Transaction signature must be a non-empty string")
    common: dict[str, Any] = {
        "signature": signature,
        "wallet": wallet,
        "block_time": _optional_int(data.get("block_time"), "block_time"),
        "slot": _optional_int(data.get("slot"), "slot"),
        "fee": _decimal(data.get("fee", "0"), "fee"),
        "status": data.get("status") or STATUS_SUCCESS,
    }
    if kind is TransactionKind.UNKNOWN:
        return UnknownTransaction(**common)
    if "amount" not in data:
        raise DataIntegrityError(f"{kind.value} transaction {signature} has no amount")
    priced = {
        "amount": _decimal(data["amount"], "amount"),
        "token": data.get("token") or NATIVE_TOKEN,
        "token_mint": data.get("token_mint"),
    }
    if kind is TransactionKind.SENT:
        return SentTransaction(**common, **priced, receiver=data.get("receiver"))
    return ReceivedTransaction(**common, **priced, sender=data.get("sender"))


@dataclass(frozen=True)
class FetchCursor:
    """
    Where the next backward page resumes.

    before_signature: oldest signature already paged (None = start at most recent).
    scan_complete: True once history ran out (vs. paused on budget / error).
    rescan: a full rescan is in progress; the known-signature early stop is disabled.
    """

    before_signature: str | None = None
    scan_complete: bool = False
    last_fetch_timestamp: str | None = None
    rescan: bool = False

    @classmethod
    def full_rescan(cls, last_fetch_timestamp: str | None = None) -> "FetchCursor":
        return cls(before_signature=None, scan_complete=False,
                   last_fetch_timestamp=last_fetch_timestamp, rescan=True)

    def advanced(self, before_signature: str | None) -> "FetchCursor":
        if before_signature is None:
            return self
        return replace(self, before_signature=before_signature, scan_complete=False)

    def completed(self) -> "FetchCursor":
        return replace(self, scan_complete=True, rescan=False)

    def top_up(self) -> "FetchCursor":
        """Cursor for a new scan from the newest signature down to known history."""
        return replace(self, before_signature=None, scan_complete=False, rescan=False)

    def stamped(self, when: datetime | None = None) -> "FetchCursor":
        ts = (when or datetime.now(timezone.utc)).isoformat()
        return replace(self, last_fetch_timestamp=ts)

    def to_dict(self) -> dict[str, Any]:
        return {
            "before_signature": self.before_signature,
            "scan_complete": self.scan_complete,
            "last_fetch_timestamp": self.last_fetch_timestamp,
            "rescan": self.rescan,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "FetchCursor":
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise DataIntegrityError("Cursor must be an object")
        before = data.get("before_signature")
        if before is not None and not isinstance(before, str):
            raise DataIntegrityError("Cursor before_signature must be a string or null")
        return cls(
            before_signature=before,
            scan_complete=bool(data.get("scan_complete", False)),
            last_fetch_timestamp=data.get("last_fetch_timestamp"),
            rescan=bool(data.get("rescan", False)),
        )


@dataclass(frozen=True)
class LedgerSnapshot:
    """Ledger contents handed to and from a LedgerStore."""

    wallet: str
    transactions: tuple[Transaction, ...] = ()
    cursor: FetchCursor = field(default_factory=FetchCursor)
    discarded: frozenset[str] = frozenset()

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "wallet": self.wallet,
            "cursor": self.cursor.to_dict(),
            "transactions": [tx.to_dict() for tx in self.transactions],
            "discarded": sorted(self.discarded),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "LedgerSnapshot":
        if not isinstance(data, dict):
            raise DataIntegrityError("Ledger snapshot must be an object")
        version = data.get("version", SNAPSHOT_VERSION)
        if version != SNAPSHOT_VERSION:
            raise DataIntegrityError(f"Unsupported ledger snapshot version: {version!r}")
        wallet = data.get("wallet")
        if not isinstance(wallet, str) or not wallet:
            raise DataIntegrityError("Ledger snapshot has no wallet")
        raw_txs = data.get("transactions") or []
        raw_discarded = data.get("discarded") or []
        if not isinstance(raw_txs, list) or not isinstance(raw_discarded, list):
            raise DataIntegrityError("Ledger snapshot transactions/discarded must be lists")
        return cls(
            wallet=wallet,
            transactions=tuple(transaction_from_dict(t) for t in raw_txs),
            cursor=FetchCursor.from_dict(data.get("cursor")),
            discarded=frozenset(str(s) for s in raw_discarded),
        )


_DAYS_RE = re.compile(r"^(\d+)\s*d$")


@dataclass(frozen=True)
class ScanHorizon:
    """
    How far back a backward scan may go.

    not_before: Unix seconds; signatures with an older blockTime are out of range.
    None means the whole history, which must be requested explicitly via unbounded().
    """

    not_before: int | None

    @classmethod
    def unbounded(cls) -> "ScanHorizon":
        return cls(not_before=None)

    @classmethod
    def last_days(cls, days: int, *, now: datetime | None = None) -> "ScanHorizon":
        if days <= 0:
            raise ValueError("Scan horizon days must be positive")
        ref = now or datetime.now(timezone.utc)
        return cls(not_before=int((ref - timedelta(days=days)).timestamp()))

    @classmethod
    def parse(cls, raw: str, *, now: datetime | None = None) -> "ScanHorizon":
        """Parse 'all', '<N>d' or an ISO date 'YYYY-MM-DD'."""
        s = (raw or "").strip().lower()
        if s == "all":
            return cls.unbounded()
        m = _DAYS_RE.match(s)
        if m:
            return cls.last_days(int(m.group(1)), now=now)
        try:
            d = date.fromisoformat(s)
        except ValueError as e:
            raise ValueError(f"Invalid scan horizon {raw!r}: use 'all', '<N>d' or 'YYYY-MM-DD'") from e
        return cls(not_before=int(datetime(d.year, d.month, d.day, tzinfo=timezone.utc).timestamp()))

    def excludes(self, block_time: int | None) -> bool:
        if self.not_before is None or block_time is None:
            return False
        return block_time < self.not_before
