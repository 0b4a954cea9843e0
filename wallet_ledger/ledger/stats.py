"""
Statistics derived from the ledger.

compute() is a pure single pass over Ledger.all(); it keeps no state between
calls, so any cached Stats may be discarded and recomputed at any time.
Decimal sums make the result independent of iteration order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from wallet_ledger.ledger.ledger import Ledger
from wallet_ledger.ledger.models import (
    ReceivedTransaction,
    SentTransaction,
    Transaction,
    TransactionKind,
)

ZERO = Decimal(0)


@dataclass
class KindTotals:
    count: int = 0
    total_amount: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "total_amount": str(self.total_amount)}


@dataclass
class TokenTotals:
    count: int = 0
    total_amount: Decimal = ZERO
    sent_count: int = 0
    sent_total: Decimal = ZERO
    received_count: int = 0
    received_total: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "total_amount": str(self.total_amount),
            "sent_count": self.sent_count,
            "sent_total": str(self.sent_total),
            "received_count": self.received_count,
            "received_total": str(self.received_total),
        }


@dataclass
class CounterpartyTotals:
    """Totals from the tracked wallet's point of view: sent_* went to this address."""

    sent_count: int = 0
    sent_total: Decimal = ZERO
    received_count: int = 0
    received_total: Decimal = ZERO

    def to_dict(self) -> dict[str, Any]:
        return {
            "sent_count": self.sent_count,
            "sent_total": str(self.sent_total),
            "received_count": self.received_count,
            "received_total": str(self.received_total),
        }


@dataclass
class Stats:
    wallet: str
    total_transactions: int = 0
    by_kind: dict[str, KindTotals] = field(default_factory=dict)
    by_token: dict[str, TokenTotals] = field(default_factory=dict)
    counterparties: dict[str, CounterpartyTotals] = field(default_factory=dict)
    total_fees: Decimal = ZERO
    first_block_time: int | None = None
    last_block_time: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "wallet": self.wallet,
            "total_transactions": self.total_transactions,
            "by_kind": {k: v.to_dict() for k, v in sorted(self.by_kind.items())},
            "by_token": {k: v.to_dict() for k, v in sorted(self.by_token.items())},
            "counterparties": {k: v.to_dict() for k, v in sorted(self.counterparties.items())},
            "total_fees": str(self.total_fees),
            "first_block_time": self.first_block_time,
            "last_block_time": self.last_block_time,
        }


@dataclass(frozen=True)
class TokenSummary:
    """Inflow/outflow summary for one token (SOL by default)."""

    token: str
    received_total: Decimal
    sent_total: Decimal
    received_count: int
    sent_count: int

    @property
    def balance(self) -> Decimal:
        return self.received_total - self.sent_total

    def to_dict(self) -> dict[str, Any]:
        return {
            "token": self.token,
            "received_total": str(self.received_total),
            "sent_total": str(self.sent_total),
            "balance": str(self.balance),
            "received_count": self.received_count,
            "sent_count": self.sent_count,
        }


def _add(stats: Stats, tx: Transaction) -> None:
    stats.total_transactions += 1
    stats.total_fees += tx.fee
    if tx.block_time is not None:
        if stats.first_block_time is None or tx.block_time < stats.first_block_time:
            stats.first_block_time = tx.block_time
        if stats.last_block_time is None or tx.block_time > stats.last_block_time:
            stats.last_block_time = tx.block_time

    kind_totals = stats.by_kind.setdefault(tx.kind.value, KindTotals())
    kind_totals.count += 1
    kind_totals.total_amount += tx.amount

    if not isinstance(tx, (SentTransaction, ReceivedTransaction)):
        return
    token_totals = stats.by_token.setdefault(tx.token, TokenTotals())
    token_totals.count += 1
    token_totals.total_amount += tx.amount
    cp = stats.counterparties.setdefault(tx.counterparty, CounterpartyTotals()) if tx.counterparty else None
    if isinstance(tx, SentTransaction):
        token_totals.sent_count += 1
        token_totals.sent_total += tx.amount
        if cp is not None:
            cp.sent_count += 1
            cp.sent_total += tx.amount
    else:
        token_totals.received_count += 1
        token_totals.received_total += tx.amount
        if cp is not None:
            cp.received_count += 1
            cp.received_total += tx.amount


class StatsAggregator:
    """Pure derived view over a Ledger."""

    def compute(self, ledger: Ledger) -> Stats:
        stats = Stats(wallet=ledger.wallet)
        for kind in TransactionKind:
            stats.by_kind[kind.value] = KindTotals()
        for tx in ledger.all():
            _add(stats, tx)
        return stats

    def token_summary(self, ledger: Ledger, token: str = "SOL") -> TokenSummary:
        """Totals for one token, matched by symbol or mint address."""
        received_total = sent_total = ZERO
        received_count = sent_count = 0
        for tx in ledger.all():
            if not isinstance(tx, (SentTransaction, ReceivedTransaction)):
                continue
            if token not in (tx.token, tx.token_mint):
                continue
            if isinstance(tx, SentTransaction):
                sent_total += tx.amount
                sent_count += 1
            else:
                received_total += tx.amount
                received_count += 1
        return TokenSummary(
            token=token,
            received_total=received_total,
            sent_total=sent_total,
            received_count=received_count,
            sent_count=sent_count,
        )
