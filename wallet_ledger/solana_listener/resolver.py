"""
Transaction resolver: signature -> classified Transaction via getTransaction.

Per-signature failures never escalate: exhausted transient errors and terminal
errors are logged and yield None so the caller skips the signature. Only the
limiter's cooldown (CooldownError), a 429 that outlives every retry
(RateLimitError) and a backoff that would outlast the run budget
(BudgetExceededError) propagate; the run must stop and keep its cursor.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from wallet_ledger.core.exceptions import (
    CooldownError,
    RateLimitError,
    TerminalRpcError,
    TransientNetworkError,
)
from wallet_ledger.core.retry import RetryPolicy
from wallet_ledger.ledger.models import LAMPORTS_PER_SOL, Transaction
from wallet_ledger.ledger_logging import get_logger, short
from wallet_ledger.solana_listener.models import SignatureInfo
from wallet_ledger.solana_listener.parser import classify, is_failed
from wallet_ledger.solana_listener.rpc import SolanaRpcClient

logger = get_logger(__name__)


@dataclass(frozen=True)
class Resolution:
    """Outcome for one signature: a transaction, a discard (failed on-chain), or a skip."""

    signature: str
    transaction: Transaction | None = None
    failed_on_chain: bool = False

    @property
    def skipped(self) -> bool:
        return self.transaction is None and not self.failed_on_chain


class TransactionResolver:
    """Fetches and classifies transactions for one tracked wallet."""

    def __init__(
        self,
        client: SolanaRpcClient,
        wallet: str,
        *,
        retry: RetryPolicy | None = None,
        unit_scale: int = LAMPORTS_PER_SOL,
    ) -> None:
        self._client = client
        self._wallet = wallet
        self._retry = retry or RetryPolicy(
            max_attempts=6,
            base_delay_sec=10.0,
            max_delay_sec=120.0,
            retry_on=(TransientNetworkError, RateLimitError),
        )
        self._unit_scale = unit_scale

    def resolve(
        self, signature: str, *, remaining: Callable[[], float | None] | None = None
    ) -> Transaction | None:
        """Return the classified transaction, or None to skip (failed on-chain or unresolvable)."""
        return self._resolve(signature, remaining).transaction

    def resolve_info(
        self, info: SignatureInfo, *, remaining: Callable[[], float | None] | None = None
    ) -> Resolution:
        """Like resolve(), but short-circuits signatures already marked failed in the page."""
        if info.failed:
            logger.info("transaction_failed_on_chain", signature=short(info.signature), source="signature_list")
            return Resolution(signature=info.signature, failed_on_chain=True)
        return self._resolve(info.signature, remaining)

    def _resolve(self, signature: str, remaining: Callable[[], float | None] | None = None) -> Resolution:
        try:
            raw = self._retry.call(
                lambda: self._client.get_transaction(signature),
                operation="get_transaction",
                remaining=remaining,
            )
        except CooldownError:
            raise
        except RateLimitError:
            logger.error("resolver_rate_limited", signature=short(signature))
            raise
        except TransientNetworkError as e:
            logger.warning("resolver_give_up", signature=short(signature), error=str(e))
            return Resolution(signature=signature)
        except TerminalRpcError as e:
            logger.warning("resolver_terminal_error", signature=short(signature), error=str(e))
            return Resolution(signature=signature)

        if is_failed(raw):
            logger.info("transaction_failed_on_chain", signature=short(signature), source="meta")
            return Resolution(signature=signature, failed_on_chain=True)
        try:
            tx = classify(raw, self._wallet, signature, unit_scale=self._unit_scale)
        except TerminalRpcError as e:
            logger.warning("resolver_unparseable", signature=short(signature), error=str(e))
            return Resolution(signature=signature)
        logger.debug(
            "transaction_resolved",
            signature=short(signature),
            kind=tx.kind.value,
            amount=str(tx.amount),
        )
        return Resolution(signature=signature, transaction=tx)
