"""
Data models for signature paging.

SignatureInfo is one item of a getSignaturesForAddress page; SignaturePage is
the pager's result with the cursor to resume from and why paging stopped.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from wallet_ledger.core.exceptions import TerminalRpcError
from wallet_ledger.ledger.models import FetchCursor


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError(f"expected an integer, got {value!r}")
    return int(value)


@dataclass(frozen=True)
class SignatureInfo:
    """
    Normalized transaction signature info from getSignaturesForAddress.

    Mirrors Solana RPC response fields; the unit of work handed from the
    pager to the resolver.
    """

    signature: str
    slot: int | None
    err: Any  # None if success; dict/object from RPC if failed
    block_time: int | None  # Unix timestamp; None if not available
    memo: str | None = None
    confirmation_status: str | None = None  # processed | confirmed | finalized

    @property
    def failed(self) -> bool:
        return self.err is not None

    @classmethod
    def from_rpc_item(cls, item: Any) -> "SignatureInfo":
        """Build from a single getSignaturesForAddress result item."""
        if not isinstance(item, dict) or not isinstance(item.get("signature"), str):
            raise TerminalRpcError(f"Malformed signature item: {item!r}")
        try:
            slot = _optional_int(item.get("slot"))
            block_time = _optional_int(item.get("blockTime"))
        except (TypeError, ValueError) as e:
            raise TerminalRpcError(f"Malformed slot/blockTime for {item['signature']}: {e}") from e
        return cls(
            signature=item["signature"],
            slot=slot,
            err=item.get("err"),
            block_time=block_time,
            memo=item.get("memo"),
            confirmation_status=item.get("confirmationStatus"),
        )


class StopReason(str, Enum):
    """Why a page reports has_more=False (or None while more history remains)."""

    END_OF_HISTORY = "end_of_history"
    KNOWN_SIGNATURE = "known_signature"
    BUDGET_EXCEEDED = "budget_exceeded"
    HORIZON_REACHED = "horizon_reached"


@dataclass(frozen=True)
class SignaturePage:
    """
    One backward page, newest first.

    next_cursor: where the next page resumes (oldest signature of this page).
    has_more: False when the scan for this run should stop; stop_reason says why.
    """

    signatures: tuple[SignatureInfo, ...]
    next_cursor: FetchCursor
    has_more: bool
    stop_reason: StopReason | None = None

    @property
    def scan_complete(self) -> bool:
        """True when history (or the horizon) is exhausted, not merely paused."""
        return self.stop_reason in (
            StopReason.END_OF_HISTORY,
            StopReason.KNOWN_SIGNATURE,
            StopReason.HORIZON_REACHED,
        )
