"""
Solana transaction parser: raw getTransaction payload to a classified Transaction.

Classification is relative to the tracked wallet and uses native balance
deltas only (preBalances/postBalances):

- delta > 0  -> Received; sender = first other account whose balance decreased.
- delta < 0  -> Sent; receiver = first other account whose balance increased.
- delta == 0 or wallet not in the account list -> Unknown.

Amounts and fees are divided by unit_scale (lamports per SOL).
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from wallet_ledger.core.exceptions import TerminalRpcError
from wallet_ledger.ledger.models import (
    LAMPORTS_PER_SOL,
    NATIVE_SOL_MINT,
    NATIVE_TOKEN,
    ReceivedTransaction,
    SentTransaction,
    Transaction,
    UnknownTransaction,
)


def _get_account_keys(
    message: dict[str, Any],
    meta: dict[str, Any] | None = None,
) -> list[str]:
    """
    Resolve accountKeys to a list of base58 strings (handles json vs jsonParsed).
    For versioned transactions, appends meta.loadedAddresses (writable + readonly).
    """
    keys = message.get("accountKeys") or []
    out: list[str] = []
    for k in keys:
        if isinstance(k, str):
            out.append(k)
        elif isinstance(k, dict):
            out.append(k.get("pubkey", ""))
    loaded = (meta or {}).get("loadedAddresses") or {}
    for role in ("writable", "readonly"):
        for addr in loaded.get(role) or []:
            out.append(addr if isinstance(addr, str) else "")
    return out


def _get_message_and_meta(raw: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return (transaction.message, meta); raise TerminalRpcError if either is missing."""
    tx_obj = raw.get("transaction")
    message = tx_obj.get("message") if isinstance(tx_obj, dict) else None
    meta = raw.get("meta")
    if not isinstance(message, dict) or not isinstance(meta, dict):
        raise TerminalRpcError("getTransaction payload has no message/meta")
    return message, meta


def is_failed(raw: dict[str, Any]) -> bool:
    """True when the transaction executed but failed on-chain (meta.err set)."""
    meta = raw.get("meta")
    return isinstance(meta, dict) and meta.get("err") is not None


def _as_int(value: Any, name: str, *, optional: bool = False) -> int | None:
    """int(value), or TerminalRpcError when the provider sent something else."""
    if value is None and optional:
        return None
    if isinstance(value, bool):
        raise TerminalRpcError(f"{name} is not an integer: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise TerminalRpcError(f"{name} is not an integer: {value!r}") from e


def _first_index(values: list[int], skip: int, predicate: Any) -> int | None:
    for j, v in enumerate(values):
        if j != skip and predicate(v):
            return j
    return None


def classify(
    raw: dict[str, Any],
    wallet: str,
    signature: str,
    *,
    unit_scale: int = LAMPORTS_PER_SOL,
) -> Transaction:
    """
    Classify a successful getTransaction result relative to wallet.

    Raises TerminalRpcError when the payload lacks message/meta, a balance,
    fee, blockTime or slot is not an integer, or the balance arrays do not
    line up with the account keys.
    """
    message, meta = _get_message_and_meta(raw)
    account_keys = _get_account_keys(message, meta)
    raw_pre, raw_post = meta.get("preBalances") or [], meta.get("postBalances") or []
    if not isinstance(raw_pre, list) or not isinstance(raw_post, list):
        raise TerminalRpcError("preBalances/postBalances must be lists")
    pre = [_as_int(v, "preBalances") for v in raw_pre]
    post = [_as_int(v, "postBalances") for v in raw_post]
    fee_lamports = _as_int(meta.get("fee") or 0, "fee")
    common: dict[str, Any] = {
        "signature": signature,
        "wallet": wallet,
        "block_time": _as_int(raw.get("blockTime"), "blockTime", optional=True),
        "slot": _as_int(raw.get("slot"), "slot", optional=True),
        "fee": Decimal(fee_lamports) / Decimal(unit_scale),
    }

    try:
        i = account_keys.index(wallet)
    except ValueError:
        return UnknownTransaction(**common)
    if i >= len(pre) or i >= len(post) or len(pre) != len(post):
        raise TerminalRpcError(
            f"Balance arrays ({len(pre)}/{len(post)}) do not cover account index {i}"
        )

    delta = post[i] - pre[i]
    if delta == 0:
        return UnknownTransaction(**common)

    deltas = [b - a for a, b in zip(pre, post)]
    amount = Decimal(abs(delta)) / Decimal(unit_scale)
    if delta > 0:
        j = _first_index(deltas, i, lambda d: d < 0)
        sender = account_keys[j] if j is not None and j < len(account_keys) else None
        return ReceivedTransaction(
            **common,
            amount=amount,
            token=NATIVE_TOKEN,
            token_mint=NATIVE_SOL_MINT,
            sender=sender,
        )
    j = _first_index(deltas, i, lambda d: d > 0)
    receiver = account_keys[j] if j is not None and j < len(account_keys) else None
    return SentTransaction(
        **common,
        amount=amount,
        token=NATIVE_TOKEN,
        token_mint=NATIVE_SOL_MINT,
        receiver=receiver,
    )
