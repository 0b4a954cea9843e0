"""
Solana JSON-RPC client for the two methods the ledger consumes.

Every call goes through the RateLimiter. HTTP and JSON-RPC failures are mapped
onto the provider error taxonomy so callers can decide retry vs. skip:
transport errors, timeouts and 5xx are transient; 429 is a rate limit; RPC
error objects, other 4xx, malformed bodies and null results are terminal.
"""

from __future__ import annotations

import itertools
from typing import Any

import httpx

from wallet_ledger.core.exceptions import (
    RateLimitError,
    TerminalRpcError,
    TransientNetworkError,
)
from wallet_ledger.ledger_logging import get_logger, short
from wallet_ledger.solana_listener.rate_limiter import RateLimiter

logger = get_logger(__name__)

_request_ids = itertools.count(1)


def _build_rpc_body(method: str, params: list[Any]) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": next(_request_ids),
        "method": method,
        "params": params,
    }


class SolanaRpcClient:
    """
    Synchronous JSON-RPC client (httpx) bound to one endpoint and one RateLimiter.

    The httpx.Client may be injected (tests pass one built on httpx.MockTransport);
    otherwise one is created with the configured timeout and owned by this object.
    """

    def __init__(
        self,
        rpc_url: str,
        limiter: RateLimiter,
        *,
        auth_header: str | None = None,
        timeout_sec: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        self._rpc_url = rpc_url.strip()
        self._limiter = limiter
        headers = {"Content-Type": "application/json"}
        if auth_header:
            headers["Authorization"] = auth_header
        self._headers = headers
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout_sec))

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "SolanaRpcClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _post(self, method: str, params: list[Any]) -> Any:
        """One HTTP round trip; returns the JSON-RPC result or raises a ProviderError."""
        body = _build_rpc_body(method, params)
        try:
            resp = self._client.post(self._rpc_url, json=body, headers=self._headers)
        except httpx.TimeoutException as e:
            raise TransientNetworkError(f"{method} timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientNetworkError(f"{method} transport error: {e}") from e

        status = resp.status_code
        if status == 429:
            raise RateLimitError(f"{method} rate limited (HTTP 429)", status_code=status)
        if status >= 500:
            raise TransientNetworkError(f"{method} HTTP {status}", status_code=status)
        if status >= 400:
            raise TerminalRpcError(f"{method} HTTP {status}", status_code=status)

        try:
            data = resp.json()
        except ValueError as e:
            raise TerminalRpcError(f"{method} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise TerminalRpcError(f"{method} returned a malformed body")
        if data.get("error") is not None:
            err = data["error"]
            if isinstance(err, dict):
                if err.get("code") == 429:
                    raise RateLimitError(f"{method} rate limited: {err.get('message')}", status_code=429)
                raise TerminalRpcError(
                    f"Solana RPC error: {err.get('message', err)} (code={err.get('code')})"
                )
            raise TerminalRpcError(f"Solana RPC error: {err}")
        result = data.get("result")
        if result is None:
            raise TerminalRpcError(f"{method} returned no result")
        return result

    def call(self, method: str, params: list[Any]) -> Any:
        return self._limiter.submit(lambda: self._post(method, params))

    def get_signatures_for_address(
        self,
        address: str,
        *,
        limit: int,
        before: str | None = None,
    ) -> list[dict[str, Any]]:
        """Newest-first signature items strictly older than before (when given)."""
        opts: dict[str, Any] = {"limit": limit}
        if before is not None:
            opts["before"] = before
        result = self.call("getSignaturesForAddress", [address, opts])
        if not isinstance(result, list):
            raise TerminalRpcError("getSignaturesForAddress result is not a list")
        logger.debug(
            "signatures_fetched",
            wallet_id=short(address),
            before=short(before),
            signature_count=len(result),
        )
        return result

    def get_transaction(self, signature: str) -> dict[str, Any]:
        result = self.call(
            "getTransaction",
            [signature, {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0}],
        )
        if not isinstance(result, dict):
            raise TerminalRpcError(f"getTransaction {short(signature)} result is not an object")
        return result
