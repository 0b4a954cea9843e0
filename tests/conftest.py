"""
Pytest fixtures for wallet ledger tests.

The Solana provider is replaced by a FakeChain served through httpx.MockTransport;
time is a FakeClock shared by the rate limiter, retry policies and run budget,
so nothing in the suite actually sleeps.
"""

from __future__ import annotations

import json
from typing import Any, Callable

import httpx
import pytest

WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
OTHER = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
FEE_PAYER = "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T"
SYSTEM_PROGRAM = "11111111111111111111111111111111"
RPC_URL = "https://rpc.test.invalid"
BASE_BLOCK_TIME = 1_700_000_000


class FakeClock:
    """Monotonic clock whose sleep() advances time instead of blocking."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def build_transfer(
    signature: str,
    delta_lamports: int,
    *,
    wallet: str = WALLET,
    other: str = OTHER,
    block_time: int | None = BASE_BLOCK_TIME,
    slot: int = 1,
    fee: int = 5000,
    failed: bool = False,
    parsed: bool = True,
) -> dict[str, Any]:
    """
    getTransaction payload where wallet's balance moves by delta_lamports and
    other moves the opposite way. A separate fee payer (after both) pays the fee.
    """
    keys = [other, wallet, FEE_PAYER, SYSTEM_PROGRAM]
    pre = [50_000_000_000, 50_000_000_000, 1_000_000_000, 1]
    post = [pre[0] - delta_lamports, pre[1] + delta_lamports, pre[2] - fee, 1]
    account_keys: list[Any] = (
        [{"pubkey": k, "signer": k == FEE_PAYER, "writable": k != SYSTEM_PROGRAM} for k in keys]
        if parsed
        else keys
    )
    return {
        "slot": slot,
        "blockTime": block_time,
        "meta": {
            "err": {"InstructionError": [0, "Custom"]} if failed else None,
            "fee": fee,
            "preBalances": pre,
            "postBalances": post,
        },
        "transaction": {
            "signatures": [signature],
            "message": {"accountKeys": account_keys, "instructions": []},
        },
    }


class FakeChain:
    """
    In-memory JSON-RPC provider for one wallet.

    signatures: newest first, as getSignaturesForAddress returns them.
    rate_limit_next: the next N requests of any method answer HTTP 429.
    status_next: HTTP statuses answered, in order, by the next requests.
    http_errors: signature -> status code for getTransaction.
    tick: seconds the shared clock advances per request.
    """

    def __init__(self, clock: FakeClock, *, tick: float = 0.0) -> None:
        self.clock = clock
        self.tick = tick
        self.signatures: list[dict[str, Any]] = []
        self.transactions: dict[str, dict[str, Any]] = {}
        self.rate_limit_next = 0
        self.status_next: list[int] = []
        self.http_errors: dict[str, int] = {}
        self.calls: list[tuple[str, list[Any]]] = []

    def add(self, signature: str, delta_lamports: int, *, sig_err: Any = None, **kwargs: Any) -> None:
        """Append an older signature (the chain is built newest first)."""
        block_time = kwargs.setdefault("block_time", BASE_BLOCK_TIME - len(self.signatures) * 60)
        slot = kwargs.setdefault("slot", 10_000 - len(self.signatures))
        self.signatures.append(
            {
                "signature": signature,
                "slot": slot,
                "blockTime": block_time,
                "err": sig_err,
                "memo": None,
                "confirmationStatus": "finalized",
            }
        )
        self.transactions[signature] = build_transfer(signature, delta_lamports, **kwargs)

    def method_calls(self, method: str) -> list[list[Any]]:
        return [params for m, params in self.calls if m == method]

    def resolved_signatures(self) -> list[str]:
        return [params[0] for params in self.method_calls("getTransaction")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        self.calls.append((method, params))
        self.clock.advance(self.tick)
        if self.rate_limit_next > 0:
            self.rate_limit_next -= 1
            return httpx.Response(429, json={"error": "Too Many Requests"})
        if self.status_next:
            return httpx.Response(self.status_next.pop(0), text="provider error")
        if method == "getSignaturesForAddress":
            opts = params[1] if len(params) > 1 else {}
            start = 0
            before = opts.get("before")
            if before is not None:
                idx = [s["signature"] for s in self.signatures].index(before)
                start = idx + 1
            result: Any = self.signatures[start : start + int(opts.get("limit", 1000))]
        elif method == "getTransaction":
            status = self.http_errors.get(params[0])
            if status is not None:
                return httpx.Response(status, text="provider error")
            result = self.transactions.get(params[0])
        else:
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": "Method not found"}}
            )
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def chain(clock) -> FakeChain:
    return FakeChain(clock)


@pytest.fixture
def transfer() -> Callable[..., dict[str, Any]]:
    """The build_transfer helper, for tests that need a raw getTransaction payload."""
    return build_transfer


@pytest.fixture
def limiter(clock):
    from wallet_ledger.solana_listener import RateLimiter

    return RateLimiter(0, error_penalty_sec=0.0, cooldown_base_sec=15.0, cooldown_max_sec=600.0,
                       clock=clock, sleep=clock.sleep)


@pytest.fixture
def rpc_client(chain, limiter):
    from wallet_ledger.solana_listener import SolanaRpcClient

    http = httpx.Client(transport=httpx.MockTransport(chain.handler))
    client = SolanaRpcClient(RPC_URL, limiter, client=http)
    yield client
    http.close()


@pytest.fixture
def make_service(chain, clock, limiter, rpc_client):
    """
    Factory for an IngestionRun over the FakeChain.

    Keyword overrides: store, notifier, context, page_size, time_budget_sec, horizon, resolver_attempts.
    """
    from wallet_ledger.core.exceptions import RateLimitError, TransientNetworkError
    from wallet_ledger.core.retry import RetryPolicy
    from wallet_ledger.database import MemoryLedgerStore
    from wallet_ledger.ingestion import IngestionRun
    from wallet_ledger.solana_listener import SignaturePager, TransactionResolver

    def _make(**overrides: Any) -> IngestionRun:
        resolver = TransactionResolver(
            rpc_client,
            WALLET,
            retry=RetryPolicy(
                max_attempts=overrides.pop("resolver_attempts", 2),
                base_delay_sec=10.0,
                max_delay_sec=120.0,
                retry_on=(TransientNetworkError, RateLimitError),
                sleep=clock.sleep,
            ),
        )
        horizon = overrides.pop("horizon", None)
        pager_retry = RetryPolicy(max_attempts=2, base_delay_sec=5.0, sleep=clock.sleep)
        return IngestionRun(
            WALLET,
            limiter=limiter,
            pager_factory=lambda ledger: SignaturePager(
                rpc_client, is_known=ledger.has, horizon=horizon, retry=pager_retry
            ),
            resolver=resolver,
            store=overrides.pop("store", None) or MemoryLedgerStore(),
            notifier=overrides.pop("notifier", None),
            context=overrides.pop("context", None),
            page_size=overrides.pop("page_size", 3),
            time_budget_sec=overrides.pop("time_budget_sec", None),
            clock=clock,
        )

    return _make
