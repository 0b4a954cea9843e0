"""
Tests for SignaturePager stop conditions and cursor handling.
"""

from __future__ import annotations

from wallet_ledger.core.retry import RetryPolicy
from wallet_ledger.ledger import FetchCursor, ScanHorizon
from wallet_ledger.solana_listener import RunBudget, SignaturePager, StopReason

WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"


def _pager(rpc_client, clock, known=(), horizon=None):
    known = set(known)
    return SignaturePager(
        rpc_client,
        is_known=known.__contains__,
        horizon=horizon,
        retry=RetryPolicy(max_attempts=2, base_delay_sec=5.0, sleep=clock.sleep),
    )


def _fill(chain, n):
    for i in range(1, n + 1):
        chain.add(f"sig{i}", 1_000_000)


def test_full_page_has_more_and_cursor_is_oldest(chain, clock, rpc_client):
    _fill(chain, 5)
    page = _pager(rpc_client, clock).fetch_page(WALLET, FetchCursor(), 3)
    assert [s.signature for s in page.signatures] == ["sig1", "sig2", "sig3"]
    assert page.has_more is True
    assert page.stop_reason is None
    assert page.next_cursor.before_signature == "sig3"
    assert chain.method_calls("getSignaturesForAddress")[0][1] == {"limit": 3}


def test_before_is_passed_and_short_page_ends_history(chain, clock, rpc_client):
    _fill(chain, 5)
    page = _pager(rpc_client, clock).fetch_page(WALLET, FetchCursor(before_signature="sig3"), 3)
    assert [s.signature for s in page.signatures] == ["sig4", "sig5"]
    assert page.has_more is False
    assert page.stop_reason is StopReason.END_OF_HISTORY
    assert page.scan_complete
    assert chain.method_calls("getSignaturesForAddress")[0][1] == {"limit": 3, "before": "sig3"}


def test_empty_page_keeps_cursor(chain, clock, rpc_client):
    cursor = FetchCursor(before_signature="sigZ")
    chain.signatures.append({"signature": "sigZ", "slot": 1, "blockTime": 1, "err": None})
    page = _pager(rpc_client, clock).fetch_page(WALLET, cursor, 3)
    assert page.signatures == ()
    assert page.next_cursor == cursor
    assert page.stop_reason is StopReason.END_OF_HISTORY


def test_known_oldest_signature_stops(chain, clock, rpc_client):
    _fill(chain, 6)
    page = _pager(rpc_client, clock, known={"sig3"}).fetch_page(WALLET, FetchCursor(), 3)
    assert page.has_more is False
    assert page.stop_reason is StopReason.KNOWN_SIGNATURE
    assert len(page.signatures) == 3


def test_known_signature_ignored_during_rescan(chain, clock, rpc_client):
    _fill(chain, 6)
    page = _pager(rpc_client, clock, known={"sig3"}).fetch_page(WALLET, FetchCursor.full_rescan(), 3)
    assert page.has_more is True


def test_budget_exceeded_before_fetch_makes_no_request(chain, clock, rpc_client):
    _fill(chain, 5)
    budget = RunBudget(0.0, clock=clock)
    page = _pager(rpc_client, clock).fetch_page(WALLET, FetchCursor(), 3, budget)
    assert page.stop_reason is StopReason.BUDGET_EXCEEDED
    assert page.scan_complete is False
    assert chain.calls == []


def test_horizon_drops_old_signatures_and_stops(chain, clock, rpc_client):
    for i, bt in enumerate([1000, 900, 800, 700], start=1):
        chain.add(f"sig{i}", 1_000_000, block_time=bt)
    page = _pager(rpc_client, clock, horizon=ScanHorizon(not_before=850)).fetch_page(WALLET, FetchCursor(), 4)
    assert [s.signature for s in page.signatures] == ["sig1", "sig2"]
    assert page.stop_reason is StopReason.HORIZON_REACHED
    assert page.scan_complete


def test_failed_signatures_are_kept_with_err(chain, clock, rpc_client):
    chain.add("sig1", 1_000_000, sig_err={"InstructionError": [0, "Custom"]})
    page = _pager(rpc_client, clock).fetch_page(WALLET, FetchCursor(), 3)
    assert page.signatures[0].failed


def test_transient_page_error_is_retried(chain, clock, rpc_client):
    _fill(chain, 2)
    chain.status_next = [502]
    page = _pager(rpc_client, clock).fetch_page(WALLET, FetchCursor(), 3)
    assert [s.signature for s in page.signatures] == ["sig1", "sig2"]
    assert clock.sleeps == [5.0]
