"""
Tests for IngestionRun: resumability, convergence, cooldown, cancellation and
persistence failures. The provider is the FakeChain from conftest.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import MagicMock

from wallet_ledger.core.exceptions import DataIntegrityError
from wallet_ledger.database import JsonFileLedgerStore, LedgerStore, MemoryLedgerStore
from wallet_ledger.ingestion import RunContext, RunOptions, RunResult, RunState
from wallet_ledger.ledger import ScanHorizon

WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
SCALE = 1_000_000_000


def _fill(chain, n, start=1):
    for i in range(start, start + n):
        chain.add(f"sig{i}", (i % 2 * 2 - 1) * i * SCALE // 10)


def test_two_run_resumability(chain, clock, make_service):
    """Run 1 spends its budget after one page (Suspended); run 2 resolves only the rest (Done)."""
    chain.tick = 1.0
    _fill(chain, 5)
    store = MemoryLedgerStore()
    service = make_service(store=store, page_size=3, time_budget_sec=4.0)

    first = service.run()
    assert first.result is RunResult.SUSPENDED
    assert first.stop_reason == "budget_exceeded"
    assert first.cursor.before_signature == "sig3"
    assert first.cursor.scan_complete is False
    assert chain.resolved_signatures() == ["sig1", "sig2", "sig3"]
    assert store.load().cursor.before_signature == "sig3"
    assert store.save_count == 2

    chain.calls.clear()
    second = service.run()
    assert second.result is RunResult.DONE
    assert second.cursor.scan_complete is True
    assert chain.resolved_signatures() == ["sig4", "sig5"]
    assert chain.method_calls("getSignaturesForAddress")[0][1]["before"] == "sig3"
    assert len(service.ledger) == 5


def test_resume_from_persisted_cursor_in_new_process(chain, clock, make_service):
    chain.tick = 1.0
    _fill(chain, 5)
    store = MemoryLedgerStore()
    make_service(store=store, page_size=3, time_budget_sec=4.0).run()

    chain.calls.clear()
    fresh = make_service(store=store, page_size=3, time_budget_sec=None)
    report = fresh.run()
    assert report.result is RunResult.DONE
    assert chain.resolved_signatures() == ["sig4", "sig5"]
    assert len(fresh.ledger) == 5


def test_converges_then_reports_done_with_nothing_new(chain, make_service):
    _fill(chain, 7)
    service = make_service(page_size=3)
    report = service.run(RunOptions(time_budget=None))
    assert report.result is RunResult.DONE
    assert report.new_transactions == 7
    assert report.pages == 3

    chain.calls.clear()
    again = service.run()
    assert again.result is RunResult.DONE
    assert again.new_transactions == 0
    assert again.stop_reason == "known_signature"
    assert chain.resolved_signatures() == []
    assert len(chain.method_calls("getSignaturesForAddress")) == 1


def test_cursor_strictly_advances_across_suspended_runs(chain, clock, make_service):
    chain.tick = 1.0
    _fill(chain, 9)
    service = make_service(page_size=2, time_budget_sec=3.0)
    seen = []
    for _ in range(10):
        report = service.run()
        seen.append(report.cursor.before_signature)
        if report.result is RunResult.DONE:
            break
    assert report.result is RunResult.DONE
    indexes = [int(s[3:]) for s in seen]
    assert indexes == sorted(indexes)
    assert len(service.ledger) == 9


def test_top_up_picks_up_new_signatures(chain, transfer, make_service):
    _fill(chain, 4)
    service = make_service(page_size=3)
    assert service.run().result is RunResult.DONE

    chain.signatures.insert(0, {"signature": "fresh", "slot": 20_000, "blockTime": 1_800_000_000, "err": None})
    chain.transactions["fresh"] = transfer("fresh", 5 * SCALE, block_time=1_800_000_000)
    chain.calls.clear()
    report = service.run()
    assert report.result is RunResult.DONE
    assert report.new_transactions == 1
    assert chain.resolved_signatures() == ["fresh"]
    assert chain.method_calls("getSignaturesForAddress")[0][1] == {"limit": 3}
    assert service.ledger.get("fresh").amount == Decimal(5)


def test_already_running_has_no_side_effects(chain, make_service):
    _fill(chain, 3)
    context = RunContext()
    store = MagicMock(spec=LedgerStore)
    service = make_service(context=context, store=store)
    assert context.try_begin()
    report = service.run()
    assert report.result is RunResult.ALREADY_RUNNING
    assert chain.calls == []
    store.load.assert_not_called()
    store.save.assert_not_called()
    context.end()


def test_cooldown_mid_page_keeps_cursor_and_resumes(chain, clock, make_service):
    _fill(chain, 5)
    chain.http_errors["sig2"] = 429
    store = MemoryLedgerStore()
    service = make_service(store=store, page_size=3, resolver_attempts=1)

    report = service.run()
    assert report.result is RunResult.COOLDOWN
    assert service.state is RunState.COOLDOWN
    assert report.cooldown_remaining_sec == 30.0
    assert report.cursor.before_signature is None
    assert service.ledger.has("sig1")
    assert store.load().transactions[0].signature == "sig1"

    chain.calls.clear()
    blocked = service.run()
    assert blocked.result is RunResult.COOLDOWN
    assert chain.calls == []

    del chain.http_errors["sig2"]
    clock.advance(30.0)
    done = service.run()
    assert done.result is RunResult.DONE
    assert chain.resolved_signatures() == ["sig2", "sig3", "sig4", "sig5"]
    assert len(service.ledger) == 5


def test_rate_limited_page_reports_cooldown(chain, make_service):
    _fill(chain, 2)
    chain.rate_limit_next = 1
    report = make_service().run()
    assert report.result is RunResult.COOLDOWN


def test_cancel_suspends_after_current_page(chain, make_service):
    _fill(chain, 6)
    holder = {}

    class CancellingStore(MemoryLedgerStore):
        def save(self, snapshot):
            ok = super().save(snapshot)
            holder["service"].cancel()
            return ok

    service = make_service(store=CancellingStore(), page_size=3)
    holder["service"] = service
    report = service.run()
    assert report.result is RunResult.SUSPENDED
    assert report.stop_reason == "cancelled"
    assert report.cursor.before_signature == "sig3"
    assert report.pages == 1


def test_corrupt_store_reports_error_without_requests(chain, tmp_path, make_service):
    _fill(chain, 2)
    path = tmp_path / "ledger.json"
    path.write_text("{not json", encoding="utf-8")
    service = make_service(store=JsonFileLedgerStore(path))
    report = service.run()
    assert report.result is RunResult.ERROR
    assert "not valid JSON" in report.error
    assert chain.calls == []
    assert path.read_text(encoding="utf-8") == "{not json"


def test_save_failures_are_not_fatal(chain, make_service):
    _fill(chain, 4)
    store = MagicMock(spec=LedgerStore)
    store.load.return_value = None
    store.save.side_effect = [False, OSError("disk full"), True, True]
    report = make_service(store=store, page_size=3).run()
    assert report.result is RunResult.DONE
    assert report.new_transactions == 4
    assert store.save.call_count == 2


def test_failed_and_unresolvable_signatures(chain, make_service):
    chain.add("ok1", SCALE)
    chain.add("failed_sig", SCALE, sig_err={"InstructionError": [0, "Custom"]})
    chain.add("failed_meta", SCALE, failed=True)
    chain.add("broken", SCALE)
    chain.http_errors["broken"] = 400
    service = make_service(page_size=10)

    report = service.run()
    assert report.result is RunResult.DONE
    assert report.new_transactions == 1
    assert report.discarded == 2
    assert report.skipped == 1
    assert "failed_sig" not in chain.resolved_signatures()
    assert service.ledger.has("failed_meta")
    assert not service.ledger.has("broken")
    assert service.get_stats().total_transactions == 1


def test_full_rescan_fills_gaps_without_refetching_known(chain, make_service):
    _fill(chain, 5)
    chain.http_errors["sig4"] = 400
    service = make_service(page_size=2)
    assert service.run().result is RunResult.DONE
    assert not service.ledger.has("sig4")

    del chain.http_errors["sig4"]
    chain.calls.clear()
    report = service.run(RunOptions(full_rescan=True))
    assert report.result is RunResult.DONE
    assert chain.resolved_signatures() == ["sig4"]
    assert report.cursor.scan_complete
    assert report.cursor.rescan is False
    assert len(service.ledger) == 5


def test_page_error_reports_error(chain, make_service):
    _fill(chain, 2)
    chain.status_next = [400]
    report = make_service().run()
    assert report.result is RunResult.ERROR
    assert report.error


def test_horizon_completes_scan(chain, make_service):
    for i, bt in enumerate([1000, 900, 800, 700, 600], start=1):
        chain.add(f"sig{i}", SCALE, block_time=bt)
    service = make_service(page_size=2, horizon=ScanHorizon(not_before=750))
    report = service.run()
    assert report.result is RunResult.DONE
    assert report.stop_reason == "horizon_reached"
    assert sorted(t.signature for t in service.ledger.all()) == ["sig1", "sig2", "sig3"]


def test_notifier_called_for_new_transactions_and_failures_ignored(chain, make_service):
    _fill(chain, 2)
    notifier = MagicMock()
    notifier.notify.side_effect = RuntimeError("telegram down")
    report = make_service(notifier=notifier).run()
    assert report.result is RunResult.DONE
    event, message = notifier.notify.call_args.args
    assert event == "new_transactions"
    assert "2 new" in message


def test_stats_cached_until_ledger_changes(chain, make_service):
    _fill(chain, 2)
    service = make_service()
    empty = service.get_stats()
    assert service.get_stats() is empty
    service.run()
    stats = service.get_stats()
    assert stats is not empty
    assert stats.total_transactions == 2


def test_load_integrity_error_from_store(chain, make_service):
    store = MagicMock(spec=LedgerStore)
    store.load.side_effect = DataIntegrityError("bad snapshot")
    report = make_service(store=store).run()
    assert report.result is RunResult.ERROR
    store.save.assert_not_called()


def test_malformed_transaction_payload_is_skipped_not_fatal(chain, make_service):
    chain.add("good1", SCALE)
    chain.add("bad", SCALE)
    chain.add("good2", -SCALE)
    chain.transactions["bad"]["meta"]["preBalances"][1] = None
    service = make_service(page_size=3)

    report = service.run()
    assert report.result is RunResult.DONE
    assert report.new_transactions == 2
    assert report.skipped == 1
    assert service.ledger.has("good2")
    assert not service.ledger.has("bad")
    assert service.run().result is RunResult.DONE


def test_retry_backoff_never_outlasts_run_budget(chain, clock, make_service):
    """10s and 20s backoffs fit in 50s; the 40s one would not, so the run suspends at 30s."""
    chain.add("sig1", SCALE)
    chain.http_errors["sig1"] = 503
    store = MemoryLedgerStore()
    service = make_service(store=store, time_budget_sec=50.0, resolver_attempts=6)

    report = service.run()
    assert report.result is RunResult.SUSPENDED
    assert report.stop_reason == "budget_exceeded"
    assert report.duration_sec <= 50.0
    assert clock.sleeps == [10.0, 20.0]
    assert report.cursor.before_signature is None
    assert not service.ledger.has("sig1")

    del chain.http_errors["sig1"]
    chain.calls.clear()
    second = service.run()
    assert second.result is RunResult.DONE
    assert chain.resolved_signatures() == ["sig1"]
    assert service.ledger.has("sig1")


def test_string_block_time_is_normalized(chain, make_service):
    chain.add("sig1", SCALE)
    chain.add("sig2", -SCALE, block_time="1700000000")
    store = MemoryLedgerStore()
    service = make_service(store=store)

    report = service.run()
    assert report.result is RunResult.DONE
    snapshot = store.load()
    assert snapshot is not None
    assert {t.signature: t.block_time for t in snapshot.transactions}["sig2"] == 1_700_000_000
    stats = service.get_stats()
    assert stats.total_transactions == 2
