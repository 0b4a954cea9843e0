"""
Ingestion run: the orchestrator behind run(), cancel(), get_stats(), get_cursor().

One run pages backward through the wallet's signatures, resolves every signature
the ledger does not know yet, and checkpoints the ledger after each page. It
ends in exactly one RunResult; exceptions never cross the run boundary.

    Idle -> Paging -> Resolving -> (loop) -> Done | Suspended | Cooldown

The ledger cursor moves only after a page has been fully resolved, so a
suspension or cooldown mid-page re-fetches that page next time and the already
known signatures in it are skipped.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from wallet_ledger.alerts import LogNotifier, Notifier
from wallet_ledger.core.exceptions import (
    BudgetExceededError,
    CooldownError,
    DataIntegrityError,
    ProviderError,
    RateLimitError,
)
from wallet_ledger.database.store import LedgerStore
from wallet_ledger.ledger import FetchCursor, Ledger, Stats, StatsAggregator, TokenSummary, Transaction
from wallet_ledger.ledger_logging import get_logger, log_context, short
from wallet_ledger.solana_listener import (
    RateLimiter,
    RunBudget,
    SignaturePager,
    StopReason,
    TransactionResolver,
)

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
DEFAULT_TIME_BUDGET_SEC = 50.0


class RunState(str, Enum):
    IDLE = "idle"
    PAGING = "paging"
    RESOLVING = "resolving"
    DONE = "done"
    SUSPENDED = "suspended"
    COOLDOWN = "cooldown"
    ERROR = "error"


class RunResult(str, Enum):
    DONE = "done"
    SUSPENDED = "suspended"
    COOLDOWN = "cooldown"
    ALREADY_RUNNING = "already_running"
    ERROR = "error"


_STATE_FOR_RESULT = {
    RunResult.DONE: RunState.DONE,
    RunResult.SUSPENDED: RunState.SUSPENDED,
    RunResult.COOLDOWN: RunState.COOLDOWN,
    RunResult.ERROR: RunState.ERROR,
}


@dataclass(frozen=True)
class RunOptions:
    """
    full_rescan: restart from the newest signature and page all the way down,
        resolving only signatures the ledger does not know.
    time_budget: wall-clock seconds for this run (None = configured default).
    page_size: signatures per page (None = configured default).
    """

    full_rescan: bool = False
    time_budget: float | None = None
    page_size: int | None = None


@dataclass
class RunReport:
    result: RunResult
    cursor: FetchCursor
    pages: int = 0
    new_transactions: int = 0
    skipped: int = 0
    discarded: int = 0
    duration_sec: float = 0.0
    cooldown_remaining_sec: float = 0.0
    stop_reason: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": self.result.value,
            "cursor": self.cursor.to_dict(),
            "pages": self.pages,
            "new_transactions": self.new_transactions,
            "skipped": self.skipped,
            "discarded": self.discarded,
            "duration_sec": round(self.duration_sec, 3),
            "cooldown_remaining_sec": round(self.cooldown_remaining_sec, 3),
            "stop_reason": self.stop_reason,
            "error": self.error,
        }


class RunContext:
    """In-process guard (is_refreshing) plus the external stop signal."""

    def __init__(self) -> None:
        self._refreshing = threading.Lock()
        self.stop_event = threading.Event()

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing.locked()

    def try_begin(self) -> bool:
        return self._refreshing.acquire(blocking=False)

    def end(self) -> None:
        self._refreshing.release()


@dataclass
class _Counters:
    pages: int = 0
    new_transactions: int = 0
    skipped: int = 0
    discarded: int = 0
    started: float = field(default=0.0)


class IngestionRun:
    """Owns the ledger for one wallet and drives pager + resolver against it."""

    def __init__(
        self,
        wallet: str,
        *,
        limiter: RateLimiter,
        pager_factory: Callable[[Ledger], SignaturePager],
        resolver: TransactionResolver,
        store: LedgerStore,
        notifier: Notifier | None = None,
        context: RunContext | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        time_budget_sec: float | None = DEFAULT_TIME_BUDGET_SEC,
        clock: Callable[[], float] = time.monotonic,
        aggregator: StatsAggregator | None = None,
    ) -> None:
        self._wallet = wallet
        self._ledger = Ledger(wallet)
        self._limiter = limiter
        self._pager = pager_factory(self._ledger)
        self._resolver = resolver
        self._store = store
        self._notifier = notifier or LogNotifier()
        self._context = context or RunContext()
        self._page_size = page_size
        self._time_budget = time_budget_sec
        self._clock = clock
        self._aggregator = aggregator or StatsAggregator()

        self._state = RunState.IDLE
        self._loaded = False
        self._load_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stats_cache: tuple[int, Stats] | None = None
        self.last_report: RunReport | None = None

    @property
    def wallet(self) -> str:
        return self._wallet

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def limiter(self) -> RateLimiter:
        return self._limiter

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def is_refreshing(self) -> bool:
        return self._context.is_refreshing

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Ask the active run to stop before its next page or signature."""
        self._context.stop_event.set()
        logger.info("ingestion_cancel_requested", wallet_id=short(self._wallet))

    def get_cursor(self) -> FetchCursor:
        self._ensure_loaded()
        return self._ledger.cursor

    def get_stats(self) -> Stats:
        """Stats for the current ledger, recomputed only when the ledger changed."""
        self._ensure_loaded()
        version = self._ledger.version
        with self._stats_lock:
            if self._stats_cache is not None and self._stats_cache[0] == version:
                return self._stats_cache[1]
        stats = self._aggregator.compute(self._ledger)
        with self._stats_lock:
            self._stats_cache = (version, stats)
        return stats

    def token_summary(self, token: str) -> TokenSummary:
        self._ensure_loaded()
        return self._aggregator.token_summary(self._ledger, token)

    def list_transactions(self, *, kind: str | None = None, limit: int | None = None) -> list[Transaction]:
        """Newest first; kind filters on TransactionKind value."""
        self._ensure_loaded()
        txs = [t for t in self._ledger.all() if kind is None or t.kind.value == kind]
        txs.sort(key=lambda t: (t.block_time or 0, t.signature), reverse=True)
        return txs[:limit] if limit is not None else txs

    def run(self, options: RunOptions | None = None) -> RunReport:
        """Run one bounded ingestion pass; always returns a RunReport, never raises."""
        opts = options or RunOptions()
        if not self._context.try_begin():
            logger.info("ingestion_already_running", wallet_id=short(self._wallet))
            return RunReport(result=RunResult.ALREADY_RUNNING, cursor=self._ledger.cursor)
        counters = _Counters(started=self._clock())
        try:
            self._context.stop_event.clear()
            with log_context(run_id=uuid.uuid4().hex[:8]):
                report = self._run(opts, counters)
        except Exception as e:
            logger.exception("ingestion_run_failed", wallet_id=short(self._wallet), error=str(e))
            report = self._finish(RunResult.ERROR, counters, error=str(e))
        finally:
            self._context.end()
        self.last_report = report
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_loaded(self) -> None:
        """Seed the ledger from the store once; DataIntegrityError leaves it unloaded."""
        with self._load_lock:
            if self._loaded:
                return
            snapshot = self._store.load()
            if snapshot is not None:
                try:
                    self._ledger.restore(snapshot)
                except ValueError as e:
                    raise DataIntegrityError(str(e)) from e
            self._loaded = True

    def _checkpoint(self) -> None:
        try:
            ok = self._store.save(self._ledger.snapshot())
        except Exception as e:
            logger.exception("checkpoint_failed", wallet_id=short(self._wallet), error=str(e))
            return
        if not ok:
            logger.warning("checkpoint_failed", wallet_id=short(self._wallet))

    def _run(self, opts: RunOptions, counters: _Counters) -> RunReport:
        try:
            self._ensure_loaded()
        except DataIntegrityError as e:
            logger.error("ledger_load_failed", wallet_id=short(self._wallet), error=str(e))
            return self._finish(RunResult.ERROR, counters, error=str(e), checkpoint=False)

        page_size = opts.page_size or self._page_size
        budget = RunBudget(
            opts.time_budget if opts.time_budget is not None else self._time_budget,
            clock=self._clock,
        )
        cursor = self._ledger.cursor
        if opts.full_rescan:
            cursor = FetchCursor.full_rescan(cursor.last_fetch_timestamp)
        elif cursor.scan_complete:
            cursor = cursor.top_up()
        self._ledger.set_cursor(cursor)
        logger.info(
            "ingestion_run_started",
            wallet_id=short(self._wallet),
            before=short(cursor.before_signature),
            full_rescan=opts.full_rescan,
            rescan=cursor.rescan,
            page_size=page_size,
            known_count=len(self._ledger),
        )

        stop = self._context.stop_event
        while True:
            if stop.is_set():
                return self._finish(RunResult.SUSPENDED, counters, stop_reason="cancelled")
            if budget.exceeded():
                return self._finish(RunResult.SUSPENDED, counters, stop_reason=StopReason.BUDGET_EXCEEDED.value)
            if self._limiter.in_cooldown():
                return self._finish(RunResult.COOLDOWN, counters)

            self._state = RunState.PAGING
            try:
                page = self._pager.fetch_page(self._wallet, self._ledger.cursor, page_size, budget)
            except BudgetExceededError as e:
                logger.info("page_retry_out_of_budget", wallet_id=short(self._wallet), error=str(e))
                return self._finish(
                    RunResult.SUSPENDED, counters, stop_reason=StopReason.BUDGET_EXCEEDED.value
                )
            except (CooldownError, RateLimitError) as e:
                logger.warning("page_rate_limited", wallet_id=short(self._wallet), error=str(e))
                return self._finish(RunResult.COOLDOWN, counters)
            except ProviderError as e:
                logger.error("page_fetch_failed", wallet_id=short(self._wallet), error=str(e))
                return self._finish(RunResult.ERROR, counters, error=str(e))
            counters.pages += 1

            pending = [i for i in page.signatures if not self._ledger.has(i.signature)]
            if pending:
                self._state = RunState.RESOLVING
            for info in pending:
                if stop.is_set():
                    return self._finish(RunResult.SUSPENDED, counters, stop_reason="cancelled")
                if budget.exceeded():
                    return self._finish(
                        RunResult.SUSPENDED, counters, stop_reason=StopReason.BUDGET_EXCEEDED.value
                    )
                try:
                    resolution = self._resolver.resolve_info(info, remaining=budget.remaining)
                except BudgetExceededError as e:
                    logger.info("resolve_retry_out_of_budget", signature=short(info.signature), error=str(e))
                    return self._finish(
                        RunResult.SUSPENDED, counters, stop_reason=StopReason.BUDGET_EXCEEDED.value
                    )
                except (CooldownError, RateLimitError) as e:
                    logger.warning("resolve_rate_limited", signature=short(info.signature), error=str(e))
                    return self._finish(RunResult.COOLDOWN, counters)
                if resolution.transaction is not None:
                    if self._ledger.upsert(resolution.transaction):
                        counters.new_transactions += 1
                elif resolution.failed_on_chain:
                    self._ledger.discard(info.signature)
                    counters.discarded += 1
                else:
                    counters.skipped += 1
                    logger.warning("signature_skipped", signature=short(info.signature))

            if page.scan_complete:
                self._ledger.set_cursor(page.next_cursor.completed().stamped())
                return self._finish(RunResult.DONE, counters, stop_reason=page.stop_reason.value)
            self._ledger.set_cursor(page.next_cursor.stamped())
            if not page.has_more:
                return self._finish(RunResult.SUSPENDED, counters, stop_reason=page.stop_reason.value)
            self._checkpoint()

    def _finish(
        self,
        result: RunResult,
        counters: _Counters,
        *,
        stop_reason: str | None = None,
        error: str | None = None,
        checkpoint: bool = True,
    ) -> RunReport:
        if checkpoint:
            self._checkpoint()
        self._state = _STATE_FOR_RESULT[result]
        report = RunReport(
            result=result,
            cursor=self._ledger.cursor,
            pages=counters.pages,
            new_transactions=counters.new_transactions,
            skipped=counters.skipped,
            discarded=counters.discarded,
            duration_sec=max(0.0, self._clock() - counters.started),
            cooldown_remaining_sec=self._limiter.cooldown_remaining(),
            stop_reason=stop_reason,
            error=error,
        )
        logger.info(
            "ingestion_run_finished",
            wallet_id=short(self._wallet),
            result=result.value,
            pages=report.pages,
            new_transactions=report.new_transactions,
            skipped=report.skipped,
            discarded=report.discarded,
            stop_reason=stop_reason,
            before=short(report.cursor.before_signature),
            scan_complete=report.cursor.scan_complete,
        )
        self._notify(report)
        return report

    def _notify(self, report: RunReport) -> None:
        if report.result is RunResult.COOLDOWN:
            event, message = "cooldown", f"Rate limited; retry in {report.cooldown_remaining_sec:.0f}s"
        elif report.result is RunResult.ERROR:
            event, message = "error", report.error or "ingestion run failed"
        elif report.new_transactions:
            event, message = "new_transactions", f"{report.new_transactions} new transaction(s) stored"
        else:
            return
        try:
            self._notifier.notify(
                event,
                message,
                wallet=self._wallet,
                result=report.result.value,
                ledger_size=len(self._ledger),
            )
        except Exception as e:
            logger.warning("notifier_failed", notification=event, error=str(e))
