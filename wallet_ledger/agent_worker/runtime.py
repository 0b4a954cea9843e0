"""
Persistent worker loop for the wallet ledger.

Runs IngestionRun.run() on an interval. A Suspended run (budget spent, more
history left) is resumed almost immediately; a Cooldown run delays the next
invocation by the limiter's remaining cooldown, doubling on consecutive
cooldowns up to a cap. Safe shutdown on KeyboardInterrupt/SIGTERM.

Usage: python -m wallet_ledger.agent_worker.runtime [--once] [--full-rescan]
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from dataclasses import dataclass
from typing import Any

from wallet_ledger.ingestion import IngestionRun, RunOptions, RunReport, RunResult
from wallet_ledger.ledger_logging import get_logger, short

logger = get_logger(__name__)

DEFAULT_INTERVAL_SEC = 300.0
DEFAULT_RESUME_DELAY_SEC = 1.0
DEFAULT_MAX_COOLDOWN_DELAY_SEC = 3600.0
MIN_INTERVAL_SEC = 1.0


@dataclass
class WorkerConfig:
    """
    interval_sec: sleep between runs that ended Done, Error or AlreadyRunning.
    resume_delay_sec: sleep after a Suspended run before resuming the scan.
    max_cooldown_delay_sec: cap for the doubling delay after consecutive Cooldown runs.
    max_runs: stop after this many runs (None = until shutdown).
    """

    interval_sec: float = DEFAULT_INTERVAL_SEC
    resume_delay_sec: float = DEFAULT_RESUME_DELAY_SEC
    max_cooldown_delay_sec: float = DEFAULT_MAX_COOLDOWN_DELAY_SEC
    max_runs: int | None = None

    def __post_init__(self) -> None:
        self.interval_sec = max(MIN_INTERVAL_SEC, float(self.interval_sec))
        self.resume_delay_sec = max(0.0, float(self.resume_delay_sec))
        self.max_cooldown_delay_sec = max(self.interval_sec, float(self.max_cooldown_delay_sec))


def next_delay(report: RunReport, config: WorkerConfig, previous_cooldown_delay: float) -> float:
    """Seconds to wait before the next run, given the last report."""
    if report.result is RunResult.COOLDOWN:
        delay = max(report.cooldown_remaining_sec, previous_cooldown_delay * 2, MIN_INTERVAL_SEC)
        return min(delay, config.max_cooldown_delay_sec)
    if report.result is RunResult.SUSPENDED and report.stop_reason != "cancelled":
        return config.resume_delay_sec
    return config.interval_sec


def run_loop(
    service: IngestionRun,
    config: WorkerConfig,
    *,
    options: RunOptions | None = None,
    shutdown: threading.Event | None = None,
) -> list[RunReport]:
    """
    Run until shutdown is set (or max_runs reached). options apply to the first
    run only, so a requested full rescan is not restarted on every cycle.
    Returns the reports, oldest first.
    """
    shutdown = shutdown or threading.Event()

    def request_shutdown(*args: Any) -> None:
        shutdown.set()
        service.cancel()

    try:
        signal.signal(signal.SIGTERM, request_shutdown)
    except (AttributeError, ValueError):
        # Not in the main thread, or unsupported platform
        pass

    logger.info(
        "runtime_worker_started",
        wallet_id=short(service.wallet),
        interval_sec=config.interval_sec,
        max_runs=config.max_runs,
    )
    reports: list[RunReport] = []
    cooldown_delay = 0.0
    run_options = options
    while not shutdown.is_set():
        try:
            report = service.run(run_options)
        except Exception as e:
            # run() reports errors itself; this guards the loop against bugs
            logger.exception("runtime_run_failed", error=str(e))
            shutdown.wait(config.interval_sec)
            continue
        run_options = None
        reports.append(report)
        delay = next_delay(report, config, cooldown_delay)
        cooldown_delay = delay if report.result is RunResult.COOLDOWN else 0.0
        logger.info(
            "runtime_run_done",
            run=len(reports),
            result=report.result.value,
            new_transactions=report.new_transactions,
            next_run_in_sec=round(delay, 2),
        )
        if config.max_runs is not None and len(reports) >= config.max_runs:
            break
        shutdown.wait(delay)
    logger.info("runtime_worker_stopped", runs=len(reports))
    return reports


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Keep the tracked wallet's ledger up to date.")
    parser.add_argument("--once", action="store_true", help="Run a single ingestion pass and exit.")
    parser.add_argument("--full-rescan", action="store_true", help="Page the whole history again on the first run.")
    parser.add_argument("--time-budget", type=float, default=None, help="Seconds per run (default RUN_TIME_BUDGET_SEC).")
    parser.add_argument("--page-size", type=int, default=None, help="Signatures per page (default PAGE_SIZE).")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between runs (default SCHEDULE_INTERVAL_SEC).")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint: load settings from env and run once or loop."""
    from wallet_ledger.config import get_settings
    from wallet_ledger.core.exceptions import ConfigError
    from wallet_ledger.ingestion import build_ingestion

    args = _build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except ConfigError as e:
        logger.error("runtime_config_error", error=str(e))
        return 2
    options = RunOptions(
        full_rescan=args.full_rescan,
        time_budget=args.time_budget,
        page_size=args.page_size,
    )
    service = build_ingestion(settings)
    try:
        if args.once:
            report = service.run(options)
            logger.info("runtime_single_run", **report.to_dict())
            return 0 if report.result in (RunResult.DONE, RunResult.SUSPENDED) else 1
        config = WorkerConfig(interval_sec=args.interval or settings.schedule_interval_sec)
        run_loop(service, config, options=options)
        return 0
    except KeyboardInterrupt:
        logger.info("runtime_shutdown_signal")
        service.cancel()
        return 0


if __name__ == "__main__":
    sys.exit(main())
