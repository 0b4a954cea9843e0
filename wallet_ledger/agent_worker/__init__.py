"""
Agent worker package — scheduled ingestion runs.

Runs the ingestion pass on an interval, backs off after provider cooldowns,
and coordinates shutdown.
"""

from wallet_ledger.agent_worker.runtime import WorkerConfig, next_delay, run_loop

__all__ = ["WorkerConfig", "next_delay", "run_loop"]
