# Bounded ingestion runs: page, resolve, checkpoint, report a RunResult.

from wallet_ledger.ingestion.factory import build_ingestion
from wallet_ledger.ingestion.run import (
    IngestionRun,
    RunContext,
    RunOptions,
    RunReport,
    RunResult,
    RunState,
)

__all__ = [
    "IngestionRun",
    "RunContext",
    "RunOptions",
    "RunReport",
    "RunResult",
    "RunState",
    "build_ingestion",
]
