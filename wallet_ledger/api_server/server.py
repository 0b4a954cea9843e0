"""
FastAPI server — thin HTTP surface over one IngestionRun.

Read endpoints serve the ledger's cursor, stats and transactions; POST /refresh
starts a run (in the background unless wait=true) and POST /stop cancels it.
Every response uses the {success, timestamp, data} envelope.

Run standalone: uvicorn --factory wallet_ledger.api_server.server:create_app_from_env
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from wallet_ledger.core.exceptions import DataIntegrityError, LedgerError
from wallet_ledger.ingestion import IngestionRun, RunOptions, RunResult
from wallet_ledger.ledger import TransactionKind
from wallet_ledger.ledger_logging import get_logger, short

logger = get_logger(__name__)

MAX_TRANSACTIONS_LIMIT = 1000


class RefreshRequest(BaseModel):
    """POST /refresh body; omitted fields use the configured defaults."""

    full_rescan: bool = Field(False, description="Page the whole history again, resolving only unknown signatures")
    time_budget: float | None = Field(None, gt=0, description="Wall-clock budget for this run (seconds)")
    page_size: int | None = Field(None, ge=1, le=1000, description="Signatures per page")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def envelope(data: Any) -> dict[str, Any]:
    return {"success": True, "timestamp": _now_iso(), "data": data}


def create_app(service: IngestionRun) -> FastAPI:
    app = FastAPI(title="Wallet Ledger", version="0.1.0")
    app.state.service = service

    @app.exception_handler(HTTPException)
    def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        """Consistent JSON error response for HTTPException."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "timestamp": _now_iso(), "error": exc.detail},
        )

    @app.exception_handler(LedgerError)
    def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        logger.error("api_ledger_error", path=request.url.path, error=str(exc))
        status = 500 if isinstance(exc, DataIntegrityError) else 502
        return JSONResponse(
            status_code=status,
            content={"success": False, "timestamp": _now_iso(), "error": str(exc)},
        )

    @app.get("/health")
    def health() -> dict[str, Any]:
        """Liveness probe plus the run state."""
        return envelope(
            {
                "status": "ok",
                "wallet": service.wallet,
                "state": service.state.value,
                "is_refreshing": service.is_refreshing,
                "cooldown_remaining_sec": round(service.limiter.cooldown_remaining(), 3),
            }
        )

    @app.get("/stats")
    def stats() -> dict[str, Any]:
        return envelope(service.get_stats().to_dict())

    @app.get("/stats/token/{token}")
    def token_stats(token: str) -> dict[str, Any]:
        token = token.strip()
        if not token:
            raise HTTPException(status_code=400, detail="token must be non-empty")
        return envelope(service.token_summary(token).to_dict())

    @app.get("/cursor")
    def cursor() -> dict[str, Any]:
        return envelope(service.get_cursor().to_dict())

    @app.get("/transactions")
    def transactions(
        kind: str | None = Query(None, description="sent | received | unknown"),
        limit: int = Query(100, ge=1, le=MAX_TRANSACTIONS_LIMIT),
    ) -> dict[str, Any]:
        if kind is not None and kind not in {k.value for k in TransactionKind}:
            raise HTTPException(status_code=400, detail=f"Invalid kind: {kind!r}")
        txs = service.list_transactions(kind=kind, limit=limit)
        return envelope({"count": len(txs), "transactions": [t.to_dict() for t in txs]})

    @app.post("/refresh")
    def refresh(
        background_tasks: BackgroundTasks,
        body: RefreshRequest | None = None,
        wait: bool = Query(False, description="Run synchronously and return the report"),
    ) -> JSONResponse:
        req = body or RefreshRequest()
        options = RunOptions(
            full_rescan=req.full_rescan,
            time_budget=req.time_budget,
            page_size=req.page_size,
        )
        if service.is_refreshing:
            raise HTTPException(status_code=409, detail=RunResult.ALREADY_RUNNING.value)
        logger.info("api_refresh_requested", wallet_id=short(service.wallet), full_rescan=req.full_rescan, wait=wait)
        if wait:
            report = service.run(options)
            status = 409 if report.result is RunResult.ALREADY_RUNNING else 200
            return JSONResponse(status_code=status, content=envelope(report.to_dict()))
        background_tasks.add_task(service.run, options)
        return JSONResponse(status_code=202, content=envelope({"status": "started", "full_rescan": req.full_rescan}))

    @app.post("/stop")
    def stop() -> dict[str, Any]:
        was_running = service.is_refreshing
        service.cancel()
        return envelope({"stop_requested": True, "was_running": was_running})

    return app


def create_app_from_env() -> FastAPI:
    """App factory for uvicorn --factory; builds the service from environment settings."""
    from wallet_ledger.config import get_settings
    from wallet_ledger.ingestion import build_ingestion

    return create_app(build_ingestion(get_settings()))
