"""
Main entrypoint: ingestion worker in a background thread + FastAPI server in the main thread.

The worker runs in a daemon thread so the process stays alive for the API; the API
runs in the main thread and remains responsive. On SIGINT/SIGTERM the server
shuts down, the worker is asked to stop and the process exits.

Env: TRACKED_WALLET_ADDRESS, SCAN_HORIZON, HELIUS_API_KEY or SOLANA_RPC_URL, LEDGER_STORE,
API_HOST, API_PORT, etc. (see wallet_ledger.config.settings).

API-only (no worker): uvicorn --factory wallet_ledger.api_server.server:create_app_from_env
"""

import os
import sys
import threading

# Configure structured JSON logging before other imports that may log
from wallet_ledger.ledger_logging import get_logger, short

logger = get_logger("main")


def main() -> None:
    """Start the ingestion worker in a background thread, then run FastAPI in the main thread."""
    from wallet_ledger.agent_worker import WorkerConfig, run_loop
    from wallet_ledger.api_server import create_app
    from wallet_ledger.config import get_settings
    from wallet_ledger.core.exceptions import ConfigError
    from wallet_ledger.ingestion import build_ingestion

    api_host = os.getenv("API_HOST", "0.0.0.0").strip()
    api_port = int(os.getenv("API_PORT", "8000").strip() or "8000")

    try:
        settings = get_settings()
    except ConfigError as e:
        logger.error("main_config_error", error=str(e))
        sys.exit(1)

    service = build_ingestion(settings)
    shutdown = threading.Event()
    worker_thread = threading.Thread(
        target=run_loop,
        args=(service, WorkerConfig(interval_sec=settings.schedule_interval_sec)),
        kwargs={"shutdown": shutdown},
        daemon=True,
    )
    worker_thread.start()
    logger.info("main_worker_started", thread="daemon", wallet_id=short(settings.wallet))

    import uvicorn

    logger.info("main_server_starting", host=api_host, port=api_port)
    try:
        uvicorn.run(create_app(service), host=api_host, port=api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())
    finally:
        shutdown.set()
        service.cancel()
        worker_thread.join(timeout=15.0)
        logger.info("main_stopped")


if __name__ == "__main__":
    main()
