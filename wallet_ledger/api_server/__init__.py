"""
API server package — HTTP surface over the ingestion run.

Endpoints for health, stats, token summaries, cursor, transactions, and
refresh/stop control. The worker keeps the ledger current in the background.
"""

from wallet_ledger.api_server.server import create_app, create_app_from_env

__all__ = ["create_app", "create_app_from_env"]
