"""
Structured logging for Wallet Ledger.

JSON logs with timestamp, event_type and keyword fields.
Use get_logger() in all modules; log_context() tags every record of a run.
"""

from wallet_ledger.ledger_logging.logger import configure_logging, get_logger, log_context, short

__all__ = ["configure_logging", "get_logger", "log_context", "short"]
