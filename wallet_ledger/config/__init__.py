"""
Configuration management for Wallet Ledger.

Loads and validates settings from environment variables and an optional
.env file. Exposes a single source of truth for all service configuration.
"""

from wallet_ledger.config.settings import IngestionSettings, get_settings  # noqa: F401

__all__ = ["IngestionSettings", "get_settings"]
