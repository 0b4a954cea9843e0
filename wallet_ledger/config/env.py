"""
Environment variable loading for Wallet Ledger.

- SOLANA_NETWORK: devnet | mainnet (default: mainnet)
- SOLANA_RPC_URL: RPC endpoint (read from .env)
- HELIUS_API_KEY: Helius API key (used to build the RPC URL when SOLANA_RPC_URL is unset)
- TRACKED_WALLET_ADDRESS: the wallet whose ledger is maintained
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is wallet_ledger/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_PACKAGE_DIR = _CONFIG_DIR.parent
_ROOT = _PACKAGE_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEVNET_RPC_URL = "https://api.devnet.solana.com"
MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"
HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"
HELIUS_DEVNET_URL_TEMPLATE = "https://devnet.helius-rpc.com/?api-key={key}"


def load_ledger_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides real env."""
    load_dotenv(_ENV_PATH, override=False)


def get_solana_network() -> str:
    """
    Return SOLANA_NETWORK from env: devnet | mainnet.
    Default: mainnet (the ledger tracks a real wallet).
    """
    load_ledger_env()
    raw = (os.getenv("SOLANA_NETWORK") or os.getenv("SOLANA_CLUSTER") or "mainnet").strip().lower()
    if raw == "devnet":
        return "devnet"
    return "mainnet"


def get_solana_rpc_url() -> str:
    """
    Resolve Solana RPC URL from env.
    Order: SOLANA_RPC_URL > HELIUS_RPC_URL > HELIUS_API_KEY (network-specific) > public endpoint.
    """
    load_ledger_env()
    url = (os.getenv("SOLANA_RPC_URL") or os.getenv("HELIUS_RPC_URL") or "").strip()
    if url:
        return url
    key = (os.getenv("HELIUS_API_KEY") or "").strip()
    network = get_solana_network()
    if key:
        if network == "devnet":
            return HELIUS_DEVNET_URL_TEMPLATE.format(key=key)
        return HELIUS_MAINNET_URL_TEMPLATE.format(key=key)
    return DEVNET_RPC_URL if network == "devnet" else MAINNET_RPC_URL


def get_tracked_wallet() -> str:
    """Return TRACKED_WALLET_ADDRESS (falls back to DISTRIBUTION_WALLET_ADDRESS); empty if unset."""
    load_ledger_env()
    return (
        os.getenv("TRACKED_WALLET_ADDRESS")
        or os.getenv("DISTRIBUTION_WALLET_ADDRESS")
        or ""
    ).strip()


def mask_rpc_url(url: str) -> str:
    """Hide the api-key query value so the URL can be logged."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url
