"""integration/context.py

Explicit dependencies of the order engine.

Every operation receives an OrderContext instead of reaching for module
level connections, so tests swap in fake clients by constructing one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import requests

from config.runtime_schema import EngineConfig
from ingestion.compression.client import PhotonClient
from ingestion.dex.jupiter import JupiterClient
from ingestion.dex.tokens import TokenRegistry
from ingestion.escrow.decoder import EscrowDecoder
from ingestion.sources.helius import HeliusHistoryClient

logger = logging.getLogger(__name__)

_REPO_ROOT = Path(__file__).resolve().parent.parent


@dataclass
class OrderContext:
    """Clients and settings shared by one caller."""
    config: EngineConfig
    photon: PhotonClient
    helius: HeliusHistoryClient
    jupiter: JupiterClient
    tokens: TokenRegistry
    decoder: EscrowDecoder = field(default_factory=EscrowDecoder)


def _resolve_tokens_path(tokens_path: str) -> Optional[Path]:
    path = Path(tokens_path)
    if path.exists():
        return path
    if not path.is_absolute() and (_REPO_ROOT / path).exists():
        return _REPO_ROOT / path
    return None


def build_context(config: EngineConfig, session: Optional[requests.Session] = None) -> OrderContext:
    """
    Wire real HTTP clients for `config`.

    Args:
        config: Engine configuration
        session: Optional requests session shared by all clients

    Returns:
        OrderContext
    """
    session = session or requests.Session()
    photon = PhotonClient(
        photon_url=config.photon_endpoint,
        rpc_url=config.rpc_endpoint,
        timeout_ms=config.timeout_ms,
        session=session,
    )
    helius = HeliusHistoryClient(
        api_key=config.helius_api_key,
        api_url=config.helius_api_url,
        timeout_ms=config.timeout_ms,
        session=session,
    )
    jupiter = JupiterClient(
        quote_url=config.jupiter_quote_url,
        tokens_url=config.jupiter_tokens_url,
        timeout_ms=config.timeout_ms,
        session=session,
    )

    tokens_path = _resolve_tokens_path(config.tokens_path)
    if tokens_path is not None:
        tokens = TokenRegistry.from_yaml(tokens_path, owner_lookup=photon.get_account_owner)
    else:
        logger.warning(f"[config] Token registry {config.tokens_path} not found, resolving mints on chain")
        tokens = TokenRegistry(owner_lookup=photon.get_account_owner)

    return OrderContext(config=config, photon=photon, helius=helius, jupiter=jupiter, tokens=tokens)
