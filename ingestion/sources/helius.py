"""ingestion/sources/helius.py

Helius address-transactions source for order history.

Lists the recent transactions of a wallet and keeps the ones that invoked
the escrow program. Log decoding happens in ingestion/escrow/events.py.

Helius docs: https://docs.helius.dev/solana-apis/enhanced-transactions-api
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

import requests
from solders.pubkey import Pubkey

from integration.errors import UpstreamError

logger = logging.getLogger(__name__)


DEFAULT_HELIUS_API_URL = "https://api-devnet.helius.xyz/v0"
DEFAULT_LIMIT = 10


def parse_program_signatures(payload: Any, program_id: str) -> List[str]:
    """Pick the signatures of transactions that invoked `program_id`.

    Args:
        payload: Raw JSON list from /addresses/{address}/transactions.
        program_id: Program to look for among top-level instructions.

    Returns:
        Signatures in the order returned by Helius, without duplicates.
    """
    if not isinstance(payload, list):
        return []

    signatures: List[str] = []
    for tx in payload:
        if not isinstance(tx, dict):
            continue
        signature = tx.get("signature", "")
        if not signature or signature in signatures:
            continue
        instructions = tx.get("instructions") or []
        if any(ix.get("programId") == program_id for ix in instructions if isinstance(ix, dict)):
            signatures.append(signature)

    return signatures


def block_time_ms(tx: Dict[str, Any], fallback_ms: int) -> int:
    """Block time of a getTransaction result in milliseconds."""
    block_time = tx.get("blockTime")
    return int(block_time) * 1000 if block_time else fallback_ms


def log_messages(tx: Dict[str, Any]) -> List[str]:
    """Log lines of a getTransaction result (empty if logs were truncated away)."""
    meta = tx.get("meta") or {}
    return list(meta.get("logMessages") or [])


class HeliusHistoryClient:
    """Client for the Helius address-transactions endpoint."""

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_HELIUS_API_URL,
        timeout_ms: int = 30_000,
        http_callable: Optional[Callable[[str, Dict[str, Any]], Any]] = None,
        session: Optional[requests.Session] = None,
    ):
        self._api_key = api_key
        self._api_url = api_url.rstrip("/")
        self._timeout_ms = timeout_ms
        self._http_callable = http_callable
        self._session = session

    def _get(self, url: str, params: Dict[str, Any]) -> Any:
        if self._http_callable is not None:
            return self._http_callable(url, params)

        if self._session is None:
            self._session = requests.Session()
        try:
            resp = self._session.get(url, params=params, timeout=self._timeout_ms / 1000.0)
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Helius request failed: {e}")
        except ValueError as e:
            raise UpstreamError(f"Invalid JSON from Helius: {e}")

    def get_program_signatures(
        self,
        owner: Pubkey,
        program_id: Pubkey,
        limit: int = DEFAULT_LIMIT,
    ) -> List[str]:
        """Recent signatures of `owner` that touched `program_id`.

        Args:
            owner: Wallet whose transactions are listed.
            program_id: Program to filter on.
            limit: Max transactions fetched from Helius (bounded list).

        Returns:
            Matching signatures, newest first.
        """
        url = f"{self._api_url}/addresses/{owner}/transactions"
        payload = self._get(url, {"api-key": self._api_key, "limit": limit})

        if isinstance(payload, dict) and "error" in payload:
            raise UpstreamError(f"Helius error: {payload.get('error')}")

        signatures = parse_program_signatures(payload, str(program_id))
        logger.debug(f"[history] {len(signatures)} program transactions for {owner}")
        return signatures
