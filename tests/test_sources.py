from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest
import requests
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from ingestion.dex.jupiter import JupiterClient
from ingestion.dex.models import Token
from ingestion.dex.tokens import TokenRegistry
from ingestion.escrow.constants import PROGRAM_ID
from ingestion.sources.helius import HeliusHistoryClient, block_time_ms, parse_program_signatures
from integration.errors import UpstreamError

from conftest import MAKER, FakeHttp

OTHER_PROGRAM = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"

REPO_ROOT = Path(__file__).resolve().parent.parent


def _tx(signature: str, *programs: str) -> dict:
    return {"signature": signature, "instructions": [{"programId": p} for p in programs]}


def test_parse_program_signatures_filters_and_dedupes() -> None:
    payload = [
        _tx("a", str(PROGRAM_ID)),
        _tx("b", OTHER_PROGRAM),
        _tx("c", OTHER_PROGRAM, str(PROGRAM_ID), str(PROGRAM_ID)),
        _tx("a", str(PROGRAM_ID)),
        "garbage",
    ]
    assert parse_program_signatures(payload, str(PROGRAM_ID)) == ["a", "c"]
    assert parse_program_signatures({"error": "x"}, str(PROGRAM_ID)) == []


def test_block_time_ms() -> None:
    assert block_time_ms({"blockTime": 1_700_000_000}, fallback_ms=1) == 1_700_000_000_000
    assert block_time_ms({"blockTime": None}, fallback_ms=7) == 7


def test_helius_request_shape() -> None:
    http = FakeHttp([_tx("sig", str(PROGRAM_ID))])
    client = HeliusHistoryClient("key-1", api_url="https://helius.test/v0/", http_callable=http)

    assert client.get_program_signatures(MAKER, PROGRAM_ID, limit=5) == ["sig"]
    url, params = http.calls[0]
    assert url == f"https://helius.test/v0/addresses/{MAKER}/transactions"
    assert params == {"api-key": "key-1", "limit": 5}


def test_helius_error_payload_raises() -> None:
    client = HeliusHistoryClient("k", http_callable=FakeHttp({"error": "invalid api key"}))
    with pytest.raises(UpstreamError, match="invalid api key"):
        client.get_program_signatures(MAKER, PROGRAM_ID)


def test_jupiter_quote_and_rate() -> None:
    http = FakeHttp({
        "inAmount": "1000000000",
        "outAmount": "150000000",
        "priceImpactPct": "0.001",
        "otherAmountThreshold": "149250000",
        "routePlan": [{"swapInfo": {"ammKey": "amm", "label": "Orca", "inputMint": "A", "outputMint": "B",
                                    "inAmount": "1000000000", "outAmount": "150000000"}}],
    })
    client = JupiterClient(http_callable=http)
    sol = Token(id="So11111111111111111111111111111111111111112", symbol="SOL", decimals=9, token_program="")
    usdc = Token(id="4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU", symbol="USDC", decimals=6, token_program="")

    result = client.get_current_rate(sol, usdc, 1_000_000_000)

    assert result == {"out_amount": 150_000_000, "rate": Decimal(150)}
    url, params = http.calls[0]
    assert params["amount"] == "1000000000"
    assert params["inputMint"] == sol.id


def test_jupiter_failures_degrade_to_none() -> None:
    assert JupiterClient(http_callable=FakeHttp({"error": "No routes found"})).get_quote("A", "B", 1) is None

    def boom(url, params):
        raise requests.exceptions.Timeout("slow")

    assert JupiterClient(http_callable=boom).get_quote("A", "B", 1) is None
    assert JupiterClient(http_callable=boom).search_tokens("sol") == []


def test_jupiter_token_search_skips_malformed() -> None:
    http = FakeHttp([
        {"id": "mint1", "symbol": "ONE", "decimals": 6, "tokenProgram": str(TOKEN_PROGRAM_ID)},
        {"symbol": "no id"},
    ])
    tokens = JupiterClient(http_callable=http).search_tokens("one")
    assert [t.id for t in tokens] == ["mint1"]
    assert http.calls[0][1] == {"query": "one"}


def test_token_registry_from_shipped_yaml() -> None:
    registry = TokenRegistry.from_yaml(REPO_ROOT / "config" / "tokens.yaml")
    assert len(registry) == 2
    sol = registry.get("So11111111111111111111111111111111111111112")
    assert sol is not None and sol.decimals == 9
    assert registry.token_program(Pubkey.from_string(sol.id)) == TOKEN_PROGRAM_ID


def test_token_registry_falls_back_to_owner_lookup() -> None:
    looked_up = []

    def lookup(mint):
        looked_up.append(mint)
        return TOKEN_PROGRAM_ID

    registry = TokenRegistry(owner_lookup=lookup)
    assert registry.token_program(MAKER) == TOKEN_PROGRAM_ID
    assert looked_up == [MAKER]
    assert TokenRegistry().token_program(MAKER) is None


def test_token_registry_prefers_registered_program_over_lookup() -> None:
    def lookup(mint):
        raise AssertionError("lookup should not be called")

    registry = TokenRegistry(owner_lookup=lookup)
    registry.add(Token(id=str(MAKER), symbol="MKR", decimals=6, token_program=str(TOKEN_PROGRAM_ID)))

    assert MAKER in registry
    assert registry.token_program(MAKER) == TOKEN_PROGRAM_ID


def test_jupiter_route_plan_venues() -> None:
    http = FakeHttp({
        "inAmount": "10",
        "outAmount": "20",
        "routePlan": [
            {"swapInfo": {"ammKey": "1", "label": "Orca", "inAmount": "10", "outAmount": "15"}},
            {"swapInfo": {"ammKey": "2", "label": "Raydium", "inAmount": "15", "outAmount": "20"}},
            {"swapInfo": {"ammKey": "3", "label": "Orca", "inAmount": "15", "outAmount": "20"}},
        ],
    })
    quote = JupiterClient(http_callable=http).get_quote("A", "B", 10, slippage_bps=75)

    assert quote.venues == ["Orca", "Raydium"]
    assert quote.slippage_bps == 75
    assert http.calls[0][1]["slippageBps"] == "75"
