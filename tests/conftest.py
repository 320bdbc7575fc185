from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional, Tuple

import base58
import pytest
from solders.hash import Hash
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT

from config.runtime_schema import EngineConfig
from ingestion.compression.client import PhotonClient
from ingestion.dex.jupiter import JupiterClient
from ingestion.dex.models import Token
from ingestion.dex.tokens import TokenRegistry
from ingestion.escrow.address import derive_order_address
from ingestion.escrow.constants import PROGRAM_ID, STATE_QUEUE, STATE_TREE
from ingestion.escrow.layouts import OrderRecord, encode_order_record
from ingestion.sources.helius import HeliusHistoryClient
from integration.context import OrderContext

MAKER = Pubkey(bytes([11] * 32))
KEEPER = Pubkey(bytes([12] * 32))
MINT_A = Pubkey(bytes([21] * 32))
MINT_B = Pubkey(bytes([22] * 32))
USDC = Pubkey.from_string("4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU")
BLOCKHASH = Hash(bytes([7] * 32))
ACCOUNT_HASH = bytes([5] * 32)
ROOT_INDEX = 9
LEAF_INDEX = 1234

PROOF_JSON = {
    "compressedProof": {"a": [1] * 32, "b": [2] * 64, "c": [3] * 32},
    "rootIndices": [ROOT_INDEX],
    "leaves": [],
}


def make_record(
    unique_id: int = 42,
    input_mint: Pubkey = MINT_A,
    output_mint: Pubkey = MINT_B,
    making: int = 100,
    taking: int = 200,
    expired_at: int = 0,
    maker: Pubkey = MAKER,
) -> OrderRecord:
    return OrderRecord(
        maker=maker,
        unique_id=unique_id,
        input_mint=input_mint,
        output_mint=output_mint,
        input_token_program=TOKEN_PROGRAM_ID,
        output_token_program=TOKEN_PROGRAM_ID,
        original_making_amount=making,
        original_taking_amount=taking,
        making_amount=making,
        taking_amount=taking,
        expired_at=expired_at,
        created_at=1_700_000_000,
        updated_at=1_700_000_000,
        slippage_bps=50,
        fee_bps=10,
    )


def account_json(record: OrderRecord) -> Dict[str, Any]:
    """getCompressedAccount value for a stored record."""
    address = derive_order_address(record.maker, record.unique_id)
    return {
        "hash": base58.b58encode(ACCOUNT_HASH).decode("utf-8"),
        "address": str(address),
        "leafIndex": LEAF_INDEX,
        "tree": str(STATE_TREE),
        "treeInfo": {"tree": str(STATE_TREE), "queue": str(STATE_QUEUE)},
        "owner": str(PROGRAM_ID),
        "lamports": 0,
        "data": {
            "data": base64.b64encode(encode_order_record(record)).decode("utf-8"),
            "discriminator": 1,
        },
    }


class FakePhoton:
    """JSON-RPC transport answering from in-memory state."""

    def __init__(self) -> None:
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.proof: Optional[Dict[str, Any]] = PROOF_JSON
        self.transactions: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, Any]] = []

    def store(self, record: OrderRecord) -> Pubkey:
        address = derive_order_address(record.maker, record.unique_id)
        self.accounts[str(address)] = account_json(record)
        return address

    def __call__(self, method: str, params: Any) -> Dict[str, Any]:
        self.calls.append((method, params))
        if method == "getCompressedAccount":
            value = self.accounts.get(params["address"])
        elif method == "getValidityProof":
            value = self.proof
        elif method == "getCompressedAccountsByOwner":
            value = {"items": list(self.accounts.values()), "cursor": None}
        elif method == "getLatestBlockhash":
            value = {"blockhash": str(BLOCKHASH), "lastValidBlockHeight": 100}
        elif method == "getAccountInfo":
            value = {"owner": str(TOKEN_PROGRAM_ID), "lamports": 1, "data": ["", "base64"]}
        elif method == "getTransaction":
            return {"jsonrpc": "2.0", "id": 1, "result": self.transactions.get(params[0])}
        else:
            return {"jsonrpc": "2.0", "id": 1, "error": {"code": -32601, "message": f"unknown {method}"}}
        return {"jsonrpc": "2.0", "id": 1, "result": {"context": {"slot": 1}, "value": value}}

    def methods(self) -> List[str]:
        return [method for method, _ in self.calls]


class FakeHttp:
    """GET transport returning a canned payload and recording requests."""

    def __init__(self, payload: Any = None) -> None:
        self.payload = payload
        self.calls: List[Tuple[str, Dict[str, Any]]] = []

    def __call__(self, url: str, params: Dict[str, Any]) -> Any:
        self.calls.append((url, params))
        return self.payload


def token_registry() -> TokenRegistry:
    return TokenRegistry([
        Token(id=str(WRAPPED_SOL_MINT), symbol="SOL", decimals=9, token_program=str(TOKEN_PROGRAM_ID)),
        Token(id=str(USDC), symbol="USDC", decimals=6, token_program=str(TOKEN_PROGRAM_ID)),
        Token(id=str(MINT_A), symbol="AAA", decimals=6, token_program=str(TOKEN_PROGRAM_ID)),
        Token(id=str(MINT_B), symbol="BBB", decimals=6, token_program=str(TOKEN_PROGRAM_ID)),
    ])


@pytest.fixture
def photon() -> FakePhoton:
    return FakePhoton()


@pytest.fixture
def helius_http() -> FakeHttp:
    return FakeHttp([])


@pytest.fixture
def jupiter_http() -> FakeHttp:
    return FakeHttp({})


@pytest.fixture
def ctx(photon: FakePhoton, helius_http: FakeHttp, jupiter_http: FakeHttp) -> OrderContext:
    return OrderContext(
        config=EngineConfig(),
        photon=PhotonClient("https://photon.test", http_callable=photon),
        helius=HeliusHistoryClient("test-key", http_callable=helius_http),
        jupiter=JupiterClient(http_callable=jupiter_http),
        tokens=token_registry(),
    )
