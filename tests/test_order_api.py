from __future__ import annotations

import base64
import dataclasses
import random
from decimal import Decimal

import pytest
from solders.pubkey import Pubkey

from ingestion.escrow.address import derive_order_address
from ingestion.escrow.constants import PROGRAM_ID
from ingestion.escrow.events import ORDER_INITIALIZED_DISCRIMINATOR, ORDER_STATE_EVENT_LAYOUT
from integration import order_api, reject_reasons
from integration.amounts import to_human_readable, to_raw_amount
from integration.errors import ValidationError

from conftest import KEEPER, MAKER, MINT_A, MINT_B, USDC, make_record


def _init_log() -> str:
    payload = ORDER_INITIALIZED_DISCRIMINATOR + ORDER_STATE_EVENT_LAYOUT.pack(
        bytes(32), bytes(MAKER), 42, bytes(MINT_A), bytes(MINT_B), 6, 6, 1_000, 2_000, 0
    )
    return "Program data: " + base64.b64encode(payload).decode()


def test_init_order_success(ctx) -> None:
    result = order_api.init_order(ctx, str(MAKER), str(MINT_A), str(MINT_B), "1000000", "2000000", unique_id=42)

    assert result["success"] is True
    assert result["error"] == ""
    assert result["unique_id"] == "42"
    assert result["order"]["address"] == str(derive_order_address(MAKER, 42))
    assert result["order"]["makingAmount"] == "1000000"
    assert base64.b64decode(result["tx"])


def test_init_order_random_id_is_reported(ctx) -> None:
    result = order_api.init_order(ctx, MAKER, MINT_A, MINT_B, 1, 2, rng=random.Random(9))
    assert result["success"]
    assert result["order"]["address"] == str(derive_order_address(MAKER, int(result["unique_id"])))


def test_init_order_failure_dict(ctx, photon) -> None:
    result = order_api.init_order(ctx, "bogus", MINT_A, MINT_B, 1, 2)

    assert result == {
        "success": False,
        "tx": "",
        "error": result["error"],
        "reason": reject_reasons.INVALID_PUBKEY,
    }
    assert "maker" in result["error"]
    assert photon.calls == []


@pytest.mark.parametrize(
    "amounts, reason",
    [
        (("\u00b2", 20), reject_reasons.INVALID_AMOUNT),
        ((10, "2\u00b3"), reject_reasons.INVALID_AMOUNT),
    ],
)
def test_init_order_non_ascii_digits_fail_cleanly(ctx, photon, amounts, reason) -> None:
    result = order_api.init_order(ctx, MAKER, MINT_A, MINT_B, *amounts, unique_id=1)

    assert result["success"] is False
    assert result["reason"] == reason
    assert photon.calls == []


def test_init_order_malformed_proof_fails_cleanly(ctx, photon) -> None:
    photon.proof = dict(photon.proof, compressedProof={"a": [1] * 31, "b": [2] * 64, "c": [3] * 32})

    result = order_api.init_order(ctx, MAKER, MINT_A, MINT_B, 10, 20, unique_id=1)

    assert result["success"] is False
    assert result["reason"] == reject_reasons.UPSTREAM_FAILURE


def test_cancel_and_update_malformed_account_fail_cleanly(ctx, photon) -> None:
    address = photon.store(make_record())
    del photon.accounts[str(address)]["hash"]

    cancelled = order_api.cancel_order(ctx, MAKER, order_address=address)
    updated = order_api.update_order(ctx, address, MAKER, taking_amount=250)

    assert (cancelled["success"], cancelled["reason"]) == (False, reject_reasons.UPSTREAM_FAILURE)
    assert (updated["success"], updated["reason"]) == (False, reject_reasons.UPSTREAM_FAILURE)


def test_update_and_cancel(ctx, photon) -> None:
    address = photon.store(make_record())

    assert order_api.update_order(ctx, str(address), str(MAKER), taking_amount=250)["success"]
    assert order_api.cancel_order(ctx, str(MAKER), order_address=str(address), payer=str(KEEPER))["success"]
    assert order_api.cancel_order(ctx, str(MAKER), unique_id="42")["success"]


def test_cancel_failures(ctx) -> None:
    missing = order_api.cancel_order(ctx, MAKER, unique_id=5)
    assert missing["success"] is False
    assert missing["reason"] == reject_reasons.ORDER_NOT_FOUND

    assert order_api.cancel_order(ctx, MAKER)["reason"] == reject_reasons.INVALID_PARAMS
    assert order_api.cancel_order(ctx, MAKER, unique_id="x1")["reason"] == reject_reasons.INVALID_PARAMS
    assert order_api.cancel_order(ctx, MAKER, unique_id="\u00b2")["reason"] == reject_reasons.INVALID_PARAMS


def test_update_nothing_to_do(ctx, photon) -> None:
    address = photon.store(make_record())
    result = order_api.update_order(ctx, address, MAKER)
    assert result["reason"] == reject_reasons.NOTHING_TO_UPDATE


def test_get_open_orders_filters_by_maker(ctx, photon) -> None:
    photon.store(make_record(unique_id=1))
    photon.store(make_record(unique_id=2))
    photon.store(make_record(unique_id=3, maker=KEEPER))

    orders = order_api.get_open_orders(ctx, MAKER)

    assert sorted(o.unique_id for o in orders) == [1, 2]
    assert all(o.address == derive_order_address(MAKER, o.unique_id) for o in orders)
    method, params = next(c for c in photon.calls if c[0] == "getCompressedAccountsByOwner")
    assert params["owner"] == str(PROGRAM_ID)
    assert params["filters"][0]["memcmp"] == {"offset": 0, "bytes": str(MAKER)}


def test_get_open_orders_skips_short_records(ctx, photon) -> None:
    photon.store(make_record(unique_id=1))
    photon.accounts["broken"] = dict(next(iter(photon.accounts.values())), data={"data": base64.b64encode(b"\x00" * 10).decode()})

    assert [o.unique_id for o in order_api.get_open_orders(ctx, MAKER)] == [1]


def test_get_order_history(ctx, photon, helius_http) -> None:
    helius_http.payload = [
        {"signature": "sig-1", "instructions": [{"programId": str(PROGRAM_ID)}]},
        {"signature": "sig-2", "instructions": [{"programId": str(PROGRAM_ID)}]},
    ]
    photon.transactions["sig-1"] = {
        "blockTime": 1_700_000_000,
        "meta": {"logMessages": ["Program log: hi", _init_log()]},
    }

    events = order_api.get_order_history(ctx, str(MAKER))

    assert [e.to_dict() for e in events] == [{
        "type": "init",
        "signature": "sig-1",
        "input_mint": str(MINT_A),
        "output_mint": str(MINT_B),
        "making_amount": "1000",
        "taking_amount": "2000",
        "timestamp": 1_700_000_000_000,
    }]
    assert helius_http.calls[0][1]["limit"] == 10


def test_get_order_history_invalid_maker(ctx) -> None:
    with pytest.raises(ValidationError):
        order_api.get_order_history(ctx, "nope")


def test_get_quote(ctx, jupiter_http) -> None:
    jupiter_http.payload = {"inAmount": "2000000", "outAmount": "3000000", "routePlan": []}

    quote = order_api.get_quote(ctx, USDC, MINT_A, 2_000_000)

    assert quote == {"out_amount": 3_000_000, "rate": Decimal("1.5")}


def test_get_quote_uses_configured_slippage(ctx, jupiter_http) -> None:
    ctx.config = dataclasses.replace(ctx.config, default_slippage_bps=120)
    jupiter_http.payload = {"inAmount": "1", "outAmount": "1", "routePlan": []}

    order_api.get_quote(ctx, USDC, MINT_A, 1)

    assert jupiter_http.calls[0][1]["slippageBps"] == "120"


def test_get_quote_unknown_token(ctx) -> None:
    with pytest.raises(ValidationError) as exc_info:
        order_api.get_quote(ctx, USDC, Pubkey(bytes([90] * 32)), 1)
    assert exc_info.value.reason == reject_reasons.UNKNOWN_TOKEN


def test_amount_conversions() -> None:
    assert to_human_readable(1_500_000, 6) == Decimal("1.5")
    assert str(to_human_readable(100, 0)) == "100"
    assert to_raw_amount("1.5", 6) == 1_500_000
    assert to_raw_amount("0.0000001", 6) == 0
    assert to_raw_amount(Decimal("18446744073.709551615"), 9) == 2**64 - 1
    with pytest.raises(ValidationError):
        to_raw_amount("-1", 6)
    with pytest.raises(ValidationError):
        to_raw_amount("abc", 6)
