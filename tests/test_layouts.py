from __future__ import annotations

import base64
import struct

import pytest
from solders.pubkey import Pubkey

from ingestion.escrow.address import derive_order_address
from ingestion.escrow.decoder import EscrowDecoder
from ingestion.escrow.layouts import ESCROW_LAYOUT_SIZE, decode_order_record, encode_order_record
from integration import reject_reasons
from integration.errors import DecodeError, TooShortError

from conftest import MAKER, MINT_A, MINT_B, make_record


def test_layout_size_is_228() -> None:
    assert ESCROW_LAYOUT_SIZE == 228


def test_round_trip_preserves_fields() -> None:
    record = make_record(unique_id=2**64 - 1, making=2**63, taking=1, expired_at=1_800_000_000)
    decoded = decode_order_record(encode_order_record(record))
    assert decoded == record
    assert decoded.address is None


def test_fixed_offsets() -> None:
    record = make_record(unique_id=42, making=1_000, taking=2_000, expired_at=1_900_000_000)
    raw = encode_order_record(record)

    assert raw[0:32] == bytes(MAKER)
    assert struct.unpack_from("<Q", raw, 32)[0] == 42
    assert raw[40:72] == bytes(MINT_A)
    assert raw[72:104] == bytes(MINT_B)
    assert struct.unpack_from("<Q", raw, 168)[0] == 1_000
    assert struct.unpack_from("<Q", raw, 184)[0] == 1_000
    assert struct.unpack_from("<Q", raw, 192)[0] == 2_000
    assert struct.unpack_from("<q", raw, 200)[0] == 1_900_000_000
    assert struct.unpack_from("<H", raw, 224)[0] == 50
    assert struct.unpack_from("<H", raw, 226)[0] == 10


def test_trailing_bytes_ignored() -> None:
    record = make_record()
    assert decode_order_record(encode_order_record(record) + b"\xff" * 16) == record


def test_too_short_buffer_rejected() -> None:
    raw = encode_order_record(make_record())[:227]
    with pytest.raises(TooShortError) as exc_info:
        decode_order_record(raw)
    assert exc_info.value.reason == reject_reasons.BUFFER_TOO_SHORT
    assert exc_info.value.got == 227
    assert isinstance(exc_info.value, DecodeError)


def test_signed_timestamps_decode_negative() -> None:
    raw = bytearray(encode_order_record(make_record()))
    struct.pack_into("<q", raw, 208, -5)
    assert decode_order_record(bytes(raw)).created_at == -5


def test_validate_reports_violations() -> None:
    record = make_record()
    assert record.validate() == []

    record.making_amount = record.original_making_amount + 1
    record.output_mint = record.input_mint
    problems = record.validate()
    assert "making_amount exceeds original_making_amount" in problems
    assert "input_mint equals output_mint" in problems


def test_fill_helpers() -> None:
    record = make_record(making=100)
    record.making_amount = 40
    assert record.filled_making_amount == 60
    assert record.is_partially_filled
    assert record.never_expires
    assert not record.is_expired(now=2_000_000_000)

    record.expired_at = 1_700_000_100
    assert record.is_expired(now=1_700_000_100)
    assert not record.is_expired(now=1_700_000_099)


def test_decoder_attaches_derived_address() -> None:
    record = make_record(unique_id=7)
    order = EscrowDecoder().decode_order(encode_order_record(record))
    assert order.address == derive_order_address(MAKER, 7)
    assert EscrowDecoder().check_address(order, derive_order_address(MAKER, 7))
    assert not EscrowDecoder().check_address(order, Pubkey(bytes(32)))


def test_decoder_accepts_base64_and_hex() -> None:
    raw = encode_order_record(make_record(unique_id=9))
    decoder = EscrowDecoder()
    assert decoder.decode_order_from_string(base64.b64encode(raw).decode()).unique_id == 9
    assert decoder.decode_order_from_string(raw.hex()).unique_id == 9


def test_decoder_rejects_garbage_string() -> None:
    with pytest.raises(DecodeError):
        EscrowDecoder().decode_order_from_string("not base64 or hex!")


def test_order_to_dict_uses_string_amounts() -> None:
    info = EscrowDecoder().get_order_info(
        EscrowDecoder().decode_order(encode_order_record(make_record(making=2**64 - 1))),
        now=0,
    )
    assert info["amount"]["makingAmount"] == str(2**64 - 1)
    assert info["uniqueId"] == "42"
    assert info["expired"] is False
    assert info["address"] == str(derive_order_address(MAKER, 42))
