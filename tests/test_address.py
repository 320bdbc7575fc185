from __future__ import annotations

import random
import struct

import pytest
from eth_utils import keccak
from solders.pubkey import Pubkey

from ingestion.escrow.address import (
    derive_address,
    derive_address_seed,
    derive_order_address,
    order_seeds,
    random_unique_id,
)
from ingestion.escrow.constants import ADDRESS_TREE, PROGRAM_ID
from integration.errors import ValidationError

from conftest import KEEPER, MAKER


def test_order_address_is_deterministic() -> None:
    assert derive_order_address(MAKER, 42) == derive_order_address(MAKER, 42)


def test_order_address_depends_on_id_and_maker() -> None:
    base = derive_order_address(MAKER, 42)
    assert derive_order_address(MAKER, 43) != base
    assert derive_order_address(KEEPER, 42) != base


def test_order_address_depends_on_tree_and_program() -> None:
    base = derive_order_address(MAKER, 42)
    assert derive_order_address(MAKER, 42, address_tree=Pubkey(bytes([1] * 32))) != base
    assert derive_order_address(MAKER, 42, program_id=Pubkey(bytes([2] * 32))) != base


def test_seed_and_address_fit_the_field() -> None:
    seed = derive_address_seed(order_seeds(MAKER, 42))
    assert len(seed) == 32
    assert seed[0] == 0
    assert bytes(derive_address(seed))[0] == 0


def test_seed_hashes_program_then_seeds() -> None:
    seeds = [b"escrow", struct.pack("<Q", 42), bytes(MAKER)]
    expected = keccak(bytes(PROGRAM_ID) + b"escrow" + struct.pack("<Q", 42) + bytes(MAKER))
    assert derive_address_seed(seeds) == b"\x00" + expected[1:]


def test_address_hashes_tree_seed_and_bump() -> None:
    seed = derive_address_seed(order_seeds(MAKER, 1))
    expected = keccak(bytes(ADDRESS_TREE) + seed + bytes([255]))
    assert bytes(derive_address(seed)) == b"\x00" + expected[1:]


@pytest.mark.parametrize(
    "unique_id, seed_hex, address",
    [
        (
            42,
            "005f95e9646b5b390a5bf22522aef00f4176e8fe3372236fd4a68305e5bf05c8",
            "14PM3hhXRrwJa6zj37PEvLvG66iKs7A5RoL4xFXim5Me",
        ),
        (
            1,
            "00363c5fc75d804dfa46913b75c8d48d7fa4873f176389d0b036b7e5b707650f",
            "13U57imrj8xsbMezdWN2FpA1WU6tQo15hDfQie7PBEaC",
        ),
    ],
)
def test_order_address_known_vectors(unique_id, seed_hex, address) -> None:
    # maker [11] * 32, devnet program id and address tree
    assert derive_address_seed(order_seeds(MAKER, unique_id)).hex() == seed_hex
    assert str(derive_order_address(MAKER, unique_id)) == address


def test_order_seeds_layout() -> None:
    assert order_seeds(MAKER, 1) == [b"escrow", b"\x01" + b"\x00" * 7, bytes(MAKER)]


@pytest.mark.parametrize("unique_id", [-1, 2**64, "42", 1.5, True])
def test_invalid_unique_id_rejected(unique_id) -> None:
    with pytest.raises(ValidationError):
        derive_order_address(MAKER, unique_id)


def test_derive_address_requires_32_byte_seed() -> None:
    with pytest.raises(ValueError):
        derive_address(b"\x00" * 31)


def test_random_unique_id_combines_two_32_bit_draws() -> None:
    expected_rng = random.Random(1234)
    high = expected_rng.getrandbits(32)
    low = expected_rng.getrandbits(32)

    assert random_unique_id(random.Random(1234)) == (high << 32) | low


def test_random_unique_id_fits_u64() -> None:
    for _ in range(50):
        assert 0 <= random_unique_id() < 2**64
