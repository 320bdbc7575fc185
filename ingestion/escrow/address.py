"""
ingestion/escrow/address.py

Order address derivation for compressed escrow accounts.

An order lives at an address in the compression address tree. The address
is a pure function of (maker, unique_id), so it is used both to create new
orders and to locate existing ones without a lookup table.
"""
import random
import secrets
import struct
from typing import Optional, Sequence

from eth_utils import keccak
from solders.pubkey import Pubkey

from integration.errors import ValidationError

from .constants import ADDRESS_TREE, ESCROW_SEED, PROGRAM_ID


U64_MAX = 2**64 - 1

# Bump appended when hashing the seed into the address tree namespace.
ADDRESS_BUMP = 255


def _truncate_to_field(digest: bytes) -> bytes:
    """Zero the top byte so the value fits the BN254 scalar field."""
    return b"\x00" + digest[1:]


def derive_address_seed(seeds: Sequence[bytes], program_id: Pubkey = PROGRAM_ID) -> bytes:
    """
    Hash a seed sequence into a single 32-byte seed owned by a program.

    Args:
        seeds: Seed byte strings, hashed in order
        program_id: Owning program

    Returns:
        32-byte address seed
    """
    digest = keccak(bytes(program_id) + b"".join(bytes(s) for s in seeds))
    return _truncate_to_field(digest)


def derive_address(seed: bytes, address_tree: Pubkey = ADDRESS_TREE) -> Pubkey:
    """
    Map an address seed into the namespace of an address tree.

    Args:
        seed: 32-byte seed from derive_address_seed
        address_tree: Address Merkle tree

    Returns:
        Derived address

    Raises:
        ValueError: If seed is not 32 bytes
    """
    if len(seed) != 32:
        raise ValueError(f"Address seed must be 32 bytes, got {len(seed)}")
    digest = keccak(bytes(address_tree) + seed + bytes([ADDRESS_BUMP]))
    return Pubkey(_truncate_to_field(digest))


def order_seeds(maker: Pubkey, unique_id: int) -> list:
    """Seed sequence of an order: tag, unique id (u64 LE), maker."""
    if not isinstance(unique_id, int) or isinstance(unique_id, bool):
        raise ValidationError(f"unique_id must be an integer, got {unique_id!r}")
    if not 0 <= unique_id <= U64_MAX:
        raise ValidationError(f"unique_id out of u64 range: {unique_id}")
    return [ESCROW_SEED, struct.pack("<Q", unique_id), bytes(maker)]


def derive_order_address(
    maker: Pubkey,
    unique_id: int,
    program_id: Pubkey = PROGRAM_ID,
    address_tree: Pubkey = ADDRESS_TREE,
) -> Pubkey:
    """
    Derive the address of the order created by `maker` with `unique_id`.

    Args:
        maker: Maker public key
        unique_id: Per-order u64 nonce
        program_id: Escrow program
        address_tree: Address Merkle tree

    Returns:
        Order address
    """
    seed = derive_address_seed(order_seeds(maker, unique_id), program_id)
    return derive_address(seed, address_tree)


def random_unique_id(rng: Optional[random.Random] = None) -> int:
    """
    Draw a new order nonce from two independent 32-bit values.

    Uses the `secrets` CSPRNG unless an explicit generator is passed.
    Collisions are not checked.
    """
    if rng is None:
        high = secrets.randbits(32)
        low = secrets.randbits(32)
    else:
        high = rng.getrandbits(32)
        low = rng.getrandbits(32)
    return (high << 32) | low
