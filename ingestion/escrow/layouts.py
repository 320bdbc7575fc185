"""
ingestion/escrow/layouts.py

Compressed escrow (limit order) account layout definitions.

The record is stored as the data of a compressed account, without an
Anchor discriminator prefix. Offsets are fixed; nothing is length-prefixed.
"""
import base64
import struct
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from solders.pubkey import Pubkey

from integration.errors import TooShortError


# Solana pubkey (32 bytes, base58 encoded)
PUBKEY_LENGTH = 32

MAX_SLIPPAGE_BPS = 10_000

# Escrow record layout, little-endian:
#   maker, unique_id (u64),
#   input_mint, output_mint, input_token_program, output_token_program,
#   ori_making, ori_taking, making, taking (u64),
#   expired_at, created_at, updated_at (i64),
#   slippage_bps, fee_bps (u16)
ESCROW_LAYOUT = struct.Struct('<32sQ32s32s32s32sQQQQqqqHH')

# 228 bytes
ESCROW_LAYOUT_SIZE = ESCROW_LAYOUT.size


@dataclass
class OrderRecord:
    """
    Decoded escrow account of one limit order.

    `address` is not part of the stored bytes; it is attached after decoding
    by re-deriving it from (maker, unique_id).
    """
    maker: Pubkey
    unique_id: int                 # u64: caller-chosen nonce

    # Tokens
    input_mint: Pubkey
    output_mint: Pubkey
    input_token_program: Pubkey
    output_token_program: Pubkey

    # Amounts (atomic units). "original" values are immutable baselines.
    original_making_amount: int    # u64
    original_taking_amount: int    # u64
    making_amount: int             # u64
    taking_amount: int             # u64

    # Timestamps (epoch seconds)
    expired_at: int                # i64: 0 = never
    created_at: int                # i64
    updated_at: int                # i64

    slippage_bps: int              # u16
    fee_bps: int                   # u16

    address: Optional[Pubkey] = field(default=None, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "maker": str(self.maker),
            "uniqueId": str(self.unique_id),
            "address": str(self.address) if self.address is not None else None,
            "tokens": {
                "inputMint": str(self.input_mint),
                "outputMint": str(self.output_mint),
                "inputTokenProgram": str(self.input_token_program),
                "outputTokenProgram": str(self.output_token_program),
            },
            "amount": {
                "oriMakingAmount": str(self.original_making_amount),
                "oriTakingAmount": str(self.original_taking_amount),
                "makingAmount": str(self.making_amount),
                "takingAmount": str(self.taking_amount),
            },
            "expiresAt": self.expired_at,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "slippageBps": self.slippage_bps,
            "feeBps": self.fee_bps,
        }

    @property
    def never_expires(self) -> bool:
        return self.expired_at == 0

    def is_expired(self, now: int) -> bool:
        """Check if the order is past its expiry at epoch second `now`."""
        return not self.never_expires and self.expired_at <= now

    @property
    def filled_making_amount(self) -> int:
        """Input amount already consumed by fills."""
        return self.original_making_amount - self.making_amount

    @property
    def is_partially_filled(self) -> bool:
        return 0 < self.making_amount < self.original_making_amount

    def validate(self) -> List[str]:
        """
        Check the record invariants.

        Returns:
            List of violated invariants (empty if the record is consistent)
        """
        problems = []
        if self.making_amount > self.original_making_amount:
            problems.append("making_amount exceeds original_making_amount")
        if self.taking_amount > self.original_taking_amount:
            problems.append("taking_amount exceeds original_taking_amount")
        if self.input_mint == self.output_mint:
            problems.append("input_mint equals output_mint")
        if self.slippage_bps > MAX_SLIPPAGE_BPS:
            problems.append(f"slippage_bps above {MAX_SLIPPAGE_BPS}")
        if self.expired_at != 0 and self.expired_at <= self.created_at:
            problems.append("expired_at not after created_at")
        return problems


def decode_order_record(data: bytes) -> OrderRecord:
    """
    Decode an escrow record from raw compressed-account data.

    Args:
        data: Raw account data (bytes). Trailing bytes are ignored.

    Returns:
        OrderRecord with `address` unset

    Raises:
        TooShortError: If data is shorter than the layout
    """
    if len(data) < ESCROW_LAYOUT_SIZE:
        raise TooShortError(len(data), ESCROW_LAYOUT_SIZE, what="escrow record")

    (
        maker,
        unique_id,
        input_mint,
        output_mint,
        input_token_program,
        output_token_program,
        ori_making,
        ori_taking,
        making,
        taking,
        expired_at,
        created_at,
        updated_at,
        slippage_bps,
        fee_bps,
    ) = ESCROW_LAYOUT.unpack_from(data, 0)

    return OrderRecord(
        maker=Pubkey(maker),
        unique_id=unique_id,
        input_mint=Pubkey(input_mint),
        output_mint=Pubkey(output_mint),
        input_token_program=Pubkey(input_token_program),
        output_token_program=Pubkey(output_token_program),
        original_making_amount=ori_making,
        original_taking_amount=ori_taking,
        making_amount=making,
        taking_amount=taking,
        expired_at=expired_at,
        created_at=created_at,
        updated_at=updated_at,
        slippage_bps=slippage_bps,
        fee_bps=fee_bps,
    )


def encode_order_record(record: OrderRecord) -> bytes:
    """
    Encode an escrow record into its 228-byte on-chain layout.

    Raises:
        struct.error: If a numeric field does not fit its width
    """
    return ESCROW_LAYOUT.pack(
        bytes(record.maker),
        record.unique_id,
        bytes(record.input_mint),
        bytes(record.output_mint),
        bytes(record.input_token_program),
        bytes(record.output_token_program),
        record.original_making_amount,
        record.original_taking_amount,
        record.making_amount,
        record.taking_amount,
        record.expired_at,
        record.created_at,
        record.updated_at,
        record.slippage_bps,
        record.fee_bps,
    )


def decode_base64(data: str) -> bytes:
    """Decode base64 string to bytes."""
    return base64.b64decode(data, validate=True)


def decode_hex(data: str) -> bytes:
    """Decode hex string to bytes."""
    return bytes.fromhex(data)
