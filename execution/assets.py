"""execution/assets.py

Asset kind of an order's input side.

The native asset has to be wrapped into a token account before the escrow
program can move it, so the assembler branches on this tag instead of
comparing mint strings at every call site.
"""

from __future__ import annotations

from enum import Enum

from solders.pubkey import Pubkey
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID, WRAPPED_SOL_MINT


class AssetKind(Enum):
    NATIVE = "native"
    STANDARD = "standard"

    @classmethod
    def of_mint(cls, mint: Pubkey) -> "AssetKind":
        """Resolve the kind of a mint (wrapped SOL is native)."""
        return cls.NATIVE if mint == WRAPPED_SOL_MINT else cls.STANDARD

    @property
    def needs_wrapping(self) -> bool:
        return self is AssetKind.NATIVE


def associated_token_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
) -> Pubkey:
    """Associated token account of `owner` for `mint` under `token_program`."""
    address, _bump = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address
