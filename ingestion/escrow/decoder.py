"""
ingestion/escrow/decoder.py

Escrow Decoder - High-level interface for compressed order records.
"""
import logging
from typing import Any, Dict, Optional

from solders.pubkey import Pubkey

from integration.errors import DecodeError

from .address import derive_order_address
from .constants import ADDRESS_TREE, PROGRAM_ID
from .layouts import OrderRecord, decode_base64, decode_hex, decode_order_record

logger = logging.getLogger(__name__)

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def _looks_like_hex(data: str) -> bool:
    return len(data) % 2 == 0 and bool(data) and set(data) <= _HEX_DIGITS


class EscrowDecoder:
    """
    High-level decoder for escrow order records.

    Decoding is followed by an explicit enrichment step that re-derives the
    order address, so the address is always a function of (maker, unique_id)
    and never trusted from storage.
    """

    def __init__(self, program_id: Pubkey = PROGRAM_ID, address_tree: Pubkey = ADDRESS_TREE):
        self._program_id = program_id
        self._address_tree = address_tree

    def attach_address(self, order: OrderRecord) -> OrderRecord:
        """Derive and attach the order address in place."""
        order.address = derive_order_address(
            order.maker,
            order.unique_id,
            program_id=self._program_id,
            address_tree=self._address_tree,
        )
        return order

    def decode_order(self, data: bytes) -> OrderRecord:
        """
        Decode an order from raw bytes and attach its address.

        Args:
            data: Raw compressed account data (bytes)

        Returns:
            OrderRecord with address set
        """
        try:
            order = decode_order_record(data)
        except DecodeError as e:
            logger.error(f"[escrow] Failed to decode order: {e}")
            raise
        self.attach_address(order)
        logger.debug(f"[escrow] Decoded order {order.unique_id} of {str(order.maker)[:8]}...")
        return order

    def decode_order_from_string(self, data: str) -> OrderRecord:
        """
        Decode an order from a base64 or hex string.

        Args:
            data: Encoded string (base64 as returned by the indexer, or hex)

        Returns:
            OrderRecord with address set
        """
        # Hex digits are also valid base64, so hex wins when it parses
        decoders = (decode_hex, decode_base64) if _looks_like_hex(data) else (decode_base64,)
        for decode in decoders:
            try:
                raw = decode(data)
                break
            except ValueError:
                continue
        else:
            raise DecodeError("Order data is neither base64 nor hex")
        return self.decode_order(raw)

    def check_address(self, order: OrderRecord, expected: Pubkey) -> bool:
        """
        Check that a decoded order lives at `expected`.

        A mismatch means the indexer returned a record for another address.
        """
        derived = order.address if order.address is not None else self.attach_address(order).address
        if derived != expected:
            logger.warning(f"[escrow] Address mismatch: derived {derived}, expected {expected}")
            return False
        return True

    def get_order_info(self, order: OrderRecord, now: Optional[int] = None) -> Dict[str, Any]:
        """
        Get human-readable order info.

        Args:
            order: Decoded OrderRecord
            now: Epoch seconds used for the expiry check

        Returns:
            Dict with order information
        """
        info = order.to_dict()
        info["partiallyFilled"] = order.is_partially_filled
        info["filledMakingAmount"] = str(order.filled_making_amount)
        if now is not None:
            info["expired"] = order.is_expired(now)
        problems = order.validate()
        if problems:
            info["problems"] = problems
        return info


def decode_escrow_order(data: bytes) -> OrderRecord:
    """
    Convenience function to decode an escrow order with its address.

    Args:
        data: Raw account data

    Returns:
        OrderRecord object
    """
    decoder = EscrowDecoder()
    return decoder.decode_order(data)
