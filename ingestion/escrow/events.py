"""
ingestion/escrow/events.py

Escrow program event layouts and the history event decoder.

Events are emitted as `Program data: <base64>` log lines. Each payload
starts with an 8-byte discriminator; payloads with unknown discriminators
are unrelated log noise and are skipped without error.
"""
import base64
import binascii
import logging
import struct
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union

from solders.pubkey import Pubkey

from integration.errors import DecodeError, TooShortError

logger = logging.getLogger(__name__)


PROGRAM_DATA_PREFIX = "Program data: "

DISCRIMINATOR_LENGTH = 8

ORDER_INITIALIZED_DISCRIMINATOR = bytes([180, 118, 44, 249, 166, 25, 40, 81])
ORDER_CANCELLED_DISCRIMINATOR = bytes([108, 56, 128, 68, 168, 113, 168, 239])
ORDER_UPDATED_DISCRIMINATOR = bytes([74, 87, 9, 53, 182, 80, 78, 75])
FILL_EVENT_DISCRIMINATOR = bytes([13, 89, 41, 228, 105, 178, 45, 112])

# History event types
EVENT_INIT = "init"
EVENT_CANCEL = "cancel"
EVENT_EXPIRE = "expire"
EVENT_FILL = "fill"
EVENT_PARTIAL_FILL = "partial fill"
EVENT_UPDATE = "update"

FILL_TYPE_FULL = 0

# escrow_address, maker, unique_id, input_mint, output_mint,
# input_decimals, output_decimals, making, taking, expired_at
ORDER_STATE_EVENT_LAYOUT = struct.Struct('<32s32sQ32s32sBBQQq')

# escrow_address, maker, unique_id, input_mint, output_mint,
# making, taking, is_expired, cancelled_by, timestamp
ORDER_CANCELLED_LAYOUT = struct.Struct('<32s32sQ32s32sQQB32sq')

# escrow_address, maker, input_mint, output_mint, unique_id,
# in_amount, out_amount, fee_bps, fill_type
FILL_EVENT_LAYOUT = struct.Struct('<32s32s32s32sQQQHB')


@dataclass
class OrderInitializedEvent:
    escrow_address: Pubkey
    maker: Pubkey
    unique_id: int
    input_mint: Pubkey
    output_mint: Pubkey
    input_mint_decimals: int
    output_mint_decimals: int
    making_amount: int
    taking_amount: int
    expired_at: int


@dataclass
class OrderUpdatedEvent:
    escrow_address: Pubkey
    maker: Pubkey
    unique_id: int
    input_mint: Pubkey
    output_mint: Pubkey
    input_mint_decimals: int
    output_mint_decimals: int
    making_amount: int
    taking_amount: int
    expired_at: int


@dataclass
class OrderCancelledEvent:
    escrow_address: Pubkey
    maker: Pubkey
    unique_id: int
    input_mint: Pubkey
    output_mint: Pubkey
    making_amount: int
    taking_amount: int
    is_expired: bool
    cancelled_by: Pubkey
    timestamp: int


@dataclass
class FillEvent:
    escrow_address: Pubkey
    maker: Pubkey
    input_mint: Pubkey
    output_mint: Pubkey
    unique_id: int
    in_amount: int
    out_amount: int
    fee_bps: int
    fill_type: int               # u8: 0 = full, otherwise partial

    @property
    def is_full(self) -> bool:
        return self.fill_type == FILL_TYPE_FULL


RawEvent = Union[OrderInitializedEvent, OrderUpdatedEvent, OrderCancelledEvent, FillEvent]


@dataclass
class HistoryEvent:
    """
    Normalized, read-only projection of one escrow event.

    Attributes:
        type: init, cancel, expire, fill, partial fill or update
        signature: Transaction signature the event was emitted in
        timestamp: Block time in milliseconds
    """
    type: str
    signature: str
    input_mint: str
    output_mint: str
    making_amount: int
    taking_amount: int
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "signature": self.signature,
            "input_mint": self.input_mint,
            "output_mint": self.output_mint,
            # Strings keep u64 precision for JSON consumers
            "making_amount": str(self.making_amount),
            "taking_amount": str(self.taking_amount),
            "timestamp": self.timestamp,
        }


def _unpack(layout: struct.Struct, body: bytes, name: str) -> tuple:
    if len(body) < layout.size:
        raise TooShortError(len(body) + DISCRIMINATOR_LENGTH, layout.size + DISCRIMINATOR_LENGTH, what=name)
    return layout.unpack_from(body, 0)


def _parse_order_state(body: bytes, cls, name: str):
    (
        escrow_address,
        maker,
        unique_id,
        input_mint,
        output_mint,
        input_decimals,
        output_decimals,
        making,
        taking,
        expired_at,
    ) = _unpack(ORDER_STATE_EVENT_LAYOUT, body, name)
    return cls(
        escrow_address=Pubkey(escrow_address),
        maker=Pubkey(maker),
        unique_id=unique_id,
        input_mint=Pubkey(input_mint),
        output_mint=Pubkey(output_mint),
        input_mint_decimals=input_decimals,
        output_mint_decimals=output_decimals,
        making_amount=making,
        taking_amount=taking,
        expired_at=expired_at,
    )


def _parse_cancelled(body: bytes) -> OrderCancelledEvent:
    (
        escrow_address,
        maker,
        unique_id,
        input_mint,
        output_mint,
        making,
        taking,
        is_expired,
        cancelled_by,
        timestamp,
    ) = _unpack(ORDER_CANCELLED_LAYOUT, body, "OrderCancelled")
    return OrderCancelledEvent(
        escrow_address=Pubkey(escrow_address),
        maker=Pubkey(maker),
        unique_id=unique_id,
        input_mint=Pubkey(input_mint),
        output_mint=Pubkey(output_mint),
        making_amount=making,
        taking_amount=taking,
        is_expired=is_expired == 1,
        cancelled_by=Pubkey(cancelled_by),
        timestamp=timestamp,
    )


def _parse_fill(body: bytes) -> FillEvent:
    (
        escrow_address,
        maker,
        input_mint,
        output_mint,
        unique_id,
        in_amount,
        out_amount,
        fee_bps,
        fill_type,
    ) = _unpack(FILL_EVENT_LAYOUT, body, "FillEvent")
    return FillEvent(
        escrow_address=Pubkey(escrow_address),
        maker=Pubkey(maker),
        input_mint=Pubkey(input_mint),
        output_mint=Pubkey(output_mint),
        unique_id=unique_id,
        in_amount=in_amount,
        out_amount=out_amount,
        fee_bps=fee_bps,
        fill_type=fill_type,
    )


def parse_raw_event(data: bytes) -> Optional[RawEvent]:
    """
    Classify and parse a decoded event payload.

    Args:
        data: Raw payload including the 8-byte discriminator

    Returns:
        Typed event, or None if the discriminator is not an escrow event

    Raises:
        TooShortError: If the discriminator matches but the body is truncated
    """
    discriminator = data[:DISCRIMINATOR_LENGTH]
    body = data[DISCRIMINATOR_LENGTH:]

    if discriminator == ORDER_INITIALIZED_DISCRIMINATOR:
        return _parse_order_state(body, OrderInitializedEvent, "OrderInitialized")
    if discriminator == ORDER_CANCELLED_DISCRIMINATOR:
        return _parse_cancelled(body)
    if discriminator == ORDER_UPDATED_DISCRIMINATOR:
        return _parse_order_state(body, OrderUpdatedEvent, "OrderUpdated")
    if discriminator == FILL_EVENT_DISCRIMINATOR:
        return _parse_fill(body)
    return None


def to_history_event(event: RawEvent, signature: str, timestamp: int) -> HistoryEvent:
    """Collapse a typed event into its history projection."""
    if isinstance(event, OrderInitializedEvent):
        kind, making, taking = EVENT_INIT, event.making_amount, event.taking_amount
    elif isinstance(event, OrderCancelledEvent):
        kind = EVENT_EXPIRE if event.is_expired else EVENT_CANCEL
        making, taking = event.making_amount, event.taking_amount
    elif isinstance(event, FillEvent):
        kind = EVENT_FILL if event.is_full else EVENT_PARTIAL_FILL
        making, taking = event.in_amount, event.out_amount
    elif isinstance(event, OrderUpdatedEvent):
        kind, making, taking = EVENT_UPDATE, event.making_amount, event.taking_amount
    else:
        raise DecodeError(f"Unsupported event type: {type(event).__name__}")

    return HistoryEvent(
        type=kind,
        signature=signature,
        input_mint=str(event.input_mint),
        output_mint=str(event.output_mint),
        making_amount=making,
        taking_amount=taking,
        timestamp=timestamp,
    )


def decode_event(payload: str, signature: str = "", timestamp: int = 0) -> Optional[HistoryEvent]:
    """
    Decode one base64 event payload into a history event.

    Args:
        payload: Base64 payload (the part after "Program data: ")
        signature: Transaction signature to attach
        timestamp: Block time in milliseconds to attach

    Returns:
        HistoryEvent, or None when the payload is not an escrow event
    """
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None

    event = parse_raw_event(data)
    if event is None:
        return None
    return to_history_event(event, signature, timestamp)


def decode_program_logs(
    log_messages: Iterable[str],
    signature: str = "",
    timestamp: int = 0,
) -> List[HistoryEvent]:
    """
    Decode every escrow event found in a transaction's log messages.

    Args:
        log_messages: Log lines from transaction meta
        signature: Transaction signature
        timestamp: Block time in milliseconds

    Returns:
        Events in log order
    """
    events: List[HistoryEvent] = []
    for line in log_messages:
        if not line.startswith(PROGRAM_DATA_PREFIX):
            continue
        event = decode_event(line[len(PROGRAM_DATA_PREFIX):], signature, timestamp)
        if event is not None:
            events.append(event)

    logger.debug(f"[escrow] Decoded {len(events)} events from {signature or 'logs'}")
    return events
