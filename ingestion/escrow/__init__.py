"""
ingestion/escrow package

Compressed escrow (limit order) records: address derivation, account
layout codec and event decoding.
"""
from .address import derive_address, derive_address_seed, derive_order_address, random_unique_id
from .decoder import EscrowDecoder, decode_escrow_order
from .events import HistoryEvent, decode_event, decode_program_logs, parse_raw_event
from .layouts import ESCROW_LAYOUT_SIZE, OrderRecord, decode_order_record, encode_order_record

__all__ = [
    'derive_address',
    'derive_address_seed',
    'derive_order_address',
    'random_unique_id',
    'EscrowDecoder',
    'decode_escrow_order',
    'HistoryEvent',
    'decode_event',
    'decode_program_logs',
    'parse_raw_event',
    'ESCROW_LAYOUT_SIZE',
    'OrderRecord',
    'decode_order_record',
    'encode_order_record',
]
