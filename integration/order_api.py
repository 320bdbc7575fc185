"""integration/order_api.py

Order facade: the operations a wallet front-end calls.

Builders return result dicts in the executor convention
(`{"success": bool, "error": str, ...}`) so callers never deal with
exceptions or half-built instruction lists. Read operations return
models and raise OrderEngineError subclasses.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Dict, List, Optional, Union

from solders.pubkey import Pubkey

from execution.models import TransactionEnvelope
from execution.transaction_builder import TransactionAssembler, parse_amount, parse_pubkey
from ingestion.escrow.constants import PROGRAM_ID
from ingestion.escrow.events import HistoryEvent, decode_program_logs
from ingestion.escrow.layouts import OrderRecord
from ingestion.sources.helius import block_time_ms, log_messages
from integration import reject_reasons
from integration.context import OrderContext
from integration.errors import DecodeError, OrderEngineError, ValidationError

logger = logging.getLogger(__name__)

# Maker is the first field of the escrow record
MAKER_OFFSET = 0


def _failure(error: OrderEngineError) -> Dict[str, Any]:
    logger.warning(f"[orders] Rejected ({error.reason}): {error}")
    return {"success": False, "tx": "", "error": str(error), "reason": error.reason}


def _success(envelope: TransactionEnvelope, **extra: Any) -> Dict[str, Any]:
    result = {"success": True, "tx": envelope.to_base64(), "error": ""}
    result.update(extra)
    return result


def init_order(
    ctx: OrderContext,
    maker: Union[str, Pubkey],
    input_mint: Union[str, Pubkey],
    output_mint: Union[str, Pubkey],
    input_amount: Union[int, str],
    output_amount: Union[int, str],
    expiry: Union[int, str] = 0,
    unique_id: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> Dict[str, Any]:
    """
    Build the transaction placing a new order.

    Returns:
        {"success": True, "tx": base64, "unique_id": str, "order": {...}}
        or {"success": False, "error": str, "reason": str}
    """
    try:
        envelope = TransactionAssembler(ctx, rng=rng).build_init(
            maker, input_mint, output_mint, input_amount, output_amount, expiry=expiry, unique_id=unique_id
        )
    except OrderEngineError as e:
        return _failure(e)

    order = {
        "maker": str(envelope.payer),
        "uniqueId": str(envelope.unique_id),
        "address": str(envelope.order_address),
        "inputMint": str(input_mint),
        "outputMint": str(output_mint),
        "makingAmount": str(input_amount),
        "takingAmount": str(output_amount),
        "expiresAt": int(expiry),
    }
    return _success(envelope, unique_id=str(envelope.unique_id), order=order)


def update_order(
    ctx: OrderContext,
    order_address: Union[str, Pubkey],
    maker: Union[str, Pubkey],
    making_amount: Optional[Union[int, str]] = None,
    taking_amount: Optional[Union[int, str]] = None,
    expiry: Optional[Union[int, str]] = None,
) -> Dict[str, Any]:
    """Build the transaction changing an order's amounts or expiry."""
    try:
        envelope = TransactionAssembler(ctx).build_update(
            order_address, maker, making_amount=making_amount, taking_amount=taking_amount, expiry=expiry
        )
    except OrderEngineError as e:
        return _failure(e)
    return _success(envelope)


def cancel_order(
    ctx: OrderContext,
    maker: Union[str, Pubkey],
    order_address: Optional[Union[str, Pubkey]] = None,
    unique_id: Optional[Union[int, str]] = None,
    payer: Optional[Union[str, Pubkey]] = None,
) -> Dict[str, Any]:
    """
    Build the transaction cancelling an order.

    The order is given either by address or by its unique id.
    """
    assembler = TransactionAssembler(ctx)
    try:
        if order_address is not None:
            envelope = assembler.build_cancel(order_address, maker, payer=payer)
        elif unique_id is not None:
            envelope = assembler.build_cancel_by_id(maker, unique_id, payer=payer)
        else:
            raise ValidationError("order_address or unique_id is required")
    except OrderEngineError as e:
        return _failure(e)
    return _success(envelope)


def get_open_orders(ctx: OrderContext, maker: Union[str, Pubkey]) -> List[OrderRecord]:
    """
    List the open orders of `maker`, addresses attached.

    Records that fail to decode are skipped with a warning.
    """
    maker = parse_pubkey(maker, "maker")
    accounts = ctx.photon.get_compressed_accounts_by_owner(
        PROGRAM_ID, memcmp_offset=MAKER_OFFSET, memcmp_bytes=bytes(maker)
    )

    orders: List[OrderRecord] = []
    for account in accounts:
        try:
            order = ctx.decoder.decode_order(account.data)
        except DecodeError as e:
            logger.warning(f"[orders] Skipping undecodable account {account.address}: {e}")
            continue
        if order.maker != maker:
            continue
        orders.append(order)

    logger.info(f"[orders] {len(orders)} open orders for {maker}")
    return orders


def get_order_history(
    ctx: OrderContext,
    maker: Union[str, Pubkey],
    limit: Optional[int] = None,
) -> List[HistoryEvent]:
    """
    Reconstruct the recent order activity of `maker` from program logs.

    Args:
        ctx: Order context
        maker: Wallet
        limit: Transactions scanned (defaults to the configured history limit)

    Returns:
        Events, newest transaction first, in log order within a transaction
    """
    maker = parse_pubkey(maker, "maker")
    limit = limit or ctx.config.history_limit
    signatures = ctx.helius.get_program_signatures(maker, PROGRAM_ID, limit=limit)

    events: List[HistoryEvent] = []
    for signature in signatures:
        tx = ctx.photon.get_transaction(signature)
        if not tx:
            logger.warning(f"[history] Transaction {signature} not found, skipping")
            continue
        timestamp = block_time_ms(tx, int(time.time() * 1000))
        try:
            events.extend(decode_program_logs(log_messages(tx), signature, timestamp))
        except DecodeError as e:
            logger.warning(f"[history] Malformed event in {signature}: {e}")

    logger.info(f"[history] {len(events)} events from {len(signatures)} transactions for {maker}")
    return events


def get_quote(
    ctx: OrderContext,
    input_mint: Union[str, Pubkey],
    output_mint: Union[str, Pubkey],
    amount: Union[int, str],
) -> Optional[Dict[str, Any]]:
    """
    Estimate what `amount` of the input token fetches at market.

    Returns:
        {"out_amount": int, "rate": Decimal}, or None if no quote is available

    Raises:
        ValidationError: On malformed input or tokens missing from the registry
    """
    amount = parse_amount(amount, "amount")
    tokens = []
    for mint in (input_mint, output_mint):
        token = ctx.tokens.get(parse_pubkey(mint, "mint"))
        if token is None:
            raise ValidationError(f"Unknown token mint: {mint}", reason=reject_reasons.UNKNOWN_TOKEN)
        tokens.append(token)
    return ctx.jupiter.get_current_rate(
        tokens[0], tokens[1], amount, slippage_bps=ctx.config.default_slippage_bps
    )
