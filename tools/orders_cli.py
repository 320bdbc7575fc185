#!/usr/bin/env python3
"""
Limit order CLI.

Builds unsigned order transactions and inspects orders from the command
line. Every command prints one JSON document to stdout.

Examples:
  python3 -m tools.orders_cli derive --maker <pubkey> --id 42
  python3 -m tools.orders_cli init --maker <pubkey> --input-mint <mint> \\
      --output-mint <mint> --making 1000000 --taking 2000000
  python3 -m tools.orders_cli quote --input-mint <mint> --output-mint <mint> \\
      --amount 1.5 --human
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from config.loader import load_engine_config
from execution.transaction_builder import parse_pubkey
from ingestion.escrow.address import derive_order_address
from ingestion.escrow.decoder import EscrowDecoder
from integration import order_api, reject_reasons
from integration.amounts import to_human_readable, to_raw_amount
from integration.context import OrderContext, build_context
from integration.errors import OrderEngineError, ValidationError


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Build and inspect compressed limit orders')
    parser.add_argument('--config', '-c', type=Path, default=None, help='Engine config YAML')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging to stderr')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('init', help='Build an order creation transaction')
    p.add_argument('--maker', required=True)
    p.add_argument('--input-mint', required=True)
    p.add_argument('--output-mint', required=True)
    p.add_argument('--making', required=True, help='Input amount (atomic units)')
    p.add_argument('--taking', required=True, help='Output amount (atomic units)')
    p.add_argument('--human', action='store_true', help='Amounts are in token units, not atomic units')
    p.add_argument('--expiry', type=int, default=0, help='Epoch seconds, 0 = never')
    p.add_argument('--id', dest='unique_id', type=int, default=None, help='Order nonce (random if omitted)')

    p = sub.add_parser('update', help='Build an order update transaction')
    p.add_argument('--address', required=True)
    p.add_argument('--maker', required=True)
    p.add_argument('--making', type=int, default=None)
    p.add_argument('--taking', type=int, default=None)
    p.add_argument('--expiry', type=int, default=None)

    p = sub.add_parser('cancel', help='Build an order cancellation transaction')
    p.add_argument('--maker', required=True)
    target = p.add_mutually_exclusive_group(required=True)
    target.add_argument('--address')
    target.add_argument('--id', dest='unique_id', type=int)
    p.add_argument('--payer', default=None, help='Fee payer (defaults to the maker)')

    p = sub.add_parser('orders', help='List open orders of a maker')
    p.add_argument('--maker', required=True)

    p = sub.add_parser('history', help='Show recent order activity of a maker')
    p.add_argument('--maker', required=True)
    p.add_argument('--limit', type=int, default=None)

    p = sub.add_parser('quote', help='Estimate the market output for an amount')
    p.add_argument('--input-mint', required=True)
    p.add_argument('--output-mint', required=True)
    p.add_argument('--amount', required=True, help='Input amount (atomic units)')
    p.add_argument('--human', action='store_true', help='Amount is in token units, not atomic units')

    p = sub.add_parser('derive', help='Derive an order address (offline)')
    p.add_argument('--maker', required=True)
    p.add_argument('--id', dest='unique_id', required=True, type=int)

    p = sub.add_parser('decode', help='Decode an escrow record (offline)')
    p.add_argument('--data', required=True, help='Record bytes as base64 or hex')

    return parser


def _decimals(ctx: OrderContext, mint: str) -> int:
    token = ctx.tokens.get(parse_pubkey(mint, 'mint'))
    if token is None:
        raise ValidationError(f"Unknown token mint: {mint}", reason=reject_reasons.UNKNOWN_TOKEN)
    return token.decimals


def _atomic(ctx: OrderContext, mint: str, amount: str, human: bool) -> str:
    """Amount in atomic units; with --human, `amount` is converted from token units."""
    if not human:
        return amount
    return str(to_raw_amount(amount, _decimals(ctx, mint)))


def _run_offline(args: argparse.Namespace) -> int:
    if args.command == 'derive':
        maker = parse_pubkey(args.maker, 'maker')
        address = derive_order_address(maker, args.unique_id)
        _print({"maker": str(maker), "uniqueId": str(args.unique_id), "address": str(address)})
        return 0

    decoder = EscrowDecoder()
    order = decoder.decode_order_from_string(args.data)
    _print(decoder.get_order_info(order))
    return 0


def _run_online(args: argparse.Namespace) -> int:
    ctx = build_context(load_engine_config(args.config))

    if args.command == 'init':
        result = order_api.init_order(
            ctx, args.maker, args.input_mint, args.output_mint,
            _atomic(ctx, args.input_mint, args.making, args.human),
            _atomic(ctx, args.output_mint, args.taking, args.human),
            expiry=args.expiry, unique_id=args.unique_id,
        )
    elif args.command == 'update':
        result = order_api.update_order(
            ctx, args.address, args.maker,
            making_amount=args.making, taking_amount=args.taking, expiry=args.expiry,
        )
    elif args.command == 'cancel':
        result = order_api.cancel_order(
            ctx, args.maker, order_address=args.address, unique_id=args.unique_id, payer=args.payer,
        )
    elif args.command == 'orders':
        _print({"orders": [o.to_dict() for o in order_api.get_open_orders(ctx, args.maker)]})
        return 0
    elif args.command == 'history':
        events = order_api.get_order_history(ctx, args.maker, limit=args.limit)
        _print({"history": [e.to_dict() for e in events]})
        return 0
    else:
        amount = _atomic(ctx, args.input_mint, args.amount, args.human)
        quote = order_api.get_quote(ctx, args.input_mint, args.output_mint, amount)
        if quote is not None:
            quote["out_amount_ui"] = to_human_readable(quote["out_amount"], _decimals(ctx, args.output_mint))
        _print({"quote": quote})
        return 0 if quote is not None else 1

    _print(result)
    return 0 if result["success"] else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )

    try:
        if args.command in ('derive', 'decode'):
            return _run_offline(args)
        return _run_online(args)
    except OrderEngineError as e:
        print(f"Error ({e.reason}): {e}", file=sys.stderr)
        return 2
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
