"""execution/transaction_builder.py

Builds unsigned init / update / cancel transactions for compressed orders.

Each build validates its inputs before touching the network, then gathers
the current record and a validity proof, and lays out:

    compute budget, [wrap native input], primary instruction, [unwrap]

The envelope is never signed here; the caller signs and submits it.
"""

from __future__ import annotations

import logging
import random
from typing import List, Optional, Tuple, Union

from solders.instruction import Instruction
from solders.pubkey import Pubkey

from execution.assets import AssetKind
from execution.instructions import (
    AccountParams,
    CancelOrderArgs,
    InitializeOrderArgs,
    OrderAccounts,
    PackedAddressTreeInfo,
    PackedStateTreeInfo,
    UpdateOrderArgs,
    build_cancel_order_ix,
    build_initialize_order_ix,
    build_update_order_ix,
    compute_budget_ix,
    unwrap_native_ix,
    wrap_native_ixs,
)
from execution.models import TransactionEnvelope
from ingestion.compression.models import AddressWithTree, CompressedAccount, HashWithTree, ValidityProof
from ingestion.escrow import constants as c
from ingestion.escrow.address import U64_MAX, derive_order_address, random_unique_id
from ingestion.escrow.layouts import OrderRecord
from integration import reject_reasons
from integration.context import OrderContext
from integration.errors import DecodeError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


I64_MAX = 2**63 - 1

PubkeyLike = Union[str, Pubkey]


def parse_pubkey(value: PubkeyLike, name: str) -> Pubkey:
    """Parse a base58 public key, raising ValidationError on garbage."""
    if isinstance(value, Pubkey):
        return value
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{name} must be a base58 public key", reason=reject_reasons.INVALID_PUBKEY)
    try:
        return Pubkey.from_string(value)
    except ValueError:
        raise ValidationError(f"{name} is not a valid public key: {value}", reason=reject_reasons.INVALID_PUBKEY)


def _digits_to_int(value: Union[int, str]) -> Union[int, str]:
    """Convert an ASCII digit string to int; anything else is returned as is."""
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    return value


def parse_amount(value: Union[int, str], name: str) -> int:
    """Parse a positive u64 amount given as int or decimal string."""
    value = _digits_to_int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}", reason=reject_reasons.INVALID_AMOUNT)
    if not 0 < value <= U64_MAX:
        raise ValidationError(f"{name} must be in [1, 2^64), got {value}", reason=reject_reasons.INVALID_AMOUNT)
    return value


def parse_expiry(value: Union[int, str], name: str = "expiry") -> int:
    """Parse an expiry in epoch seconds (0 means never)."""
    value = _digits_to_int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}", reason=reject_reasons.INVALID_EXPIRY)
    if not 0 <= value <= I64_MAX:
        raise ValidationError(f"{name} out of range: {value}", reason=reject_reasons.INVALID_EXPIRY)
    return value



def parse_unique_id(value: Union[int, str]) -> int:
    """Parse an order nonce (u64) given as int or decimal string."""
    value = _digits_to_int(value)
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= U64_MAX:
        raise ValidationError(f"unique_id must be an integer in [0, 2^64), got {value!r}")
    return value


class TransactionAssembler:
    """
    Assembles order transactions against the services in an OrderContext.

    Args:
        ctx: Clients, token registry and compute limits
        rng: Optional random source for unique ids (tests pass a seeded one)
    """

    def __init__(self, ctx: OrderContext, rng: Optional[random.Random] = None):
        self._ctx = ctx
        self._rng = rng

    def _token_program(self, mint: Pubkey) -> Pubkey:
        program = self._ctx.tokens.token_program(mint)
        if program is None:
            raise ValidationError(f"Unknown token mint: {mint}", reason=reject_reasons.UNKNOWN_TOKEN)
        return program

    def _fetch_order(self, order_address: Pubkey, maker: Pubkey) -> Tuple[CompressedAccount, OrderRecord]:
        account = self._ctx.photon.get_compressed_account(order_address)
        if account is None:
            raise NotFoundError("order not found")

        record = self._ctx.decoder.decode_order(account.data)
        if not self._ctx.decoder.check_address(record, order_address):
            raise DecodeError(f"Record at {order_address} derives to {record.address}")
        if record.maker != maker:
            raise ValidationError(f"Order {order_address} belongs to {record.maker}, not {maker}")
        return account, record

    def _state_tree_info(self, account: CompressedAccount) -> Tuple[Pubkey, Pubkey, PackedStateTreeInfo, ValidityProof]:
        tree = account.tree or c.STATE_TREE
        queue = account.queue or c.STATE_QUEUE
        proof = self._ctx.photon.get_validity_proof(hashes=[HashWithTree(account.hash, tree, queue)])
        tree_info = PackedStateTreeInfo(root_index=proof.root_index, leaf_index=account.leaf_index)
        return tree, queue, tree_info, proof

    def _envelope(
        self,
        payer: Pubkey,
        instructions: List[Instruction],
        compute_units: int,
        order_address: Pubkey,
        unique_id: int,
        signers: List[Pubkey],
    ) -> TransactionEnvelope:
        blockhash = self._ctx.photon.get_latest_blockhash()
        return TransactionEnvelope(
            payer=payer,
            recent_blockhash=blockhash,
            instructions=instructions,
            compute_unit_limit=compute_units,
            order_address=order_address,
            unique_id=unique_id,
            signers=signers,
        )

    def build_init(
        self,
        maker: PubkeyLike,
        input_mint: PubkeyLike,
        output_mint: PubkeyLike,
        input_amount: Union[int, str],
        output_amount: Union[int, str],
        expiry: Union[int, str] = 0,
        unique_id: Optional[Union[int, str]] = None,
    ) -> TransactionEnvelope:
        """
        Build the transaction creating a new order.

        Args:
            maker: Order owner and fee payer
            input_mint: Token given
            output_mint: Token wanted
            input_amount: Amount given (atomic units)
            output_amount: Amount wanted (atomic units)
            expiry: Epoch seconds, 0 for no expiry
            unique_id: Order nonce, random when omitted

        Returns:
            TransactionEnvelope with order_address and unique_id set

        Raises:
            ValidationError: On malformed input (before any network call)
            ProofUnavailableError: If no non-inclusion proof is returned
            UpstreamError: On indexer / RPC failure
        """
        maker = parse_pubkey(maker, "maker")
        input_mint = parse_pubkey(input_mint, "input_mint")
        output_mint = parse_pubkey(output_mint, "output_mint")
        if input_mint == output_mint:
            raise ValidationError("input_mint and output_mint must differ", reason=reject_reasons.SAME_MINTS)
        making = parse_amount(input_amount, "input_amount")
        taking = parse_amount(output_amount, "output_amount")
        expired_at = parse_expiry(expiry)

        if unique_id is None:
            unique_id = random_unique_id(self._rng)
        else:
            unique_id = parse_unique_id(unique_id)
        order_address = derive_order_address(maker, unique_id)

        accounts = OrderAccounts(
            payer=maker,
            maker=maker,
            input_mint=input_mint,
            output_mint=output_mint,
            input_token_program=self._token_program(input_mint),
            output_token_program=self._token_program(output_mint),
        )

        proof = self._ctx.photon.get_validity_proof(
            new_addresses=[AddressWithTree(order_address, c.ADDRESS_TREE, c.ADDRESS_QUEUE)]
        )
        args = InitializeOrderArgs(
            unique_id=unique_id,
            making_amount=making,
            taking_amount=taking,
            expired_at=expired_at or None,
            proof=proof,
            address_tree_info=PackedAddressTreeInfo(root_index=proof.root_index),
        )

        kind = AssetKind.of_mint(input_mint)
        instructions = [compute_budget_ix(self._ctx.config.init_compute_units)]
        if kind.needs_wrapping:
            instructions += wrap_native_ixs(maker, maker, input_mint, making, accounts.input_token_program)
        instructions.append(build_initialize_order_ix(accounts, args))
        if kind.needs_wrapping:
            instructions.append(unwrap_native_ix(maker, input_mint, token_program=accounts.input_token_program))

        envelope = self._envelope(
            maker, instructions, self._ctx.config.init_compute_units, order_address, unique_id, [maker]
        )
        logger.info(
            f"[assembler] Built init {unique_id} at {order_address} "
            f"({kind.value}, {len(instructions)} instructions)"
        )
        return envelope

    def build_update(
        self,
        order_address: PubkeyLike,
        maker: PubkeyLike,
        making_amount: Optional[Union[int, str]] = None,
        taking_amount: Optional[Union[int, str]] = None,
        expiry: Optional[Union[int, str]] = None,
    ) -> TransactionEnvelope:
        """
        Build the transaction changing an order's amounts and/or expiry.

        Fields left as None keep their current value, and so does an expiry
        of 0. Raising the making amount of a native-input order wraps only
        the difference.

        Raises:
            ValidationError: On malformed input or when nothing changes
            NotFoundError: If no order lives at `order_address`
            ProofUnavailableError: If no inclusion proof is returned
        """
        order_address = parse_pubkey(order_address, "order_address")
        maker = parse_pubkey(maker, "maker")
        making = parse_amount(making_amount, "making_amount") if making_amount is not None else None
        taking = parse_amount(taking_amount, "taking_amount") if taking_amount is not None else None
        expired_at = parse_expiry(expiry) if expiry is not None else None
        # 0 keeps the current expiry
        if expired_at == 0:
            expired_at = None
        if making is None and taking is None and expired_at is None:
            raise ValidationError("Nothing to update", reason=reject_reasons.NOTHING_TO_UPDATE)

        account, record = self._fetch_order(order_address, maker)
        unchanged = (
            making in (None, record.making_amount)
            and taking in (None, record.taking_amount)
            and expired_at in (None, record.expired_at)
        )
        if unchanged:
            raise ValidationError("Nothing to update", reason=reject_reasons.NOTHING_TO_UPDATE)

        tree, queue, tree_info, proof = self._state_tree_info(account)
        accounts = OrderAccounts(
            payer=maker,
            maker=maker,
            input_mint=record.input_mint,
            output_mint=record.output_mint,
            input_token_program=record.input_token_program,
            output_token_program=record.output_token_program,
        )
        args = UpdateOrderArgs(
            account_params=AccountParams.from_record(record),
            proof=proof,
            tree_info=tree_info,
            making_amount=making,
            taking_amount=taking,
            expired_at=expired_at,
        )

        kind = AssetKind.of_mint(record.input_mint)
        instructions = [compute_budget_ix(self._ctx.config.mutate_compute_units)]
        if kind.needs_wrapping:
            delta = max(0, making - record.making_amount) if making is not None else 0
            instructions += wrap_native_ixs(maker, maker, record.input_mint, delta, record.input_token_program)
        instructions.append(build_update_order_ix(accounts, args, state_tree=tree, state_queue=queue))
        if kind.needs_wrapping:
            instructions.append(unwrap_native_ix(maker, record.input_mint, token_program=record.input_token_program))

        envelope = self._envelope(
            maker, instructions, self._ctx.config.mutate_compute_units, order_address, record.unique_id, [maker]
        )
        logger.info(f"[assembler] Built update of {order_address} ({kind.value}, {len(instructions)} instructions)")
        return envelope

    def build_cancel(
        self,
        order_address: PubkeyLike,
        maker: PubkeyLike,
        payer: Optional[PubkeyLike] = None,
    ) -> TransactionEnvelope:
        """
        Build the transaction closing an order and refunding the maker.

        The maker does not sign the cancel instruction; `payer` (default:
        the maker) pays fees. Whether a non-maker may cancel is decided by
        the program (expired orders can be closed by anyone).

        Raises:
            ValidationError: On malformed input
            NotFoundError: If no order lives at `order_address`
            ProofUnavailableError: If no inclusion proof is returned
        """
        order_address = parse_pubkey(order_address, "order_address")
        maker = parse_pubkey(maker, "maker")
        payer = parse_pubkey(payer, "payer") if payer is not None else maker

        account, record = self._fetch_order(order_address, maker)
        tree, queue, tree_info, proof = self._state_tree_info(account)
        accounts = OrderAccounts(
            payer=payer,
            maker=maker,
            input_mint=record.input_mint,
            output_mint=record.output_mint,
            input_token_program=record.input_token_program,
            output_token_program=record.output_token_program,
        )
        args = CancelOrderArgs(
            account_params=AccountParams.from_record(record),
            proof=proof,
            tree_info=tree_info,
        )

        kind = AssetKind.of_mint(record.input_mint)
        instructions = [compute_budget_ix(self._ctx.config.mutate_compute_units)]
        if kind.needs_wrapping:
            instructions += wrap_native_ixs(payer, maker, record.input_mint, 0, record.input_token_program)
        instructions.append(build_cancel_order_ix(accounts, args, state_tree=tree, state_queue=queue))
        # closing the maker's wrapped account needs the maker's signature
        if kind.needs_wrapping and payer == maker:
            instructions.append(unwrap_native_ix(maker, record.input_mint, token_program=record.input_token_program))

        envelope = self._envelope(
            payer, instructions, self._ctx.config.mutate_compute_units, order_address, record.unique_id, [payer]
        )
        logger.info(
            f"[assembler] Built cancel of {order_address} paid by {payer} "
            f"({kind.value}, {len(instructions)} instructions)"
        )
        return envelope

    def build_cancel_by_id(
        self,
        maker: PubkeyLike,
        unique_id: Union[int, str],
        payer: Optional[PubkeyLike] = None,
    ) -> TransactionEnvelope:
        """Cancel the order identified by (maker, unique_id)."""
        maker = parse_pubkey(maker, "maker")
        unique_id = parse_unique_id(unique_id)
        return self.build_cancel(derive_order_address(maker, unique_id), maker, payer=payer)
