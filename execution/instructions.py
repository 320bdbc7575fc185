"""execution/instructions.py

Escrow program instructions (Anchor layout) and the token-account helpers
used around them.

Instruction data is an 8-byte discriminator followed by the Borsh-encoded
arguments, laid out with borsh_construct.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from borsh_construct import I64, U8, U16, U32, U64, Bool, CStruct, Option
from solders.compute_budget import set_compute_unit_limit
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID
from spl.token.instructions import (
    CloseAccountParams,
    SyncNativeParams,
    close_account,
    create_idempotent_associated_token_account,
    sync_native,
)

from execution.assets import associated_token_address
from ingestion.compression.models import ValidityProof
from ingestion.escrow import constants as c
from ingestion.escrow.layouts import OrderRecord


INITIALIZE_ORDER_DISCRIMINATOR = bytes([133, 110, 74, 175, 112, 159, 245, 159])
UPDATE_ORDER_DISCRIMINATOR = bytes([54, 8, 208, 207, 34, 134, 239, 168])
CANCEL_ORDER_DISCRIMINATOR = bytes([95, 129, 237, 240, 8, 49, 223, 132])

CompressedProofLayout = CStruct(
    "a" / U8[32],
    "b" / U8[64],
    "c" / U8[32],
)
PackedAddressTreeInfoLayout = CStruct(
    "address_merkle_tree_pubkey_index" / U8,
    "address_queue_pubkey_index" / U8,
    "root_index" / U16,
)
PackedStateTreeInfoLayout = CStruct(
    "root_index" / U16,
    "prove_by_index" / Bool,
    "merkle_tree_pubkey_index" / U8,
    "queue_pubkey_index" / U8,
    "leaf_index" / U32,
)
AccountParamsLayout = CStruct(
    "unique_id" / U64,
    "ori_making_amount" / U64,
    "ori_taking_amount" / U64,
    "making_amount" / U64,
    "taking_amount" / U64,
    "fee_bps" / U16,
    "expired_at" / I64,
    "created_at" / I64,
    "updated_at" / I64,
)
InitializeOrderLayout = CStruct(
    "unique_id" / U64,
    "making_amount" / U64,
    "taking_amount" / U64,
    "expired_at" / Option(I64),
    "proof" / Option(CompressedProofLayout),
    "address_tree_info" / PackedAddressTreeInfoLayout,
    "output_state_tree_index" / U8,
)
UpdateOrderLayout = CStruct(
    "account_params" / AccountParamsLayout,
    "proof" / Option(CompressedProofLayout),
    "tree_info" / PackedStateTreeInfoLayout,
    "output_state_tree_index" / U8,
    "making_amount" / Option(U64),
    "taking_amount" / Option(U64),
    "expired_at" / Option(I64),
)
CancelOrderLayout = CStruct(
    "account_params" / AccountParamsLayout,
    "proof" / Option(CompressedProofLayout),
    "tree_info" / PackedStateTreeInfoLayout,
    "output_state_tree_index" / U8,
)


def proof_value(proof: ValidityProof) -> Optional[Dict[str, List[int]]]:
    """`Option<CompressedProof>` value for the instruction layouts."""
    points = proof.compressed_proof
    if points is None:
        return None
    return {"a": list(points.a), "b": list(points.b), "c": list(points.c)}


@dataclass(frozen=True)
class PackedAddressTreeInfo:
    root_index: int
    address_tree_index: int = c.INIT_ADDRESS_TREE_INDEX
    address_queue_index: int = c.INIT_ADDRESS_QUEUE_INDEX

    def to_value(self) -> Dict[str, Any]:
        return {
            "address_merkle_tree_pubkey_index": self.address_tree_index,
            "address_queue_pubkey_index": self.address_queue_index,
            "root_index": self.root_index,
        }


@dataclass(frozen=True)
class PackedStateTreeInfo:
    """Position of an existing compressed account, by index into the remaining accounts."""
    root_index: int
    leaf_index: int
    prove_by_index: bool = False
    tree_index: int = c.MUTATE_STATE_TREE_INDEX
    queue_index: int = c.MUTATE_STATE_QUEUE_INDEX

    def to_value(self) -> Dict[str, Any]:
        return {
            "root_index": self.root_index,
            "prove_by_index": self.prove_by_index,
            "merkle_tree_pubkey_index": self.tree_index,
            "queue_pubkey_index": self.queue_index,
            "leaf_index": self.leaf_index,
        }


@dataclass(frozen=True)
class AccountParams:
    """Current escrow record as passed back to the program, which re-hashes it."""
    unique_id: int
    ori_making: int
    ori_taking: int
    making: int
    taking: int
    fee_bps: int
    expired_at: int
    created_at: int
    updated_at: int

    @classmethod
    def from_record(cls, record: OrderRecord) -> "AccountParams":
        return cls(
            unique_id=record.unique_id,
            ori_making=record.original_making_amount,
            ori_taking=record.original_taking_amount,
            making=record.making_amount,
            taking=record.taking_amount,
            fee_bps=record.fee_bps,
            expired_at=record.expired_at,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_value(self) -> Dict[str, Any]:
        return {
            "unique_id": self.unique_id,
            "ori_making_amount": self.ori_making,
            "ori_taking_amount": self.ori_taking,
            "making_amount": self.making,
            "taking_amount": self.taking,
            "fee_bps": self.fee_bps,
            "expired_at": self.expired_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class InitializeOrderArgs:
    unique_id: int
    making_amount: int
    taking_amount: int
    expired_at: Optional[int]
    proof: ValidityProof
    address_tree_info: PackedAddressTreeInfo
    output_state_tree_index: int = c.INIT_OUTPUT_STATE_TREE_INDEX

    def encode(self) -> bytes:
        return INITIALIZE_ORDER_DISCRIMINATOR + InitializeOrderLayout.build({
            "unique_id": self.unique_id,
            "making_amount": self.making_amount,
            "taking_amount": self.taking_amount,
            "expired_at": self.expired_at,
            "proof": proof_value(self.proof),
            "address_tree_info": self.address_tree_info.to_value(),
            "output_state_tree_index": self.output_state_tree_index,
        })


@dataclass(frozen=True)
class UpdateOrderArgs:
    account_params: AccountParams
    proof: ValidityProof
    tree_info: PackedStateTreeInfo
    making_amount: Optional[int] = None
    taking_amount: Optional[int] = None
    expired_at: Optional[int] = None
    output_state_tree_index: int = c.MUTATE_OUTPUT_STATE_TREE_INDEX

    def encode(self) -> bytes:
        return UPDATE_ORDER_DISCRIMINATOR + UpdateOrderLayout.build({
            "account_params": self.account_params.to_value(),
            "proof": proof_value(self.proof),
            "tree_info": self.tree_info.to_value(),
            "output_state_tree_index": self.output_state_tree_index,
            "making_amount": self.making_amount,
            "taking_amount": self.taking_amount,
            "expired_at": self.expired_at,
        })


@dataclass(frozen=True)
class CancelOrderArgs:
    account_params: AccountParams
    proof: ValidityProof
    tree_info: PackedStateTreeInfo
    output_state_tree_index: int = c.MUTATE_OUTPUT_STATE_TREE_INDEX

    def encode(self) -> bytes:
        return CANCEL_ORDER_DISCRIMINATOR + CancelOrderLayout.build({
            "account_params": self.account_params.to_value(),
            "proof": proof_value(self.proof),
            "tree_info": self.tree_info.to_value(),
            "output_state_tree_index": self.output_state_tree_index,
        })


@dataclass(frozen=True)
class OrderAccounts:
    """Regular (non-compressed) accounts an order instruction touches."""
    payer: Pubkey
    maker: Pubkey
    input_mint: Pubkey
    output_mint: Pubkey
    input_token_program: Pubkey = TOKEN_PROGRAM_ID
    output_token_program: Pubkey = TOKEN_PROGRAM_ID

    @property
    def maker_input_ata(self) -> Pubkey:
        return associated_token_address(self.maker, self.input_mint, self.input_token_program)

    @property
    def maker_output_ata(self) -> Pubkey:
        return associated_token_address(self.maker, self.output_mint, self.output_token_program)

    @property
    def vault_input_ata(self) -> Pubkey:
        return associated_token_address(c.PROTOCOL_VAULT, self.input_mint, self.input_token_program)

    @property
    def vault_output_ata(self) -> Pubkey:
        return associated_token_address(c.PROTOCOL_VAULT, self.output_mint, self.output_token_program)


def _ro(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=False)


def _w(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=True)


def _light_system_accounts() -> List[AccountMeta]:
    return [
        _ro(c.LIGHT_SYSTEM_PROGRAM),
        _ro(c.CPI_AUTHORITY),
        _ro(c.REGISTERED_PROGRAM_PDA),
        _ro(c.NOOP_PROGRAM),
        _ro(c.ACCOUNT_COMPRESSION_AUTHORITY),
        _ro(c.ACCOUNT_COMPRESSION_PROGRAM),
        _ro(c.PROGRAM_ID),
        _ro(c.SYSTEM_PROGRAM),
    ]


def init_remaining_accounts() -> List[AccountMeta]:
    """Light system accounts followed by the trees, in packed-index order."""
    return _light_system_accounts() + [
        _w(c.ADDRESS_TREE),
        _w(c.STATE_TREE),
        _w(c.ADDRESS_QUEUE),
    ]


def mutate_remaining_accounts(
    state_tree: Pubkey = c.STATE_TREE,
    state_queue: Pubkey = c.STATE_QUEUE,
) -> List[AccountMeta]:
    return _light_system_accounts() + [_w(state_tree), _w(state_queue)]


def _program_tail(accounts: OrderAccounts) -> List[AccountMeta]:
    return [
        _ro(accounts.input_token_program),
        _ro(accounts.output_token_program),
        _ro(c.SYSTEM_PROGRAM),
        _ro(ASSOCIATED_TOKEN_PROGRAM_ID),
    ]


def build_initialize_order_ix(
    accounts: OrderAccounts,
    args: InitializeOrderArgs,
    program_id: Pubkey = c.PROGRAM_ID,
) -> Instruction:
    metas = [
        AccountMeta(pubkey=accounts.payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=accounts.maker, is_signer=True, is_writable=False),
        _ro(accounts.input_mint),
        _w(accounts.maker_input_ata),
        _ro(accounts.output_mint),
        _w(accounts.maker_output_ata),
        _ro(c.PROTOCOL_VAULT),
        _w(accounts.vault_input_ata),
        _w(accounts.vault_output_ata),
    ]
    metas += _program_tail(accounts)
    metas += init_remaining_accounts()
    return Instruction(program_id, args.encode(), metas)


def build_update_order_ix(
    accounts: OrderAccounts,
    args: UpdateOrderArgs,
    state_tree: Pubkey = c.STATE_TREE,
    state_queue: Pubkey = c.STATE_QUEUE,
    program_id: Pubkey = c.PROGRAM_ID,
) -> Instruction:
    metas = [
        AccountMeta(pubkey=accounts.payer, is_signer=True, is_writable=True),
        AccountMeta(pubkey=accounts.maker, is_signer=True, is_writable=False),
        _ro(accounts.input_mint),
        _w(accounts.maker_input_ata),
        _ro(accounts.output_mint),
        _w(accounts.maker_output_ata),
        _ro(c.PROTOCOL_VAULT),
        _w(accounts.vault_input_ata),
    ]
    metas += _program_tail(accounts)
    metas += mutate_remaining_accounts(state_tree, state_queue)
    return Instruction(program_id, args.encode(), metas)


def build_cancel_order_ix(
    accounts: OrderAccounts,
    args: CancelOrderArgs,
    state_tree: Pubkey = c.STATE_TREE,
    state_queue: Pubkey = c.STATE_QUEUE,
    program_id: Pubkey = c.PROGRAM_ID,
) -> Instruction:
    # maker does not sign: expired orders can be cancelled by anyone
    metas = [
        AccountMeta(pubkey=accounts.payer, is_signer=True, is_writable=True),
        _ro(accounts.maker),
        _ro(accounts.input_mint),
        _ro(accounts.output_mint),
        _w(accounts.maker_input_ata),
        _ro(c.PROTOCOL_VAULT),
        _w(accounts.vault_input_ata),
    ]
    metas += _program_tail(accounts)
    metas += mutate_remaining_accounts(state_tree, state_queue)
    return Instruction(program_id, args.encode(), metas)


def compute_budget_ix(units: int) -> Instruction:
    return set_compute_unit_limit(units)


def wrap_native_ixs(
    payer: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    lamports: int,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
) -> List[Instruction]:
    """
    Instructions moving `lamports` into the owner's wrapped-native account.

    The account is created idempotently. With zero lamports only the
    creation is emitted.
    """
    ata = associated_token_address(owner, mint, token_program)
    ixs = [create_idempotent_associated_token_account(payer, owner, mint, token_program_id=token_program)]
    if lamports > 0:
        ixs.append(transfer(TransferParams(from_pubkey=owner, to_pubkey=ata, lamports=lamports)))
        ixs.append(sync_native(SyncNativeParams(program_id=token_program, account=ata)))
    return ixs


def unwrap_native_ix(
    owner: Pubkey,
    mint: Pubkey,
    destination: Optional[Pubkey] = None,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
) -> Instruction:
    """Close the owner's wrapped-native account, returning its lamports."""
    ata = associated_token_address(owner, mint, token_program)
    return close_account(CloseAccountParams(
        program_id=token_program,
        account=ata,
        dest=destination or owner,
        owner=owner,
        signers=[],
    ))
