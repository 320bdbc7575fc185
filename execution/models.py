"""execution/models.py

Unsigned transaction envelope returned by the assembler.
"""

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction


@dataclass
class TransactionEnvelope:
    """
    Ordered instructions plus everything needed to sign and submit them.

    Attributes:
        payer: Fee payer (the maker, or a keeper for cancels)
        recent_blockhash: Blockhash fetched at build time
        instructions: Compute budget first, then wrap, primary, unwrap
        compute_unit_limit: Units requested by the compute budget instruction
        order_address: Compressed address of the order
        unique_id: Order nonce (set for init)
    """
    payer: Pubkey
    recent_blockhash: Hash
    instructions: List[Instruction]
    compute_unit_limit: int
    order_address: Optional[Pubkey] = None
    unique_id: Optional[int] = None
    signers: List[Pubkey] = field(default_factory=list)

    def to_message(self) -> MessageV0:
        return MessageV0.try_compile(self.payer, self.instructions, [], self.recent_blockhash)

    def to_transaction(self) -> VersionedTransaction:
        """Unsigned transaction with default (all-zero) signature placeholders."""
        message = self.to_message()
        placeholders = [Signature.default()] * message.header.num_required_signatures
        return VersionedTransaction.populate(message, placeholders)

    def to_base64(self) -> str:
        return base64.b64encode(bytes(self.to_transaction())).decode("utf-8")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payer": str(self.payer),
            "recentBlockhash": str(self.recent_blockhash),
            "computeUnitLimit": self.compute_unit_limit,
            "instructionCount": len(self.instructions),
            "programs": [str(ix.program_id) for ix in self.instructions],
            "orderAddress": str(self.order_address) if self.order_address else None,
            "uniqueId": str(self.unique_id) if self.unique_id is not None else None,
            "signers": [str(s) for s in self.signers],
            "transaction": self.to_base64(),
        }
