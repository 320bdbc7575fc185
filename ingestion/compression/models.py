"""
ingestion/compression/models.py

Photon (compression indexer / prover) response models.
"""
import base64
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import base58
from solders.pubkey import Pubkey


ProofBytes = Union[bytes, Sequence[int], str]


def _proof_bytes(value: ProofBytes, size: int, name: str) -> bytes:
    """Normalize a proof component returned as a byte list or base64 string."""
    if isinstance(value, str):
        raw = base64.b64decode(value)
    else:
        raw = bytes(value)
    if len(raw) != size:
        raise ValueError(f"proof.{name} must be {size} bytes, got {len(raw)}")
    return raw


def _optional_pubkey(value: Optional[str]) -> Optional[Pubkey]:
    return Pubkey.from_string(value) if value else None


@dataclass(frozen=True)
class CompressedProof:
    """Groth16 proof points, serialized as on-chain (a: 32, b: 64, c: 32)."""
    a: bytes
    b: bytes
    c: bytes

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompressedProof":
        return cls(
            a=_proof_bytes(data["a"], 32, "a"),
            b=_proof_bytes(data["b"], 64, "b"),
            c=_proof_bytes(data["c"], 32, "c"),
        )

    def to_bytes(self) -> bytes:
        return self.a + self.b + self.c


@dataclass(frozen=True)
class ValidityProof:
    """
    Validity proof bound to the Merkle roots current at acquisition time.

    Attributes:
        compressed_proof: Proof points (None is only legal for proofs by index)
        root_indices: One root index per proven hash / new address, in request order
    """
    compressed_proof: Optional[CompressedProof]
    root_indices: List[int] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidityProof":
        proof = data.get("compressedProof")
        root_indices = []
        for item in data.get("rootIndices", []):
            # v2 indexers wrap the index in an object
            if isinstance(item, dict):
                item = item.get("rootIndex", 0)
            root_indices.append(int(item))
        return cls(
            compressed_proof=CompressedProof.from_dict(proof) if proof else None,
            root_indices=root_indices,
        )

    @property
    def root_index(self) -> int:
        """Root index of the first (and usually only) proven item."""
        if not self.root_indices:
            raise ValueError("Validity proof has no root indices")
        return self.root_indices[0]


@dataclass(frozen=True)
class HashWithTree:
    """Existing account hash to prove inclusion for."""
    hash: bytes
    tree: Pubkey
    queue: Pubkey

    def to_param(self) -> str:
        return base58.b58encode(self.hash).decode("utf-8")


@dataclass(frozen=True)
class AddressWithTree:
    """New address to prove non-inclusion for."""
    address: Pubkey
    tree: Pubkey
    queue: Pubkey

    def to_param(self) -> Dict[str, str]:
        return {"address": str(self.address), "tree": str(self.tree)}


@dataclass
class CompressedAccount:
    """
    Indexer view of one compressed account.

    Attributes:
        hash: Current content hash (leaf value in the state tree)
        data: Raw account data (the escrow record)
    """
    hash: bytes
    address: Optional[Pubkey]
    leaf_index: int
    tree: Optional[Pubkey]
    queue: Optional[Pubkey]
    owner: Optional[Pubkey]
    lamports: int
    data: bytes
    discriminator: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompressedAccount":
        payload = data.get("data") or {}
        tree_info = data.get("treeInfo") or {}
        raw_discriminator = payload.get("discriminator", 0)
        if isinstance(raw_discriminator, (list, bytes)):
            raw_discriminator = int.from_bytes(bytes(raw_discriminator), "little")
        account_hash = base58.b58decode(data["hash"])
        if len(account_hash) != 32:
            raise ValueError(f"account hash must be 32 bytes, got {len(account_hash)}")
        return cls(
            hash=account_hash,
            address=_optional_pubkey(data.get("address")),
            leaf_index=int(data.get("leafIndex", 0)),
            tree=_optional_pubkey(data.get("tree") or tree_info.get("tree")),
            queue=_optional_pubkey(tree_info.get("queue")),
            owner=_optional_pubkey(data.get("owner")),
            lamports=int(data.get("lamports", 0)),
            data=base64.b64decode(payload.get("data", "")),
            discriminator=int(raw_discriminator),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": base58.b58encode(self.hash).decode("utf-8"),
            "address": str(self.address) if self.address else None,
            "leafIndex": self.leaf_index,
            "tree": str(self.tree) if self.tree else None,
            "queue": str(self.queue) if self.queue else None,
            "owner": str(self.owner) if self.owner else None,
            "lamports": self.lamports,
            "dataLength": len(self.data),
        }
