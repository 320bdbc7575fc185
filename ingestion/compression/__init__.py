"""
ingestion/compression package

Photon compression indexer / prover client and response models.
"""
from .client import PhotonClient
from .models import (
    AddressWithTree,
    CompressedAccount,
    CompressedProof,
    HashWithTree,
    ValidityProof,
)

__all__ = [
    'PhotonClient',
    'AddressWithTree',
    'CompressedAccount',
    'CompressedProof',
    'HashWithTree',
    'ValidityProof',
]
