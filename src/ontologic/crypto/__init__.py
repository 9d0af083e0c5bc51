"""Cryptographic primitives: canonical JSON, Keccak hashing, proof binding."""

from ontologic.crypto.canonical import canonicalize, hash_canonical
from ontologic.crypto.binding import compute_inputs_hash, compute_rule_hash
from ontologic.crypto.proof_builder import BuiltProof, ProofBuilder

__all__ = [
    "canonicalize",
    "hash_canonical",
    "compute_inputs_hash",
    "compute_rule_hash",
    "BuiltProof",
    "ProofBuilder",
]
