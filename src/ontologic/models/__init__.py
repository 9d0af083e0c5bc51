"""Core data models for Ontologic proofs."""

from ontologic.models.anchor import ExternalAnchor
from ontologic.models.ledger import (
    AppendReceipt,
    LedgerEvent,
    LedgerReceipt,
    ProofEvent,
    find_proof_event,
)
from ontologic.models.proof import (
    CanonicalHashSet,
    ProofLayer,
    ProofOutput,
    ProofRecord,
    RuleMetadata,
)

__all__ = [
    "ExternalAnchor",
    "AppendReceipt",
    "LedgerEvent",
    "LedgerReceipt",
    "ProofEvent",
    "find_proof_event",
    "CanonicalHashSet",
    "ProofLayer",
    "ProofOutput",
    "ProofRecord",
    "RuleMetadata",
]
