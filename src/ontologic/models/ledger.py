"""Values exchanged with the external log and ledger services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from ontologic.models.anchor import ExternalAnchor, normalize_timestamp


SUCCESS_STATUSES = frozenset({"SUCCESS", "success", "1"})


@dataclass(frozen=True)
class AppendReceipt:
    """Acknowledgement of one message appended to a topic."""
    topic_id: str
    sequence_number: int
    consensus_timestamp: str

    def to_anchor(self) -> ExternalAnchor:
        return ExternalAnchor(
            topic_id=self.topic_id,
            consensus_timestamp=normalize_timestamp(self.consensus_timestamp),
            sequence_number=self.sequence_number,
        )


@dataclass(frozen=True)
class LedgerEvent:
    """A decoded contract event: name plus named arguments."""
    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerReceipt:
    """Outcome of a contract call, or of looking one up later.

    replayed is set by a ledger that reports "already recorded" for a
    call instead of executing it afresh.
    """
    tx_reference: str
    status: str
    events: tuple[LedgerEvent, ...] = ()
    replayed: bool = False
    block_number: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return str(self.status) in SUCCESS_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "txReference": self.tx_reference,
            "status": self.status,
            "blockNumber": self.block_number,
            "replayed": self.replayed,
            "events": [e.name for e in self.events],
        }


@dataclass(frozen=True)
class EventShape:
    """Where a proof event keeps its hash and its locator."""
    hash_field: str
    locator_field: str
    inputs_hash_field: Optional[str] = None


# Proof events emitted by the reasoning contract, by event name.
PROOF_EVENT_SHAPES: dict[str, EventShape] = {
    "ProofAdd": EventShape("proofHash", "canonicalUri", "inputsHash"),
    "ProofCheck": EventShape("proofHash", "canonicalUri", "inputsHash"),
    "ProofEntity": EventShape("manifestHash", "manifestUri"),
}


@dataclass(frozen=True)
class ProofEvent:
    """The proof-relevant fields of a recognized event."""
    name: str
    proof_hash: str
    locator: str
    inputs_hash: Optional[str] = None


def find_proof_event(receipt: LedgerReceipt) -> Optional[ProofEvent]:
    """Return the first event of a recognized proof shape, if any.

    An event whose shape is known but which lacks the hash or locator
    argument is not recognized.
    """
    for event in receipt.events:
        shape = PROOF_EVENT_SHAPES.get(event.name)
        if shape is None:
            continue
        proof_hash = event.args.get(shape.hash_field)
        locator = event.args.get(shape.locator_field)
        if not proof_hash or not locator:
            continue
        inputs_hash = event.args.get(shape.inputs_hash_field) if shape.inputs_hash_field else None
        return ProofEvent(
            name=event.name,
            proof_hash=proof_hash,
            locator=locator,
            inputs_hash=inputs_hash,
        )
    return None
