"""Proof builder: assembles and seals canonical proof records.

Sealing a record canonicalizes its wire form, enforces the external
log's message size cap, and derives the full hash set (proofHash,
inputsHash, ruleHash). The builder has no side effects: the only
impure input is the clock, read when no timestamp is supplied.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Union

from ontologic.crypto.binding import (
    compute_inputs_hash,
    compute_rule_hash,
    normalize_reference,
    sort_references,
)
from ontologic.crypto.canonical import canonicalize, keccak_hex
from ontologic.errors import PayloadTooLargeError
from ontologic.models.anchor import validate_topic_id
from ontologic.models.proof import (
    CanonicalHashSet,
    ProofLayer,
    ProofOutput,
    ProofRecord,
    RuleMetadata,
)


# Hard per-message cap of the consensus topic service.
DEFAULT_MAX_MESSAGE_BYTES = 1024
DEFAULT_PROOF_VERSION = "0.6.3"


@dataclass(frozen=True)
class BuiltProof:
    """A sealed record: the record, its canonical bytes and its hashes."""
    record: ProofRecord
    canonical_bytes: bytes
    hashes: CanonicalHashSet

    @property
    def proof_hash(self) -> str:
        return self.hashes.proof_hash

    @property
    def canonical_text(self) -> str:
        return self.canonical_bytes.decode("utf-8")

    @property
    def size(self) -> int:
        return len(self.canonical_bytes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record": self.record.to_dict(),
            "canonical": self.canonical_text,
            "size": self.size,
            **self.hashes.to_dict(),
        }


class ProofBuilder:
    """Builds and seals proof records.

    Usage:
        builder = ProofBuilder(max_message_bytes=1024)
        built = builder.build(
            domain="color.light",
            operator="mix_add@v1",
            inputs=[red_token, green_token],
            output=ProofOutput(token=yellow_token, amount=1),
            rule_metadata=RuleMetadata(contract=contract_addr, version="v0.6.3"),
            signer=operator_addr,
            topic_id="0.0.7204585",
        )
        built.proof_hash        # keccak256 of built.canonical_bytes
        built.hashes.inputs_hash
    """

    def __init__(
        self,
        max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
        version: str = DEFAULT_PROOF_VERSION,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_message_bytes <= 0:
            raise ValueError("max_message_bytes must be positive")
        self._max_message_bytes = max_message_bytes
        self._version = version
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def max_message_bytes(self) -> int:
        return self._max_message_bytes

    def build(
        self,
        domain: str,
        operator: str,
        inputs: Iterable[str],
        output: ProofOutput,
        rule_metadata: RuleMetadata,
        signer: str,
        topic_id: str,
        layer: ProofLayer = ProofLayer.ADDITIVE,
        timestamp: Union[datetime, str, None] = None,
        commutative: bool = True,
    ) -> BuiltProof:
        """Assemble a record from its parts and seal it.

        For commutative operators the inputs are sorted, so logically
        equivalent submissions produce the same record and hashes.
        """
        if not domain or not operator:
            raise ValueError("domain and operator are required")

        refs = list(inputs)
        if not refs:
            raise ValueError("inputs must contain at least one reference")
        if commutative:
            normalized = sort_references(refs)
        else:
            normalized = [normalize_reference(r) for r in refs]

        if timestamp is None:
            timestamp = self._clock()
        ts = format_timestamp(timestamp) if isinstance(timestamp, datetime) else timestamp

        record = ProofRecord(
            version=self._version,
            layer=layer,
            domain=domain,
            operator=operator,
            inputs=tuple(normalized),
            output=ProofOutput(
                token=normalize_reference(output.token),
                amount=output.amount,
            ),
            rule_metadata=RuleMetadata(
                contract=normalize_reference(rule_metadata.contract),
                version=rule_metadata.version,
                function_selector=rule_metadata.function_selector,
                code_hash=rule_metadata.code_hash,
            ),
            signer=normalize_reference(signer),
            topic_id=topic_id,
            timestamp=ts,
        )
        return self.seal(record)

    def seal(self, record: ProofRecord) -> BuiltProof:
        """Canonicalize and hash an existing record.

        Raises ValueError for a topic id that cannot form a locator and
        PayloadTooLargeError if the canonical bytes exceed the configured
        cap; no network call can have happened yet.
        """
        validate_topic_id(record.topic_id)
        canonical = canonicalize(record.to_dict())
        if len(canonical) > self._max_message_bytes:
            raise PayloadTooLargeError(
                f"Canonical payload is {len(canonical)} bytes "
                f"(limit {self._max_message_bytes})",
                size=len(canonical),
                limit=self._max_message_bytes,
            )

        hashes = CanonicalHashSet(
            proof_hash=keccak_hex(canonical),
            inputs_hash=compute_inputs_hash(record.inputs, record.domain, record.operator),
            rule_hash=compute_rule_hash(record.domain, record.operator),
        )
        return BuiltProof(record=record, canonical_bytes=canonical, hashes=hashes)


def build_proof(**kwargs: Any) -> BuiltProof:
    """Build with a default ProofBuilder. Accepts ProofBuilder.build arguments."""
    return ProofBuilder().build(**kwargs)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"
