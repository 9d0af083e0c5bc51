"""Triple-equality verification of an anchored proof.

Given only a transaction reference, the verifier obtains three hashes
from independent sources and compares them:

    local          the hash the caller expects (optional)
    event_emitted  the hash carried by the contract's proof event
    log_stored     keccak256 of the bytes read back from the log

The verdict is PASS only when every available pair agrees. Any
disagreement is a FAIL that names the mismatching pairs; there is no
partial pass.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ontologic.crypto.canonical import canonicalize, keccak_hex, normalize_hash
from ontologic.errors import (
    DanglingReferenceError,
    EncodingError,
    NetworkError,
    NotFoundError,
    OntologicError,
    UnrecognizedEventError,
)
from ontologic.models.anchor import ExternalAnchor
from ontologic.models.ledger import find_proof_event
from ontologic.network.interfaces import Ledger, MessageReader
from ontologic.network.retry import NO_RETRY, RetryPolicy


logger = logging.getLogger(__name__)

LOCAL = "local"
EVENT_EMITTED = "event_emitted"
LOG_STORED = "log_stored"

# Comparison order; pairs involving an absent source are skipped.
_PAIRS = (
    (EVENT_EMITTED, LOG_STORED),
    (LOCAL, EVENT_EMITTED),
    (LOCAL, LOG_STORED),
)


@dataclass(frozen=True)
class VerificationReport:
    """Verdict and evidence for one transaction."""
    tx_reference: str
    passed: bool
    hashes: dict[str, Optional[str]]
    anchor: ExternalAnchor
    event_name: str
    canonical_form: bool
    mismatches: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def divergent_source(self) -> Optional[str]:
        """The one source that disagrees with the others, if identifiable.

        Needs all three hashes: with two, a disagreement cannot be
        attributed to either side.
        """
        if not self.mismatches or self.hashes.get(LOCAL) is None:
            return None
        common = set(self.mismatches[0])
        for pair in self.mismatches[1:]:
            common &= set(pair)
        return common.pop() if len(common) == 1 else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "txReference": self.tx_reference,
            "verdict": "PASS" if self.passed else "FAIL",
            "hashes": dict(self.hashes),
            "mismatches": [list(pair) for pair in self.mismatches],
            "divergentSource": self.divergent_source,
            "event": self.event_name,
            "canonicalUri": self.anchor.uri,
            "canonicalForm": self.canonical_form,
        }


class TripleEqualityVerifier:
    """Recomputes and refetches every hash of a bound proof.

    Usage:
        verifier = TripleEqualityVerifier(ledger, mirror_client)
        report = verifier.verify("0xabc...", expected_hash="0x9f...")
        report.passed

    Reads go through the injected retry policy; nothing is written.
    """

    def __init__(
        self,
        ledger: Ledger,
        reader: MessageReader,
        retry_policy: RetryPolicy = NO_RETRY,
    ) -> None:
        self._ledger = ledger
        self._reader = reader
        self._retry = retry_policy

    def verify(self, tx_reference: str, expected_hash: Optional[str] = None) -> VerificationReport:
        """Verify one transaction.

        Raises NotFoundError, UnrecognizedEventError,
        DanglingReferenceError, or NetworkError when a read fails.
        """
        receipt = self._read(
            lambda: self._ledger.get_receipt(tx_reference),
            f"receipt {tx_reference}",
        )
        if receipt is None:
            raise NotFoundError(f"Transaction not found: {tx_reference}", tx_reference=tx_reference)

        event = find_proof_event(receipt)
        if event is None:
            raise UnrecognizedEventError(
                f"Transaction {tx_reference} emitted no recognized proof event",
                tx_reference=tx_reference,
                events=[e.name for e in receipt.events],
            )

        try:
            anchor = ExternalAnchor.parse(event.locator)
        except ValueError as exc:
            raise UnrecognizedEventError(
                f"{event.name} carries an unparsable locator: {event.locator!r}",
                tx_reference=tx_reference,
            ) from exc

        stored = self._read(
            lambda: self._reader.read_at(anchor.topic_id, anchor.consensus_timestamp),
            anchor.uri,
        )
        if stored is None:
            raise DanglingReferenceError(
                f"No message at {anchor.uri}",
                tx_reference=tx_reference,
                locator=anchor.uri,
            )

        hashes: dict[str, Optional[str]] = {
            LOCAL: normalize_hash(expected_hash) if expected_hash else None,
            EVENT_EMITTED: normalize_hash(event.proof_hash),
            LOG_STORED: keccak_hex(stored),
        }
        mismatches = tuple(
            (left, right)
            for left, right in _PAIRS
            if hashes[left] is not None and hashes[right] is not None
            and hashes[left] != hashes[right]
        )

        report = VerificationReport(
            tx_reference=tx_reference,
            passed=not mismatches,
            hashes=hashes,
            anchor=anchor,
            event_name=event.name,
            canonical_form=is_canonical(stored),
            mismatches=mismatches,
        )
        if report.passed:
            logger.info("PASS %s (%s)", tx_reference, anchor.uri)
        else:
            logger.warning("FAIL %s: %s", tx_reference, ", ".join("!=".join(p) for p in mismatches))
        return report

    def _read(self, func, what: str):
        try:
            return self._retry.execute(func)
        except OntologicError:
            raise
        except Exception as exc:
            raise NetworkError(f"Reading {what} failed: {exc}", source=what) from exc


def is_canonical(data: bytes) -> bool:
    """True if data is JSON already in canonical form."""
    try:
        value = json.loads(data.decode("utf-8"))
        return canonicalize(value) == data
    except (UnicodeDecodeError, ValueError, EncodingError):
        return False
