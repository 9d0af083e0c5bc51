"""Submission orchestrator: canonicalize, append, bind, reconcile.

The orchestrator is a thin coordination layer over the builder, the
append-only log and the ledger. It calls them in a fixed sequence and
checks every value the ledger reports back against the locally
computed one:

1. Canonicalize: seal the record (size guard, hash set).
2. Replay check: ask the ledger whether proofHash is already bound.
3. Append: write the canonical bytes to the log. Never retried.
4. Bind: call the contract with the hashes and the locator.
5. Reconcile: the emitted event must carry the same proofHash,
   inputsHash and locator.

A record appended in step 3 whose binding later fails stays on the log
as an orphan. It is reported, never repaired or deleted.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional, Union

from web3 import Web3

from ontologic.crypto.binding import domain_hash, is_address
from ontologic.crypto.canonical import hashes_equal
from ontologic.crypto.proof_builder import BuiltProof, ProofBuilder
from ontologic.errors import (
    AppendFailure,
    BindingMismatchError,
    LedgerCallError,
    OntologicError,
    UnrecognizedEventError,
)
from ontologic.models.anchor import ExternalAnchor
from ontologic.models.ledger import LedgerReceipt, ProofEvent, find_proof_event
from ontologic.models.proof import ProofRecord
from ontologic.network.interfaces import Ledger, MessageLog
from ontologic.network.retry import NO_RETRY, RetryPolicy


logger = logging.getLogger(__name__)


class SubmissionStage(str, enum.Enum):
    """Steps of a submission, in order."""
    SEALED = "sealed"
    REPLAY_CHECKED = "replay_checked"
    APPENDED = "appended"
    BOUND = "bound"
    RECONCILED = "reconciled"
    REPLAYED = "replayed"


StageListener = Callable[[SubmissionStage, dict[str, Any]], None]


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a successful submission or an accepted replay."""
    proof: BuiltProof
    anchor: ExternalAnchor
    receipt: LedgerReceipt
    replayed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.proof.hashes.to_dict(),
            "canonicalUri": self.anchor.uri,
            "anchor": self.anchor.to_dict(),
            "receipt": self.receipt.to_dict(),
            "replayed": self.replayed,
        }


def bind_arguments(proof: BuiltProof, locator: str, function: str = "reasonAdd") -> list[Any]:
    """Contract call arguments binding a sealed proof to its locator.

    reasonAdd takes the inputs, the domain hash and the ProofData
    tuple; publishEntity takes the output token, the proof hash as the
    manifest hash, and the locator as the manifest URI.
    """
    record = proof.record
    if function == "publishEntity":
        return [_contract_reference(record.output.token), proof.proof_hash, locator]

    hashes = proof.hashes
    proof_data = (
        hashes.inputs_hash,
        hashes.proof_hash,
        hashes.fact_hash,
        hashes.rule_hash,
        locator,
    )
    return [
        *(_contract_reference(ref) for ref in record.inputs),
        domain_hash(record.domain),
        proof_data,
    ]


class SubmissionOrchestrator:
    """Drives one proof from record to confirmed on-chain binding.

    Usage:
        orch = SubmissionOrchestrator(message_log, ledger, contract_addr)
        result = orch.submit(record)
        result.anchor.uri       # hcs://<topic>/<seconds.nanos>
        result.replayed         # True if the proof was already bound

    All collaborators are injected; the orchestrator holds no state
    between submissions.
    """

    def __init__(
        self,
        message_log: MessageLog,
        ledger: Ledger,
        contract_ref: str,
        builder: Optional[ProofBuilder] = None,
        bind_function: str = "reasonAdd",
        retry_policy: RetryPolicy = NO_RETRY,
        on_stage: Optional[StageListener] = None,
    ) -> None:
        self._log = message_log
        self._ledger = ledger
        self._contract_ref = contract_ref
        self._builder = builder or ProofBuilder()
        self._bind_function = bind_function
        self._retry = retry_policy
        self._on_stage = on_stage

    def submit(self, record: Union[ProofRecord, BuiltProof]) -> SubmissionResult:
        """Submit a record (or an already sealed proof).

        Raises PayloadTooLargeError, AppendFailure, LedgerCallError,
        UnrecognizedEventError or BindingMismatchError.
        """
        proof = record if isinstance(record, BuiltProof) else self._builder.seal(record)
        proof_hash = proof.proof_hash
        logger.info("Sealed proof %s (%d bytes)", proof_hash, proof.size)
        self._emit(SubmissionStage.SEALED, proofHash=proof_hash, size=proof.size)

        prior = self._find_binding(proof_hash)
        self._emit(SubmissionStage.REPLAY_CHECKED, bound=prior is not None)
        if prior is not None:
            logger.warning("Proof %s already bound in %s; skipping append", proof_hash, prior.tx_reference)
            return self._accept_replay(proof, prior)

        topic_id = proof.record.topic_id
        try:
            appended = self._log.append(topic_id, proof.canonical_bytes)
        except Exception as exc:
            raise AppendFailure(
                f"Append to topic {topic_id} failed: {exc}",
                topic_id=topic_id,
            ) from exc
        anchor = appended.to_anchor()
        logger.info("Appended proof %s at %s", proof_hash, anchor.uri)
        self._emit(SubmissionStage.APPENDED, canonicalUri=anchor.uri)

        args = bind_arguments(proof, anchor.uri, self._bind_function)
        try:
            receipt = self._ledger.call(self._contract_ref, self._bind_function, args)
        except Exception as exc:
            logger.warning("Binding failed; %s is orphaned", anchor.uri)
            raise LedgerCallError(
                f"{self._bind_function} call failed: {exc}",
                function=self._bind_function,
                orphan=anchor.uri,
            ) from exc

        if receipt.replayed:
            logger.warning(
                "Proof %s was bound concurrently by %s; %s is orphaned",
                proof_hash, receipt.tx_reference, anchor.uri,
            )
            return self._accept_replay(proof, receipt)

        if not receipt.succeeded:
            logger.warning("Binding reverted; %s is orphaned", anchor.uri)
            raise LedgerCallError(
                f"{self._bind_function} returned status {receipt.status}",
                function=self._bind_function,
                status=receipt.status,
                tx_reference=receipt.tx_reference,
                orphan=anchor.uri,
            )
        logger.info("Bound proof %s in %s", proof_hash, receipt.tx_reference)
        self._emit(SubmissionStage.BOUND, txReference=receipt.tx_reference)

        event = self._proof_event(receipt)
        try:
            self._check_hashes(proof, event)
            if not _same_locator(event.locator, anchor.uri):
                raise BindingMismatchError(
                    "Event locator does not match the appended message",
                    field="locator",
                    local=anchor.uri,
                    ledger=event.locator,
                )
        except BindingMismatchError:
            logger.warning("Reconciliation failed; %s is orphaned", anchor.uri)
            raise
        self._emit(SubmissionStage.RECONCILED, event=event.name)

        return SubmissionResult(proof=proof, anchor=anchor, receipt=receipt)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _find_binding(self, proof_hash: str) -> Optional[LedgerReceipt]:
        try:
            return self._retry.execute(lambda: self._ledger.find_binding(proof_hash))
        except OntologicError:
            raise
        except Exception as exc:
            raise LedgerCallError(
                f"Replay check for {proof_hash} failed: {exc}",
                proof_hash=proof_hash,
            ) from exc

    def _accept_replay(self, proof: BuiltProof, receipt: LedgerReceipt) -> SubmissionResult:
        """Return the earlier binding, provided it is for this exact claim."""
        event = self._proof_event(receipt)
        self._check_hashes(proof, event)
        try:
            anchor = ExternalAnchor.parse(event.locator)
        except ValueError as exc:
            raise UnrecognizedEventError(
                f"Prior binding carries an unparsable locator: {event.locator!r}",
                tx_reference=receipt.tx_reference,
            ) from exc
        self._emit(SubmissionStage.REPLAYED, txReference=receipt.tx_reference, canonicalUri=anchor.uri)
        return SubmissionResult(proof=proof, anchor=anchor, receipt=receipt, replayed=True)

    def _proof_event(self, receipt: LedgerReceipt) -> ProofEvent:
        event = find_proof_event(receipt)
        if event is None:
            raise UnrecognizedEventError(
                f"Transaction {receipt.tx_reference} emitted no recognized proof event",
                tx_reference=receipt.tx_reference,
                events=[e.name for e in receipt.events],
            )
        return event

    def _check_hashes(self, proof: BuiltProof, event: ProofEvent) -> None:
        if not hashes_equal(event.proof_hash, proof.proof_hash):
            raise BindingMismatchError(
                "Ledger proof hash does not match the canonical hash",
                field="proofHash",
                local=proof.proof_hash,
                ledger=event.proof_hash,
            )
        # A bound inputsHash that differs is a forged resubmission
        if event.inputs_hash is not None and not hashes_equal(
            event.inputs_hash, proof.hashes.inputs_hash
        ):
            raise BindingMismatchError(
                "Ledger inputs hash does not match the recomputed inputs hash",
                field="inputsHash",
                local=proof.hashes.inputs_hash,
                ledger=event.inputs_hash,
            )

    def _emit(self, stage: SubmissionStage, **fields: Any) -> None:
        if self._on_stage is not None:
            self._on_stage(stage, fields)


def _contract_reference(reference: str) -> str:
    return Web3.to_checksum_address(reference) if is_address(reference) else reference


def _same_locator(left: str, right: str) -> bool:
    try:
        return ExternalAnchor.parse(left).uri == ExternalAnchor.parse(right).uri
    except ValueError:
        return False
