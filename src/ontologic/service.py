"""Ontologic service: unified facade over the proof anchoring core.

This is the primary interface for programmatic access. It wires the
builder, the orchestrator, the verifier and the exporter to the
configured log and ledger:
- Proof building (bundle -> sealed canonical record)
- Submission (append, bind, reconcile; replay-safe)
- Verification (triple equality from a transaction reference)
- Topic export (snapshot of every message on a proof topic)

All operations produce typed results. Core errors never escape: each
becomes a ServiceResult with success=False, the error messages, and the
error kind the CLI maps to an exit code.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Optional

from web3.exceptions import Web3Exception

from ontologic.config import Settings
from ontologic.crypto.canonical import canonicalize_and_hash
from ontologic.crypto.proof_builder import BuiltProof, ProofBuilder
from ontologic.errors import INVALID_INPUT, VERIFICATION_FAILED, NetworkError, OntologicError
from ontologic.models.proof import ProofLayer, ProofOutput, RuleMetadata
from ontologic.network.interfaces import Ledger, MessageLog, MessageReader
from ontologic.network.ledger import Web3Ledger
from ontologic.network.mirror import MirrorNodeClient
from ontologic.network.retry import RetryExhaustedError, RetryPolicy
from ontologic.proofs.export import export_topic
from ontologic.proofs.orchestrator import StageListener, SubmissionOrchestrator
from ontologic.proofs.verifier import TripleEqualityVerifier


logger = logging.getLogger(__name__)

# Transport failures surfaced by requests (OSError subclasses) and web3.
_NETWORK_ERRORS = (OSError, RetryExhaustedError, Web3Exception)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None


def bundle_to_request(bundle: Mapping[str, Any], settings: Settings) -> dict[str, Any]:
    """Turn a reasoning bundle into ProofBuilder.build arguments.

    Bundle shape:
        {
          "domain": "color.light", "operator": "mix_add@v1",
          "layer": "additive",
          "inputs": [{"token": "0x..."}, {"token": "0x..."}],
          "output": {"token": "0x...", "amount": 1},
          "rule": {"version": "v0.6.3"},
          "commutative": true
        }

    The contract, signer and topic come from settings unless the bundle
    names a topicId. Raises ValueError for a malformed bundle and
    ConfigError for missing settings.
    """
    for key in ("domain", "operator"):
        if not isinstance(bundle.get(key), str) or not bundle[key]:
            raise ValueError(f"Bundle must specify {key}")

    raw_inputs = bundle.get("inputs")
    if not isinstance(raw_inputs, list) or not raw_inputs:
        raise ValueError("Bundle must list at least one input")
    inputs = [item.get("token") if isinstance(item, Mapping) else item for item in raw_inputs]
    if not all(isinstance(ref, str) and ref for ref in inputs):
        raise ValueError("Every bundle input needs a token reference")

    output = bundle.get("output")
    if not isinstance(output, Mapping) or not output.get("token"):
        raise ValueError("Bundle must specify output token")

    layer_value = bundle.get("layer", ProofLayer.ADDITIVE.value)
    try:
        layer = ProofLayer(layer_value)
    except ValueError:
        allowed = ", ".join(member.value for member in ProofLayer)
        raise ValueError(f"Unknown layer {layer_value!r} (expected one of: {allowed})") from None

    commutative = bundle.get("commutative", True)
    if not isinstance(commutative, bool):
        raise ValueError(f"Bundle commutative must be true or false, not {commutative!r}")

    rule = bundle.get("rule") or {}
    return {
        "domain": bundle["domain"],
        "operator": bundle["operator"],
        "inputs": inputs,
        "output": ProofOutput(token=output["token"], amount=output.get("amount", 1)),
        "rule_metadata": RuleMetadata(
            contract=settings.require_contract(),
            version=rule.get("version") or settings.rule_version,
            function_selector=rule.get("functionSelector"),
            code_hash=rule.get("codeHash"),
        ),
        "signer": settings.require_signer(),
        "topic_id": bundle.get("topicId") or settings.require_topic(),
        "layer": layer,
        "commutative": commutative,
    }


class ProofService:
    """Facade for building, submitting, verifying and exporting proofs.

    Usage:
        settings = Settings.from_env()
        service = ProofService(settings, message_log=FileMessageLog(path))

        result = service.build_proof(bundle)
        result = service.submit_proof(bundle)
        result = service.verify_transaction(tx_hash, expected_hash=...)
        result = service.export_topic()

    Collaborators not injected are built from settings on first use:
    a Web3Ledger for the ledger and a MirrorNodeClient for reads. There
    is no default message log; submission needs one injected.
    """

    def __init__(
        self,
        settings: Settings,
        message_log: Optional[MessageLog] = None,
        ledger: Optional[Ledger] = None,
        reader: Optional[MessageReader] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._settings = settings
        self._message_log = message_log
        self._ledger = ledger
        self._reader = reader or message_log
        self._retry = retry_policy or RetryPolicy()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def canonicalize(self, value: Any) -> ServiceResult:
        """Canonical text and hash of an arbitrary JSON value."""
        def run() -> dict[str, Any]:
            canonical, digest = canonicalize_and_hash(value)
            return {"canonical": canonical.decode("utf-8"), "hash": digest, "size": len(canonical)}
        return self._run("canonicalize", run)

    def build_proof(self, bundle: Mapping[str, Any], timestamp: Optional[str] = None) -> ServiceResult:
        """Build and seal a proof without touching the network."""
        return self._run("build_proof", lambda: self._build(bundle, timestamp).to_dict())

    def submit_proof(
        self,
        bundle: Mapping[str, Any],
        timestamp: Optional[str] = None,
        on_stage: Optional[StageListener] = None,
    ) -> ServiceResult:
        """Build, append, bind and reconcile one proof."""
        def run() -> dict[str, Any]:
            if self._ledger is None:
                self._settings.require_operator()
            proof = self._build(bundle, timestamp)
            orchestrator = SubmissionOrchestrator(
                message_log=self._require_message_log(),
                ledger=self._get_ledger(),
                contract_ref=self._settings.require_contract(),
                retry_policy=self._retry,
                on_stage=on_stage,
            )
            return orchestrator.submit(proof).to_dict()
        return self._run("submit_proof", run)

    def verify_transaction(self, tx_reference: str, expected_hash: Optional[str] = None) -> ServiceResult:
        """Triple-equality verification. A FAIL verdict is unsuccessful."""
        try:
            verifier = TripleEqualityVerifier(
                ledger=self._get_ledger(),
                reader=self._get_reader(),
                retry_policy=self._retry,
            )
            report = verifier.verify(tx_reference, expected_hash=expected_hash)
        except Exception as exc:
            return self._failure("verify_transaction", exc)

        if report.passed:
            return ServiceResult(success=True, data=report.to_dict())
        pairs = ", ".join(f"{a} != {b}" for a, b in report.mismatches)
        return ServiceResult(
            success=False,
            errors=[f"Verification failed: {pairs}"],
            data=report.to_dict(),
            error_kind=VERIFICATION_FAILED,
        )

    def export_topic(self, topic_id: Optional[str] = None) -> ServiceResult:
        """Snapshot every message on a proof topic."""
        def run() -> dict[str, Any]:
            topic = topic_id or self._settings.require_topic()
            reader = self._get_reader()
            if not hasattr(reader, "messages"):
                raise ValueError("The configured reader cannot list topic messages")
            messages = self._retry.execute(lambda: list(reader.messages(topic)))
            return export_topic(messages, topic)
        return self._run("export_topic", run)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build(self, bundle: Mapping[str, Any], timestamp: Optional[str]) -> BuiltProof:
        builder = ProofBuilder(
            max_message_bytes=self._settings.max_message_bytes,
            version=bundle.get("v") or self._settings.proof_version,
        )
        return builder.build(**bundle_to_request(bundle, self._settings), timestamp=timestamp)

    def _require_message_log(self) -> MessageLog:
        if self._message_log is None:
            raise ValueError("No message log configured for submission")
        return self._message_log

    def _get_ledger(self) -> Ledger:
        if self._ledger is None:
            network = self._settings.network
            self._ledger = Web3Ledger(
                rpc_url=network.rpc_url,
                contract_address=self._settings.require_contract(),
                private_key=self._settings.operator.private_key,
                chain_id=network.chain_id,
            )
        return self._ledger

    def _get_reader(self) -> MessageReader:
        if self._reader is None:
            self._reader = MirrorNodeClient(self._settings.network.mirror_node_url)
        return self._reader

    def _run(self, operation: str, func: Callable[[], dict[str, Any]]) -> ServiceResult:
        try:
            return ServiceResult(success=True, data=func())
        except Exception as exc:
            return self._failure(operation, exc)

    def _failure(self, operation: str, exc: Exception) -> ServiceResult:
        """Convert a known failure to a result; re-raise anything else."""
        if isinstance(exc, _NETWORK_ERRORS):
            exc = NetworkError(f"{operation}: {exc}")
        if isinstance(exc, OntologicError):
            logger.error("%s failed (%s): %s", operation, exc.kind, exc.message)
            return ServiceResult(
                success=False,
                errors=[exc.message],
                data=exc.to_dict(),
                error_kind=exc.kind,
            )
        if isinstance(exc, ValueError):
            logger.error("%s rejected: %s", operation, exc)
            return ServiceResult(success=False, errors=[str(exc)], error_kind=INVALID_INPUT)
        raise exc
