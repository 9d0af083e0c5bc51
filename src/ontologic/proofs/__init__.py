"""Proof lifecycle: submission, verification and export."""

from ontologic.proofs.export import export_topic
from ontologic.proofs.orchestrator import SubmissionOrchestrator, SubmissionResult, SubmissionStage
from ontologic.proofs.verifier import TripleEqualityVerifier, VerificationReport

__all__ = [
    "export_topic",
    "SubmissionOrchestrator",
    "SubmissionResult",
    "SubmissionStage",
    "TripleEqualityVerifier",
    "VerificationReport",
]
