"""Tests for the submission orchestrator: append, bind, reconcile, replay."""

from dataclasses import replace

import pytest
from web3 import Web3

from ontologic.crypto.binding import domain_hash
from ontologic.crypto.proof_builder import ProofBuilder
from ontologic.errors import (
    AppendFailure,
    BindingMismatchError,
    LedgerCallError,
    PayloadTooLargeError,
    UnrecognizedEventError,
)
from ontologic.models.proof import ProofLayer
from ontologic.network.retry import RetryPolicy
from ontologic.proofs.orchestrator import SubmissionOrchestrator, SubmissionStage, bind_arguments

from fakes import CONTRACT, GREEN, RED, CountingMessageLog, FakeLedger, make_proof


@pytest.fixture
def log() -> CountingMessageLog:
    return CountingMessageLog()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def orchestrator(log, ledger) -> SubmissionOrchestrator:
    return SubmissionOrchestrator(log, ledger, CONTRACT)


class TestSubmit:
    def test_happy_path(self, orchestrator, log, ledger) -> None:
        proof = make_proof()
        result = orchestrator.submit(proof)

        assert not result.replayed
        assert log.append_calls == 1
        assert ledger.call_count == 1
        assert log.inner.read_at(result.anchor.topic_id, result.anchor.consensus_timestamp) == proof.canonical_bytes
        assert result.receipt.succeeded

    def test_accepts_unsealed_record(self, orchestrator) -> None:
        proof = make_proof()
        result = orchestrator.submit(proof.record)
        assert result.proof.proof_hash == proof.proof_hash

    def test_bind_arguments(self, orchestrator, ledger) -> None:
        proof = make_proof()
        result = orchestrator.submit(proof)

        contract_ref, function, args = ledger.calls[0]
        assert contract_ref == CONTRACT
        assert function == "reasonAdd"
        a, b, dom, proof_data = args
        assert {a, b} == {Web3.to_checksum_address(RED), Web3.to_checksum_address(GREEN)}
        assert dom == domain_hash("color.light")
        assert proof_data == (
            proof.hashes.inputs_hash,
            proof.proof_hash,
            proof.proof_hash,
            proof.hashes.rule_hash,
            result.anchor.uri,
        )

    def test_stages_reported_in_order(self, log, ledger) -> None:
        seen = []
        orch = SubmissionOrchestrator(log, ledger, CONTRACT, on_stage=lambda stage, fields: seen.append(stage))
        orch.submit(make_proof())
        assert seen == [
            SubmissionStage.SEALED,
            SubmissionStage.REPLAY_CHECKED,
            SubmissionStage.APPENDED,
            SubmissionStage.BOUND,
            SubmissionStage.RECONCILED,
        ]

    def test_to_dict(self, orchestrator) -> None:
        data = orchestrator.submit(make_proof()).to_dict()
        assert data["canonicalUri"].startswith("hcs://0.0.7204585/")
        assert data["replayed"] is False
        assert data["receipt"]["events"] == ["ProofAdd"]

    def test_opaque_topic_id(self, orchestrator, log, ledger) -> None:
        proof = make_proof(topic_id="proofs")
        result = orchestrator.submit(proof)

        assert not result.replayed
        assert result.anchor.topic_id == "proofs"
        assert result.anchor.uri.startswith("hcs://proofs/")
        assert ledger.calls[0][2][-1][-1] == result.anchor.uri
        assert log.inner.read_at("proofs", result.anchor.consensus_timestamp) == proof.canonical_bytes

    def test_unusable_topic_id_rejected_before_any_call(self, orchestrator, log, ledger) -> None:
        broken = replace(make_proof().record, topic_id="a/b")
        with pytest.raises(ValueError):
            orchestrator.submit(broken)
        assert log.append_calls == 0
        assert ledger.call_count == 0

    def test_entity_binding(self, log, ledger) -> None:
        orch = SubmissionOrchestrator(log, ledger, CONTRACT, bind_function="publishEntity")
        proof = make_proof(layer=ProofLayer.ENTITY)
        result = orch.submit(proof)

        _, function, args = ledger.calls[0]
        assert function == "publishEntity"
        assert args == bind_arguments(proof, result.anchor.uri, "publishEntity")
        assert result.receipt.events[0].name == "ProofEntity"


class TestReplay:
    def test_resubmission_skips_append_and_call(self, orchestrator, log, ledger) -> None:
        first = orchestrator.submit(make_proof())
        second = orchestrator.submit(make_proof(inputs=(GREEN, RED)))

        assert second.replayed
        assert second.anchor.uri == first.anchor.uri
        assert second.receipt.tx_reference == first.receipt.tx_reference
        assert log.append_calls == 1
        assert ledger.call_count == 1

    def test_forged_inputs_hash_rejected(self, orchestrator, ledger) -> None:
        proof = make_proof()
        orchestrator.submit(proof)
        # The bound event disagrees with what the resubmitted claim recomputes
        tx = ledger.bindings[proof.proof_hash]
        event = ledger.receipts[tx].events[0]
        event.args["inputsHash"] = "0x" + "00" * 32

        with pytest.raises(BindingMismatchError) as exc_info:
            orchestrator.submit(proof)
        assert exc_info.value.details["field"] == "inputsHash"

    def test_concurrent_winner_leaves_orphan(self, orchestrator, log, ledger, caplog) -> None:
        first = orchestrator.submit(make_proof())
        ledger.hide_bindings = True

        with caplog.at_level("WARNING"):
            second = orchestrator.submit(make_proof())

        assert second.replayed
        assert second.anchor.uri == first.anchor.uri
        assert log.append_calls == 2  # the losing append is orphaned
        assert "orphaned" in caplog.text

    def test_replay_check_uses_retry_policy(self, log, ledger) -> None:
        failures = {"left": 2}
        real_find = ledger.find_binding

        def flaky_find(proof_hash):
            if failures["left"]:
                failures["left"] -= 1
                raise ConnectionError("transient")
            return real_find(proof_hash)

        ledger.find_binding = flaky_find
        orch = SubmissionOrchestrator(
            log, ledger, CONTRACT,
            retry_policy=RetryPolicy(max_attempts=3, sleep=lambda _: None),
        )
        assert not orch.submit(make_proof()).replayed
        assert log.append_calls == 1

    def test_replay_check_failure_is_ledger_error(self, orchestrator, log, ledger) -> None:
        def broken(proof_hash):
            raise ConnectionError("relay down")

        ledger.find_binding = broken
        with pytest.raises(LedgerCallError):
            orchestrator.submit(make_proof())
        assert log.append_calls == 0


class TestFailures:
    def test_size_guard_before_any_call(self, log, ledger) -> None:
        orch = SubmissionOrchestrator(log, ledger, CONTRACT, builder=ProofBuilder(max_message_bytes=100))
        record = make_proof().record

        with pytest.raises(PayloadTooLargeError):
            orch.submit(record)
        assert log.append_calls == 0
        assert ledger.call_count == 0
        assert ledger.find_calls == 0

    def test_append_failure(self, ledger) -> None:
        log = CountingMessageLog(fail=True)
        orch = SubmissionOrchestrator(log, ledger, CONTRACT)

        with pytest.raises(AppendFailure):
            orch.submit(make_proof())
        assert log.append_calls == 1
        assert ledger.call_count == 0

    def test_call_exception(self, orchestrator, ledger) -> None:
        ledger.fail = True
        with pytest.raises(LedgerCallError) as exc_info:
            orchestrator.submit(make_proof())
        assert exc_info.value.details["orphan"].startswith("hcs://")

    def test_reverted_status(self, orchestrator, ledger) -> None:
        ledger.status = "CONTRACT_REVERT_EXECUTED"
        with pytest.raises(LedgerCallError) as exc_info:
            orchestrator.submit(make_proof())
        assert exc_info.value.details["status"] == "CONTRACT_REVERT_EXECUTED"

    def test_event_hash_mismatch(self, orchestrator, ledger) -> None:
        ledger.tamper = {"proofHash": "0x" + "11" * 32}
        with pytest.raises(BindingMismatchError) as exc_info:
            orchestrator.submit(make_proof())
        assert exc_info.value.details["field"] == "proofHash"

    def test_event_locator_mismatch(self, orchestrator, ledger) -> None:
        ledger.tamper = {"canonicalUri": "hcs://0.0.7204585/1.000000001"}
        with pytest.raises(BindingMismatchError) as exc_info:
            orchestrator.submit(make_proof())
        assert exc_info.value.details["field"] == "locator"

    def test_unrecognized_event(self, orchestrator, ledger) -> None:
        ledger.event_name = "Transfer"
        with pytest.raises(UnrecognizedEventError):
            orchestrator.submit(make_proof())
