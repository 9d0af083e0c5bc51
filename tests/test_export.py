"""Tests for topic export snapshots."""

from datetime import datetime, timezone

from ontologic.crypto.canonical import keccak_hex
from ontologic.models.proof import ProofLayer
from ontologic.persistence.message_log import FileMessageLog
from ontologic.proofs.export import export_topic

from fakes import BLUE, CONTRACT, GREEN, RED, TOPIC, make_proof, step_clock


def _log_with(*payloads: bytes) -> FileMessageLog:
    log = FileMessageLog(clock=step_clock())
    for payload in payloads:
        log.append(TOPIC, payload)
    return log


class TestExportTopic:
    def test_snapshot(self) -> None:
        additive = make_proof()
        subtractive = make_proof(inputs=(RED, BLUE), operator="mix_sub@v1", layer=ProofLayer.SUBTRACTIVE)
        log = _log_with(additive.canonical_bytes, subtractive.canonical_bytes)
        moment = datetime(2025, 11, 15, 12, 0, tzinfo=timezone.utc)

        snapshot = export_topic(log.messages(TOPIC), TOPIC, exported_at=moment)

        assert snapshot["meta"]["exportedAt"] == "2025-11-15T12:00:00.000Z"
        assert snapshot["meta"]["topicId"] == TOPIC
        assert snapshot["meta"]["contract"] == CONTRACT.lower()
        assert [p["sequence"] for p in snapshot["proofs"]] == [1, 2]
        assert snapshot["proofs"][0]["proofHash"] == additive.proof_hash
        assert snapshot["proofs"][1]["proof"]["operator"] == "mix_sub@v1"
        assert snapshot["summary"]["totalProofs"] == 2
        assert snapshot["summary"]["layers"] == {"additive": 1, "subtractive": 1}
        assert snapshot["summary"]["sequences"] == {"start": 1, "end": 2}
        assert snapshot["rejected"] == []

    def test_unparsable_messages_reported(self) -> None:
        log = _log_with(b"not json", make_proof(inputs=(GREEN, BLUE)).canonical_bytes, b"[1,2]")
        snapshot = export_topic(log.messages(TOPIC), TOPIC)

        assert snapshot["summary"]["totalProofs"] == 1
        assert snapshot["summary"]["rejected"] == 2
        assert [r["sequence"] for r in snapshot["rejected"]] == [1, 3]
        assert snapshot["rejected"][0]["proofHash"] == keccak_hex(b"not json")

    def test_sorted_by_sequence(self) -> None:
        log = _log_with(b'{"layer":"additive"}', b'{"layer":"entity"}')
        snapshot = export_topic(reversed(log.messages(TOPIC)), TOPIC)
        assert [p["sequence"] for p in snapshot["proofs"]] == [1, 2]

    def test_empty_topic(self) -> None:
        snapshot = export_topic([], TOPIC)
        assert snapshot["summary"]["totalProofs"] == 0
        assert snapshot["summary"]["sequences"] == {"start": None, "end": None}
        assert snapshot["meta"]["contract"] is None
