"""In-memory test doubles for the ledger and the message log."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Optional

from ontologic.crypto.proof_builder import BuiltProof, ProofBuilder
from ontologic.models.ledger import LedgerEvent, LedgerReceipt
from ontologic.models.proof import ProofLayer, ProofOutput, RuleMetadata
from ontologic.persistence.message_log import FileMessageLog


TOPIC = "0.0.7204585"
CONTRACT = "0x97e00a2597C20b490fE869204B0728EF6c9F23eA"
SIGNER = "0x2B1f8E8D4a3E2c9f0C1A5e6b7D8c9E0f1a2B3c4D"
RED = "0x00000000000000000000000000000000006DEd5B"
GREEN = "0x00000000000000000000000000000000006DEd5e"
BLUE = "0x00000000000000000000000000000000006dEd60"
YELLOW = "0x00000000000000000000000000000000006DEd6A"
FIXED_TS = "2025-11-15T10:00:00.000Z"


def make_proof(
    inputs: tuple[str, ...] = (RED, GREEN),
    output: str = YELLOW,
    domain: str = "color.light",
    operator: str = "mix_add@v1",
    timestamp: str = FIXED_TS,
    layer: ProofLayer = ProofLayer.ADDITIVE,
    builder: Optional[ProofBuilder] = None,
    topic_id: str = TOPIC,
) -> BuiltProof:
    builder = builder or ProofBuilder()
    return builder.build(
        domain=domain,
        operator=operator,
        inputs=list(inputs),
        output=ProofOutput(token=output, amount=1),
        rule_metadata=RuleMetadata(contract=CONTRACT, version="v0.6.3"),
        signer=SIGNER,
        topic_id=topic_id,
        layer=layer,
        timestamp=timestamp,
    )


def step_clock(start_ns: int = 1_763_200_800_000_000_000, step_ns: int = 1_000):
    """A deterministic nanosecond clock for FileMessageLog."""
    state = {"now": start_ns}

    def clock() -> int:
        state["now"] += step_ns
        return state["now"]

    return clock


class CountingMessageLog:
    """Wraps a FileMessageLog and counts appends. Can be told to fail."""

    def __init__(self, inner: Optional[FileMessageLog] = None, fail: bool = False) -> None:
        self.inner = inner or FileMessageLog(clock=step_clock())
        self.fail = fail
        self.append_calls = 0
        self.read_calls = 0

    def append(self, topic_id: str, message: bytes):
        self.append_calls += 1
        if self.fail:
            raise OSError("topic unavailable")
        return self.inner.append(topic_id, message)

    def read_at(self, topic_id: str, timestamp: str) -> Optional[bytes]:
        self.read_calls += 1
        return self.inner.read_at(topic_id, timestamp)

    def messages(self, topic_id: Optional[str] = None):
        return self.inner.messages(topic_id)


class FakeLedger:
    """Records calls and emits the events the reasoning contract would.

    Knobs:
        fail            call() raises ConnectionError
        status          status reported by call() (default SUCCESS)
        tamper          event arg overrides applied to emitted events
        event_name      emit under a different event name
        hide_bindings   find_binding() sees nothing (a stale read racing
                        a concurrent submission)
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, list[Any]]] = []
        self.find_calls = 0
        self.receipts: dict[str, LedgerReceipt] = {}
        self.bindings: dict[str, str] = {}
        self.fail = False
        self.status = "SUCCESS"
        self.tamper: dict[str, Any] = {}
        self.event_name: Optional[str] = None
        self.hide_bindings = False

    @property
    def call_count(self) -> int:
        return len(self.calls)

    def call(self, contract_ref: str, function: str, args: list[Any]) -> LedgerReceipt:
        self.calls.append((contract_ref, function, list(args)))
        if self.fail:
            raise ConnectionError("relay unreachable")

        if function == "publishEntity":
            token, manifest_hash, uri = args
            proof_hash = manifest_hash
            name = "ProofEntity"
            event_args = {"token": token, "manifestHash": manifest_hash, "manifestUri": uri}
        else:
            *inputs, domain_hash, proof_data = args
            inputs_hash, proof_hash, fact_hash, rule_hash, uri = proof_data
            name = "ProofAdd"
            event_args = {
                "proofHash": proof_hash,
                "domainHash": domain_hash,
                "A": inputs[0],
                "B": inputs[-1],
                "inputsHash": inputs_hash,
                "factHash": fact_hash,
                "ruleHash": rule_hash,
                "canonicalUri": uri,
            }

        prior = self.bindings.get(proof_hash)
        if prior is not None:
            return replace(self.receipts[prior], replayed=True)

        event_args.update(self.tamper)
        tx = "0x%064x" % (len(self.receipts) + 1)
        receipt = LedgerReceipt(
            tx_reference=tx,
            status=self.status,
            events=(LedgerEvent(name=self.event_name or name, args=event_args),),
            block_number=100 + len(self.receipts),
        )
        self.receipts[tx] = receipt
        if receipt.succeeded:
            self.bindings[proof_hash] = tx
        return receipt

    def get_receipt(self, tx_reference: str) -> Optional[LedgerReceipt]:
        return self.receipts.get(tx_reference)

    def find_binding(self, proof_hash: str) -> Optional[LedgerReceipt]:
        self.find_calls += 1
        if self.hide_bindings:
            return None
        tx = self.bindings.get(proof_hash)
        return self.receipts[tx] if tx else None
