"""Proof record model: one reasoning claim to be anchored externally.

A ProofRecord is a frozen value object. Its wire form (to_dict) is the
exact structure that gets canonicalized, hashed, appended to the proof
topic and bound on-chain. Wire keys follow the schema the deployed
contract and existing topics already use: v, layer, domain, operator,
inputs, output, rule, signer, topicId, ts.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional, Union


Quantity = Union[int, str]


class ProofLayer(str, enum.Enum):
    """Classification of the claim type."""
    ADDITIVE = "additive"
    SUBTRACTIVE = "subtractive"
    ENTITY = "entity"


@dataclass(frozen=True)
class ProofOutput:
    """The single output reference and the quantity produced."""
    token: str
    amount: Quantity = 1

    def to_dict(self) -> dict[str, Any]:
        return {"token": self.token, "amount": self.amount}


@dataclass(frozen=True)
class RuleMetadata:
    """Identifies the contract and rule version a record is bound to."""
    contract: str
    version: str
    function_selector: Optional[str] = None
    code_hash: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract": self.contract,
            "version": self.version,
            "functionSelector": self.function_selector,
            "codeHash": self.code_hash,
        }


@dataclass(frozen=True)
class ProofRecord:
    """A structured claim (domain, operator, inputs, output).

    Inputs are stored already normalized and, for commutative
    operators, already sorted. Use ProofBuilder to construct records.
    """
    version: str
    layer: ProofLayer
    domain: str
    operator: str
    inputs: tuple[str, ...]
    output: ProofOutput
    rule_metadata: RuleMetadata
    signer: str
    topic_id: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        """Wire form of the record, the sole input to canonicalization."""
        return {
            "v": self.version,
            "layer": self.layer.value,
            "domain": self.domain,
            "operator": self.operator,
            "inputs": [{"token": ref} for ref in self.inputs],
            "output": self.output.to_dict(),
            "rule": self.rule_metadata.to_dict(),
            "signer": self.signer,
            "topicId": self.topic_id,
            "ts": self.timestamp,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ProofRecord:
        """Rebuild a record from its wire form (e.g. a fetched message)."""
        rule = data.get("rule") or {}
        output = data["output"]
        return ProofRecord(
            version=data["v"],
            layer=ProofLayer(data["layer"]),
            domain=data["domain"],
            operator=data["operator"],
            inputs=tuple(item["token"] for item in data["inputs"]),
            output=ProofOutput(token=output["token"], amount=output.get("amount", 1)),
            rule_metadata=RuleMetadata(
                contract=rule.get("contract", ""),
                version=rule.get("version", ""),
                function_selector=rule.get("functionSelector"),
                code_hash=rule.get("codeHash"),
            ),
            signer=data["signer"],
            topic_id=data["topicId"],
            timestamp=data["ts"],
        )


@dataclass(frozen=True)
class CanonicalHashSet:
    """Hashes derived from a ProofRecord. Always recomputable."""
    proof_hash: str
    inputs_hash: str
    rule_hash: str

    @property
    def fact_hash(self) -> str:
        """The ProofData.factHash slot carries the canonical proof hash."""
        return self.proof_hash

    def to_dict(self) -> dict[str, str]:
        return {
            "proofHash": self.proof_hash,
            "inputsHash": self.inputs_hash,
            "ruleHash": self.rule_hash,
            "factHash": self.fact_hash,
        }
