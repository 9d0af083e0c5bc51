"""Topic export: a self-describing JSON snapshot of a proof topic."""

from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from ontologic.crypto.canonical import keccak_hex
from ontologic.crypto.proof_builder import format_timestamp


logger = logging.getLogger(__name__)


class TopicMessage(Protocol):
    topic_id: str
    sequence_number: int
    consensus_timestamp: str
    message: bytes


def export_topic(
    messages: Iterable[TopicMessage],
    topic_id: str,
    exported_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Build a snapshot of every message on a topic.

    Each message that parses as a JSON object becomes a proof entry
    with its keccak256 hash. Anything else is listed under "rejected"
    with the reason, so a snapshot never hides a message.
    """
    proofs: list[dict[str, Any]] = []
    rejected: list[dict[str, Any]] = []

    for msg in messages:
        entry = {
            "sequence": int(msg.sequence_number),
            "consensusTimestamp": msg.consensus_timestamp,
            "payerAccountId": getattr(msg, "payer_account_id", None),
            "runningHash": getattr(msg, "running_hash", None),
            "runningHashVersion": getattr(msg, "running_hash_version", None),
            "messageSize": len(msg.message),
            "proofHash": keccak_hex(msg.message),
        }
        try:
            proof = json.loads(msg.message.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            logger.warning("Message #%s on %s is not JSON: %s", msg.sequence_number, topic_id, exc)
            rejected.append({**entry, "reason": str(exc)})
            continue
        if not isinstance(proof, dict):
            rejected.append({**entry, "reason": "message is not a JSON object"})
            continue
        proofs.append({**entry, "proof": proof})

    proofs.sort(key=lambda p: p["sequence"])
    rejected.sort(key=lambda p: p["sequence"])

    first_rule = (proofs[0]["proof"].get("rule") or {}) if proofs else {}
    moment = exported_at or datetime.now(timezone.utc)

    return {
        "meta": {
            "exportedAt": format_timestamp(moment),
            "topicId": topic_id,
            "contract": first_rule.get("contract"),
            "codeHash": first_rule.get("codeHash"),
        },
        "summary": summarize(proofs, topic_id, rejected=len(rejected)),
        "proofs": proofs,
        "rejected": rejected,
    }


def summarize(proofs: list[dict[str, Any]], topic_id: str, rejected: int = 0) -> dict[str, Any]:
    """Totals, sequence range and counts per layer and version."""
    layers = Counter(str(p["proof"].get("layer")) for p in proofs if "layer" in p["proof"])
    versions = Counter(str(p["proof"].get("v")) for p in proofs if "v" in p["proof"])
    return {
        "topic": topic_id,
        "totalProofs": len(proofs),
        "rejected": rejected,
        "sequences": {
            "start": proofs[0]["sequence"] if proofs else None,
            "end": proofs[-1]["sequence"] if proofs else None,
        },
        "layers": dict(sorted(layers.items())),
        "versions": dict(sorted(versions.items())),
    }
