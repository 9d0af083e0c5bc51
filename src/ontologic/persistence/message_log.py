"""Append-only topic log with optional JSONL persistence.

Stands in for the consensus topic service when running offline: every
appended message gets a per-topic sequence number and a strictly
increasing consensus timestamp (seconds.nanos), and can be read back
by (topic, timestamp) exactly like a mirror node read.

Messages are immutable once written. On load, each stored body is
re-hashed and compared to its recorded hash; a mismatch or a duplicate
position fails closed.
"""

from __future__ import annotations

import base64
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ontologic.crypto.canonical import keccak_hex
from ontologic.crypto.proof_builder import DEFAULT_MAX_MESSAGE_BYTES
from ontologic.errors import PayloadTooLargeError
from ontologic.models.anchor import format_consensus_timestamp, normalize_timestamp, validate_topic_id
from ontologic.models.ledger import AppendReceipt


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredMessage:
    """A single immutable message on a topic."""
    topic_id: str
    sequence_number: int
    consensus_timestamp: str
    message: bytes
    message_hash: str  # keccak256 of message

    @staticmethod
    def create(
        topic_id: str,
        sequence_number: int,
        consensus_timestamp: str,
        message: bytes,
    ) -> StoredMessage:
        return StoredMessage(
            topic_id=topic_id,
            sequence_number=sequence_number,
            consensus_timestamp=consensus_timestamp,
            message=message,
            message_hash=keccak_hex(message),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic_id": self.topic_id,
            "sequence_number": self.sequence_number,
            "consensus_timestamp": self.consensus_timestamp,
            "message": base64.b64encode(self.message).decode("ascii"),
            "message_hash": self.message_hash,
        }


class FileMessageLog:
    """Append-only message log, in memory or persisted to a JSONL file.

    Usage:
        log = FileMessageLog(Path("data/messages.jsonl"))
        receipt = log.append("0.0.7204585", canonical_bytes)
        log.read_at(receipt.topic_id, receipt.consensus_timestamp)
    """

    def __init__(
        self,
        storage_path: Optional[Path] = None,
        max_message_bytes: int = DEFAULT_MAX_MESSAGE_BYTES,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._storage_path = storage_path
        self._max_message_bytes = max_message_bytes
        self._clock = clock or time.time_ns
        self._messages: list[StoredMessage] = []
        self._index: dict[tuple[str, str], StoredMessage] = {}
        self._sequences: dict[str, int] = {}
        self._last_ns = 0

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, topic_id: str, message: bytes) -> AppendReceipt:
        """Append a message and assign its sequence number and timestamp.

        Raises PayloadTooLargeError above the size cap and ValueError
        for an unusable topic id or an empty message.
        """
        validate_topic_id(topic_id)
        if not message:
            raise ValueError("message must not be empty")
        if len(message) > self._max_message_bytes:
            raise PayloadTooLargeError(
                f"Message is {len(message)} bytes (limit {self._max_message_bytes})",
                size=len(message),
                limit=self._max_message_bytes,
            )

        # Consensus timestamps never repeat, even if the clock stalls
        ns = max(self._clock(), self._last_ns + 1)
        timestamp = format_consensus_timestamp(ns // 1_000_000_000, ns % 1_000_000_000)
        sequence = self._sequences.get(topic_id, 0) + 1

        stored = StoredMessage.create(topic_id, sequence, timestamp, bytes(message))
        self._remember(stored, ns)
        if self._storage_path:
            self._append_to_file(stored)

        logger.debug("Appended message #%d to %s at %s", sequence, topic_id, timestamp)
        return AppendReceipt(
            topic_id=topic_id,
            sequence_number=sequence,
            consensus_timestamp=timestamp,
        )

    def read_at(self, topic_id: str, timestamp: str) -> Optional[bytes]:
        """Return the message at (topic, consensus timestamp), or None."""
        try:
            key = (topic_id, normalize_timestamp(timestamp))
        except ValueError:
            return None
        stored = self._index.get(key)
        return stored.message if stored else None

    def messages(self, topic_id: Optional[str] = None) -> list[StoredMessage]:
        """Return messages in append order, optionally for one topic."""
        if topic_id is None:
            return list(self._messages)
        return [m for m in self._messages if m.topic_id == topic_id]

    @property
    def count(self) -> int:
        return len(self._messages)

    @property
    def last_message(self) -> Optional[StoredMessage]:
        return self._messages[-1] if self._messages else None

    def _remember(self, stored: StoredMessage, ns: int) -> None:
        self._messages.append(stored)
        self._index[(stored.topic_id, stored.consensus_timestamp)] = stored
        self._sequences[stored.topic_id] = stored.sequence_number
        self._last_ns = max(self._last_ns, ns)

    def _append_to_file(self, stored: StoredMessage) -> None:
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(stored.to_dict(), sort_keys=True) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Load messages from a JSONL file with integrity verification.

        Fail-closed: rejects tampered bodies (hash mismatch), repeated
        positions, and sequence numbers that do not follow on.
        """
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)

                topic_id = data["topic_id"]
                timestamp = normalize_timestamp(data["consensus_timestamp"])
                sequence = int(data["sequence_number"])

                if (topic_id, timestamp) in self._index:
                    raise ValueError(
                        f"Duplicate message on recovery (line {line_num}): {topic_id} at {timestamp}"
                    )
                expected_sequence = self._sequences.get(topic_id, 0) + 1
                if sequence != expected_sequence:
                    raise ValueError(
                        f"Sequence gap on recovery (line {line_num}): {topic_id} "
                        f"expected #{expected_sequence}, found #{sequence}"
                    )

                message = base64.b64decode(data["message"])
                computed = keccak_hex(message)
                if data["message_hash"] != computed:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): message {topic_id}#{sequence} "
                        f"stored hash {data['message_hash']} != computed {computed}"
                    )

                seconds, nanos = timestamp.split(".")
                stored = StoredMessage(
                    topic_id=topic_id,
                    sequence_number=sequence,
                    consensus_timestamp=timestamp,
                    message=message,
                    message_hash=computed,
                )
                self._remember(stored, int(seconds) * 1_000_000_000 + int(nanos))

        logger.debug("Loaded %d messages from %s", len(self._messages), path)
