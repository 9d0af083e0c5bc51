"""External anchor: where a canonical record was durably appended.

The locator is a URI-like string, hcs://<topicId>/<seconds.nanos>, that
travels inside the contract call and comes back in the emitted event.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


LOCATOR_SCHEME = "hcs"

# Topic ids are opaque: anything without a slash or whitespace.
_LOCATOR_RE = re.compile(r"^hcs://([^/\s]+)/(\d+)\.(\d+)$")
_TOPIC_RE = re.compile(r"^[^/\s]+$")
_TIMESTAMP_RE = re.compile(r"^(\d+)\.(\d+)$")


@dataclass(frozen=True)
class ExternalAnchor:
    """An immutable pointer to one message on an append-only topic."""
    topic_id: str
    consensus_timestamp: str
    sequence_number: Optional[int] = None

    @property
    def uri(self) -> str:
        return build_locator(self.topic_id, self.consensus_timestamp)

    @staticmethod
    def parse(uri: str) -> ExternalAnchor:
        """Parse a locator URI. Raises ValueError on malformed input."""
        match = _LOCATOR_RE.match(uri.strip()) if isinstance(uri, str) else None
        if match is None:
            raise ValueError(
                f"Invalid locator: {uri!r}. Expected {LOCATOR_SCHEME}://<topicId>/<seconds.nanos>"
            )
        topic_id, seconds, nanos = match.groups()
        return ExternalAnchor(
            topic_id=topic_id,
            consensus_timestamp=format_consensus_timestamp(int(seconds), int(nanos)),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "topicId": self.topic_id,
            "consensusTimestamp": self.consensus_timestamp,
            "sequenceNumber": self.sequence_number,
            "uri": self.uri,
        }


def format_consensus_timestamp(seconds: int, nanos: int) -> str:
    """seconds.nanos with nanos zero-padded to nine digits."""
    if nanos < 0 or nanos >= 1_000_000_000:
        raise ValueError(f"nanos out of range: {nanos}")
    return f"{seconds}.{nanos:09d}"


def normalize_timestamp(timestamp: str) -> str:
    """Normalize seconds.nanos so differently padded forms compare equal."""
    match = _TIMESTAMP_RE.match(timestamp.strip())
    if match is None:
        raise ValueError(f"Invalid consensus timestamp: {timestamp!r}")
    return format_consensus_timestamp(int(match.group(1)), int(match.group(2)))


def validate_topic_id(topic_id: str) -> str:
    """Return topic_id if it can travel inside a locator, else raise ValueError."""
    if not isinstance(topic_id, str) or _TOPIC_RE.match(topic_id) is None:
        raise ValueError(f"Invalid topic id: {topic_id!r} (must be non-empty, without '/' or whitespace)")
    return topic_id


def build_locator(topic_id: str, timestamp: str) -> str:
    return f"{LOCATOR_SCHEME}://{validate_topic_id(topic_id)}/{normalize_timestamp(timestamp)}"
