"""Mirror node reader: read-only access to consensus topic messages.

Messages come back base64-encoded from the REST API:

    GET {base}/topics/{topicId}/messages?timestamp=<seconds.nanos>
    GET {base}/topics/{topicId}/messages?limit=100   (paginated via links.next)

All calls are idempotent and safe to run under a RetryPolicy. Server
errors (5xx), 408, 429 and connection failures propagate as requests
exceptions, which are OSError subclasses the default retry policy treats
as transient. Other client errors (4xx) raise MirrorRequestError, which
is not retried; read_at maps 404 to None.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urljoin

import requests

from ontologic.models.anchor import normalize_timestamp


logger = logging.getLogger(__name__)

DEFAULT_MIRROR_NODE_URL = "https://testnet.mirrornode.hedera.com/api/v1"

# Client errors worth retrying: the server asked us to slow down.
_TRANSIENT_CLIENT_STATUSES = frozenset({408, 429})


class MirrorRequestError(ValueError):
    """The mirror node rejected the request itself (4xx); retrying cannot help."""

    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(f"Mirror node rejected {url} with HTTP {status_code}")


@dataclass(frozen=True)
class MirrorMessage:
    """One topic message as reported by the mirror node."""
    topic_id: str
    sequence_number: int
    consensus_timestamp: str
    message: bytes
    payer_account_id: Optional[str] = None
    running_hash: Optional[str] = None
    running_hash_version: Optional[int] = None


class MirrorNodeClient:
    """Reads topic messages from a mirror node REST endpoint."""

    def __init__(
        self,
        base_url: str = DEFAULT_MIRROR_NODE_URL,
        timeout: float = 10.0,
        page_size: int = 100,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._page_size = page_size
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def read_at(self, topic_id: str, timestamp: str) -> Optional[bytes]:
        """Return the message bytes at a consensus timestamp, or None."""
        wanted = normalize_timestamp(timestamp)
        url = f"{self._base_url}/topics/{topic_id}/messages"
        response = self._session.get(url, params={"timestamp": wanted}, timeout=self._timeout)
        if response.status_code == 404:
            return None
        _check_status(response, url)

        for raw in response.json().get("messages") or []:
            message = _parse_message(topic_id, raw)
            if normalize_timestamp(message.consensus_timestamp) == wanted:
                return message.message

        logger.debug("No message on topic %s at %s", topic_id, wanted)
        return None

    def messages(self, topic_id: str) -> Iterator[MirrorMessage]:
        """Yield every message on a topic, following pagination."""
        next_url: Optional[str] = f"{self._base_url}/topics/{topic_id}/messages"
        params: Optional[dict[str, Any]] = {"limit": self._page_size}

        while next_url:
            response = self._session.get(next_url, params=params, timeout=self._timeout)
            _check_status(response, next_url)
            data = response.json()

            for raw in data.get("messages") or []:
                yield _parse_message(topic_id, raw)

            link = (data.get("links") or {}).get("next")
            # links.next is absolute from the host root and carries its own query
            next_url = urljoin(self._base_url, link) if link else None
            params = None


def _check_status(response: requests.Response, url: str) -> None:
    status = response.status_code
    if 400 <= status < 500 and status not in _TRANSIENT_CLIENT_STATUSES:
        raise MirrorRequestError(status, url)
    response.raise_for_status()


def _parse_message(topic_id: str, raw: dict[str, Any]) -> MirrorMessage:
    return MirrorMessage(
        topic_id=raw.get("topic_id", topic_id),
        sequence_number=int(raw["sequence_number"]),
        consensus_timestamp=raw["consensus_timestamp"],
        message=base64.b64decode(raw["message"]),
        payer_account_id=raw.get("payer_account_id"),
        running_hash=raw.get("running_hash"),
        running_hash_version=raw.get("running_hash_version"),
    )
