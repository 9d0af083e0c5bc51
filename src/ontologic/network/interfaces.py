"""Interfaces of the two external collaborators.

The append-only log and the ledger are black boxes. The core only
depends on these protocols; concrete adapters live beside them
(Web3Ledger, MirrorNodeClient) or in persistence (FileMessageLog).
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Optional, Protocol, runtime_checkable

from ontologic.models.ledger import AppendReceipt, LedgerReceipt


@runtime_checkable
class MessageReader(Protocol):
    """Read access to an append-only message log."""

    def read_at(self, topic_id: str, timestamp: str) -> Optional[bytes]:
        """Return the message at (topic, consensus timestamp), or None."""
        ...


@runtime_checkable
class MessageLog(MessageReader, Protocol):
    """An append-only log: read access plus append."""

    def append(self, topic_id: str, message: bytes) -> AppendReceipt:
        """Append a message. Not idempotent: never retry blindly."""
        ...


@runtime_checkable
class Ledger(Protocol):
    """The ledger / contract service.

    find_binding is how the core learns that a proof hash was already
    recorded. A ledger that cannot answer it cannot provide replay
    safety.
    """

    def call(self, contract_ref: str, function: str, args: Sequence[Any]) -> LedgerReceipt:
        ...

    def get_receipt(self, tx_reference: str) -> Optional[LedgerReceipt]:
        ...

    def find_binding(self, proof_hash: str) -> Optional[LedgerReceipt]:
        ...
