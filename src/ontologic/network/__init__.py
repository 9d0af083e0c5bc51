"""External services: the append-only log, the mirror node and the ledger."""

from ontologic.network.interfaces import Ledger, MessageLog, MessageReader
from ontologic.network.retry import NO_RETRY, BackoffStrategy, RetryExhaustedError, RetryPolicy

__all__ = [
    "Ledger",
    "MessageLog",
    "MessageReader",
    "NO_RETRY",
    "BackoffStrategy",
    "RetryExhaustedError",
    "RetryPolicy",
]
