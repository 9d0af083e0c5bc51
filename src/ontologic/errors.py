"""Error taxonomy for the proof anchoring core.

Every failure the core can surface has a kind and a process exit code.
Core modules raise these; the service facade turns them into typed
results; the CLI maps the kind to the exit code so automated harnesses
can tell failure classes apart.
"""

from __future__ import annotations

from typing import Any


# A verification run that completed but did not pass is a result, not an
# exception; it still gets its own kind and exit code. So does input the
# caller got wrong (malformed bundle, unreadable file).
VERIFICATION_FAILED = "verification_failed"
EXIT_VERIFICATION_FAILED = 2
INVALID_INPUT = "invalid_input"
EXIT_INVALID_INPUT = 11

# Reserved for kinds this module does not know.
EXIT_UNKNOWN = 1


class OntologicError(Exception):
    """Base class for all structured errors raised by the core."""

    kind = "error"
    exit_code = EXIT_UNKNOWN

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Structured form used in JSON status lines."""
        data: dict[str, Any] = {"kind": self.kind, "message": self.message}
        if self.details:
            data["details"] = dict(self.details)
        return data


class ConfigError(OntologicError):
    """Required configuration is missing or malformed."""

    kind = "config"
    exit_code = 10


class AppendFailure(OntologicError):
    """The external log rejected or failed to record a message."""

    kind = "append_failure"
    exit_code = 3


class LedgerCallError(OntologicError):
    """The contract call failed or returned a non-success status."""

    kind = "ledger_call_failed"
    exit_code = 12


class NetworkError(OntologicError):
    """A read from the log or the ledger failed in transit."""

    kind = "network"
    exit_code = 13


class EncodingError(OntologicError):
    """A value has no canonical JSON form."""

    kind = "encoding"
    exit_code = 4


class PayloadTooLargeError(OntologicError):
    """Canonical bytes exceed the external log's message size cap."""

    kind = "payload_too_large"
    exit_code = 5


class BindingMismatchError(OntologicError):
    """A hash reported by the ledger disagrees with the local value."""

    kind = "binding_mismatch"
    exit_code = 6


class DanglingReferenceError(OntologicError):
    """A confirmed binding points at a log entry that cannot be read."""

    kind = "dangling_reference"
    exit_code = 7


class NotFoundError(OntologicError):
    """The referenced transaction does not exist."""

    kind = "not_found"
    exit_code = 8


class UnrecognizedEventError(OntologicError):
    """The transaction carries no proof event of a known shape."""

    kind = "unrecognized_event"
    exit_code = 9


ERROR_KINDS: dict[str, type[OntologicError]] = {
    cls.kind: cls
    for cls in (
        ConfigError,
        AppendFailure,
        LedgerCallError,
        NetworkError,
        EncodingError,
        PayloadTooLargeError,
        BindingMismatchError,
        DanglingReferenceError,
        NotFoundError,
        UnrecognizedEventError,
    )
}


def exit_code_for(kind: str | None) -> int:
    """Map an error kind to its process exit code (1 for unknown kinds).

    Every known kind has its own code.
    """
    if kind is None:
        return 0
    if kind == VERIFICATION_FAILED:
        return EXIT_VERIFICATION_FAILED
    if kind == INVALID_INPUT:
        return EXIT_INVALID_INPUT
    cls = ERROR_KINDS.get(kind)
    return cls.exit_code if cls is not None else EXIT_UNKNOWN
