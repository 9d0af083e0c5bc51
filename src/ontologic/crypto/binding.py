"""Binding hashes: tamper-evident links between a proof and its inputs.

These helpers are pure so that a submitter and any later verifier can
recompute them from (inputs, domain, operator) alone, without the full
proof record.

inputsHash = keccak256(abi.encode(sorted inputs..., keccak(domain), keccak(operator)))
ruleHash   = keccak256("<domain>:<operator>")

Inputs are sorted before encoding, so (A, B) and (B, A) bind to the
same inputsHash and a resubmission is recognized as the same claim.
For two address inputs the preimage is identical to the one the
reasoning contract recomputes on-chain.
"""

from __future__ import annotations

import hashlib
import re
import warnings
from collections.abc import Iterable

from eth_abi import encode
from web3 import Web3

from ontologic.crypto.canonical import keccak_hex


_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_address(reference: str) -> bool:
    """True if the reference is a 20-byte hex EVM address."""
    return bool(_ADDRESS_RE.match(reference))


def normalize_reference(reference: str) -> str:
    """Normalize a reference for hashing and comparison.

    EVM addresses are lower-cased; other identifiers are only stripped.
    """
    if not isinstance(reference, str) or not reference.strip():
        raise ValueError(f"reference must be a non-empty string, got {reference!r}")
    text = reference.strip()
    return text.lower() if is_address(text) else text


def sort_references(references: Iterable[str]) -> list[str]:
    """Normalize references and sort them by UTF-8 byte order."""
    normalized = [normalize_reference(r) for r in references]
    return sorted(normalized, key=lambda r: r.encode("utf-8"))


def tag_hash(tag: str) -> bytes:
    """Raw keccak256 of a UTF-8 tag (domain or operator)."""
    return bytes(Web3.keccak(text=tag))


def domain_hash(domain: str) -> str:
    """Hex keccak256 of a domain tag, as passed to the contract."""
    return Web3.to_hex(tag_hash(domain))


def operator_hash(operator: str) -> str:
    """Hex keccak256 of an operator tag."""
    return Web3.to_hex(tag_hash(operator))


def compute_inputs_hash(inputs: Iterable[str], domain: str, operator: str) -> str:
    """Order-invariant hash binding a set of inputs to a domain and operator."""
    references = sort_references(inputs)
    if not references:
        raise ValueError("inputs must contain at least one reference")

    types: list[str] = []
    values: list[object] = []
    for reference in references:
        if is_address(reference):
            types.append("address")
            values.append(Web3.to_checksum_address(reference))
        else:
            types.append("string")
            values.append(reference)

    types += ["bytes32", "bytes32"]
    values += [tag_hash(domain), tag_hash(operator)]
    return keccak_hex(encode(types, values))


def compute_rule_hash(domain: str, operator: str) -> str:
    """Semantic rule identity, independent of the enforcing contract."""
    return keccak_hex(f"{domain}:{operator}".encode("utf-8"))


def legacy_rule_hash(contract: str, code_hash: str, version: str) -> str:
    """Bytecode-bound rule hash used by early deployments.

    Deprecated: it changes on every redeployment. Use only to recognize
    anchors written before the semantic rule hash was adopted.
    """
    warnings.warn(
        "legacy_rule_hash is bound to contract bytecode; use compute_rule_hash",
        DeprecationWarning,
        stacklevel=2,
    )
    digest = Web3.solidity_keccak(
        ["address", "bytes32", "string"],
        [Web3.to_checksum_address(contract), code_hash, version],
    )
    return Web3.to_hex(digest)


def compute_rule_uri_hash(uri: str) -> str:
    """SHA-256 of a locator string, 0x-prefixed."""
    return "0x" + hashlib.sha256(uri.encode("utf-8")).hexdigest()
