"""Deterministic JSON canonicalization and Keccak-256 hashing.

Canonical form is the only input to hashing, so it must never vary
between the producer of a proof and a later verifier:

- Mapping keys sorted by UTF-8 byte order, no whitespace anywhere.
- Strings JSON-escaped with non-ASCII characters kept verbatim.
- Integers rendered as exact decimal digits.
- Non-integral numbers rendered per ECMAScript Number.prototype.toString
  over the shortest round-trip digit string, which matches the records
  already anchored by JavaScript producers (1.5 -> "1.5", 2.0 -> "2", 1e21 -> "1e+21",
  1e-7 -> "1e-7").

The output is UTF-8 bytes. Hashes are 0x-prefixed lower-case hex.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Union

from web3 import Web3

from ontologic.errors import EncodingError


JsonValue = Union[
    None,
    bool,
    int,
    float,
    Decimal,
    str,
    list["JsonValue"],
    tuple["JsonValue", ...],
    dict[str, "JsonValue"],
]


def canonicalize(value: JsonValue) -> bytes:
    """Return the canonical UTF-8 encoding of a JSON value.

    Raises EncodingError for values with no canonical form: NaN or
    infinite numbers, non-string mapping keys, unsupported types, and
    strings that cannot be encoded as UTF-8.
    """
    text = _render(value)
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise EncodingError(f"value is not encodable as UTF-8: {exc.reason}") from exc


def canonicalize_text(value: JsonValue) -> str:
    """Canonical form as a str (what gets printed and posted)."""
    return canonicalize(value).decode("utf-8")


def keccak_hex(data: bytes) -> str:
    """Keccak-256 of raw bytes as 0x-prefixed hex."""
    return Web3.to_hex(Web3.keccak(primitive=data))


def hash_canonical(value: JsonValue) -> str:
    """Canonicalize a value and hash it."""
    return keccak_hex(canonicalize(value))


def canonicalize_and_hash(value: JsonValue) -> tuple[bytes, str]:
    """Return canonical bytes and their hash in one pass."""
    canonical = canonicalize(value)
    return canonical, keccak_hex(canonical)


def normalize_hash(value: str) -> str:
    """Lower-case a hex hash and ensure the 0x prefix."""
    text = value.strip().lower()
    return text if text.startswith("0x") else f"0x{text}"


def hashes_equal(left: str | None, right: str | None) -> bool:
    """Case-insensitive comparison of two hex hashes. None never matches."""
    if left is None or right is None:
        return False
    return normalize_hash(left) == normalize_hash(right)


def verify_canonical_hash(value: JsonValue, expected_hash: str) -> bool:
    """True if the canonical hash of value equals expected_hash."""
    return hashes_equal(hash_canonical(value), expected_hash)


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------

def _render(value: Any) -> str:
    if value is None:
        return "null"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return format_number(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_render(item) for item in value) + "]"
    if isinstance(value, Mapping):
        return _render_mapping(value)
    raise EncodingError(
        f"cannot canonicalize value of type {type(value).__name__}",
        type=type(value).__name__,
    )


def _render_mapping(value: Mapping[Any, Any]) -> str:
    for key in value:
        if not isinstance(key, str):
            raise EncodingError(
                f"mapping keys must be strings, got {type(key).__name__}",
                key=repr(key),
            )
    try:
        keys = sorted(value, key=lambda k: k.encode("utf-8"))
    except UnicodeEncodeError as exc:
        raise EncodingError(f"mapping key is not encodable as UTF-8: {exc.reason}") from exc
    pairs = [f"{json.dumps(k, ensure_ascii=False)}:{_render(value[k])}" for k in keys]
    return "{" + ",".join(pairs) + "}"


def format_number(value: int | float | Decimal) -> str:
    """Render a number in canonical decimal form."""
    if isinstance(value, int):
        return str(value)

    if isinstance(value, float):
        if not math.isfinite(value):
            raise EncodingError(f"non-finite number has no canonical form: {value!r}")
        if value == 0:
            return "0"
        decimal = Decimal(repr(value))
    else:
        if not value.is_finite():
            raise EncodingError(f"non-finite number has no canonical form: {value!r}")
        if value.is_zero():
            return "0"
        decimal = value

    sign, digit_tuple, exponent = decimal.as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1

    s = "".join(str(d) for d in digits)
    k = len(s)
    n = exponent + k  # value == 0.s * 10**n

    if k <= n <= 21:
        body = s + "0" * (n - k)
    elif 0 < n <= 21:
        body = f"{s[:n]}.{s[n:]}"
    elif -6 < n <= 0:
        body = "0." + "0" * (-n) + s
    else:
        e = n - 1
        suffix = f"e{'+' if e >= 0 else '-'}{abs(e)}"
        body = s + suffix if k == 1 else f"{s[0]}.{s[1:]}{suffix}"

    return f"-{body}" if sign else body
