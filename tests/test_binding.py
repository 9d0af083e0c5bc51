"""Tests for binding hashes: inputsHash, ruleHash and reference handling."""

import warnings

import pytest
from eth_abi import encode
from web3 import Web3

from ontologic.crypto.binding import (
    compute_inputs_hash,
    compute_rule_hash,
    compute_rule_uri_hash,
    domain_hash,
    is_address,
    legacy_rule_hash,
    normalize_reference,
    operator_hash,
    sort_references,
)

from fakes import BLUE, CONTRACT, GREEN, RED, YELLOW


class TestReferences:
    def test_is_address(self) -> None:
        assert is_address(RED)
        assert not is_address("0.0.1234")
        assert not is_address("0x1234")

    def test_addresses_lowercased(self) -> None:
        assert normalize_reference(RED) == RED.lower()
        assert normalize_reference("  " + GREEN + " ") == GREEN.lower()

    def test_other_identifiers_kept(self) -> None:
        assert normalize_reference("Concept:Red") == "Concept:Red"

    @pytest.mark.parametrize("bad", ["", "   ", None, 7])
    def test_empty_or_non_string_rejected(self, bad) -> None:
        with pytest.raises(ValueError):
            normalize_reference(bad)

    def test_sort_is_by_normalized_bytes(self) -> None:
        assert sort_references([GREEN, RED]) == sort_references([RED.lower(), GREEN.upper().replace("0X", "0x")])


class TestInputsHash:
    @pytest.mark.parametrize("a,b", [
        (RED, GREEN),
        (GREEN, BLUE),
        (BLUE, YELLOW),
        ("concept:red", "concept:green"),
    ])
    def test_order_invariant(self, a, b) -> None:
        assert compute_inputs_hash([a, b], "light-mix", "add-v1") == compute_inputs_hash(
            [b, a], "light-mix", "add-v1"
        )

    def test_case_of_address_irrelevant(self) -> None:
        assert compute_inputs_hash([RED, GREEN], "d", "o") == compute_inputs_hash(
            [RED.lower(), GREEN.lower()], "d", "o"
        )

    def test_matches_contract_preimage(self) -> None:
        """Two addresses: keccak(abi.encode(X, Y, keccak(domain), keccak(operator)))."""
        x, y = sorted([RED, GREEN], key=str.lower)
        preimage = encode(
            ["address", "address", "bytes32", "bytes32"],
            [
                Web3.to_checksum_address(x),
                Web3.to_checksum_address(y),
                Web3.keccak(text="color.light"),
                Web3.keccak(text="mix_add@v1"),
            ],
        )
        expected = Web3.to_hex(Web3.keccak(preimage))
        assert compute_inputs_hash([GREEN, RED], "color.light", "mix_add@v1") == expected

    def test_domain_and_operator_bound(self) -> None:
        base = compute_inputs_hash([RED, GREEN], "color.light", "mix_add@v1")
        assert base != compute_inputs_hash([RED, GREEN], "color.paint", "mix_add@v1")
        assert base != compute_inputs_hash([RED, GREEN], "color.light", "mix_sub@v1")

    def test_different_inputs_differ(self) -> None:
        assert compute_inputs_hash([RED, GREEN], "d", "o") != compute_inputs_hash([RED, BLUE], "d", "o")

    def test_empty_inputs_rejected(self) -> None:
        with pytest.raises(ValueError):
            compute_inputs_hash([], "d", "o")


class TestRuleHash:
    def test_semantic_form(self) -> None:
        expected = Web3.to_hex(Web3.keccak(text="color.light:mix_add@v1"))
        assert compute_rule_hash("color.light", "mix_add@v1") == expected

    def test_independent_of_contract(self) -> None:
        assert compute_rule_hash("d", "o") == compute_rule_hash("d", "o")
        assert compute_rule_hash("d", "o") != compute_rule_hash("o", "d")

    def test_tag_hashes(self) -> None:
        assert domain_hash("color.light") == Web3.to_hex(Web3.keccak(text="color.light"))
        assert operator_hash("mix_add@v1") == Web3.to_hex(Web3.keccak(text="mix_add@v1"))

    def test_legacy_rule_hash_warns(self) -> None:
        code_hash = "0x" + "ab" * 32
        with pytest.warns(DeprecationWarning):
            digest = legacy_rule_hash(CONTRACT, code_hash, "v0.4.2")
        expected = Web3.solidity_keccak(
            ["address", "bytes32", "string"],
            [Web3.to_checksum_address(CONTRACT), code_hash, "v0.4.2"],
        )
        assert digest == Web3.to_hex(expected)

    def test_legacy_rule_hash_tracks_bytecode(self) -> None:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DeprecationWarning)
            first = legacy_rule_hash(CONTRACT, "0x" + "ab" * 32, "v0.4.2")
            second = legacy_rule_hash(CONTRACT, "0x" + "cd" * 32, "v0.4.2")
        assert first != second

    def test_rule_uri_hash_is_sha256(self) -> None:
        digest = compute_rule_uri_hash("hcs://0.0.1/1.000000001")
        assert digest.startswith("0x")
        assert len(digest) == 66
