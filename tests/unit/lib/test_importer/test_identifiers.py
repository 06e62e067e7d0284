"""Unit tests for voter identifier hashing and redaction."""

import hashlib

import pytest

from voter_reconciler.lib.importer.identifiers import (
    clean_voter_id,
    derive_system_id,
    hash_voter_id,
    redact_identifiers,
    redact_voter_id,
    system_id_prefix,
)


class TestCleanVoterId:
    """Tests for identifier coercion."""

    def test_integral_float(self) -> None:
        assert clean_voter_id(12345678.0) == "12345678"

    def test_strips_whitespace(self) -> None:
        assert clean_voter_id("  0042 ") == "0042"

    def test_none(self) -> None:
        assert clean_voter_id(None) == ""


class TestHashVoterId:
    """Tests for identifier hashing."""

    def test_sha256_of_trimmed_value(self) -> None:
        expected = hashlib.sha256(b"12345678").hexdigest()
        assert hash_voter_id(" 12345678 ") == expected

    def test_deterministic_and_fixed_length(self) -> None:
        assert hash_voter_id("A1") == hash_voter_id("A1")
        assert len(hash_voter_id("A1")) == 64
        assert len(hash_voter_id("A" * 500)) == 64

    def test_numeric_cell_hashes_like_text(self) -> None:
        assert hash_voter_id(12345678.0) == hash_voter_id("12345678")


class TestRedactVoterId:
    """Tests for redaction."""

    def test_keeps_last_four(self) -> None:
        assert redact_voter_id("12345678") == "***5678"

    def test_short_value(self) -> None:
        assert redact_voter_id("123") == "***123"


class TestDeriveSystemId:
    """Tests for system identifier derivation."""

    def test_default_length(self) -> None:
        digest = hash_voter_id("12345678")
        assert derive_system_id(digest) == f"VV-{digest[:8]}"

    def test_configurable_length(self) -> None:
        digest = hash_voter_id("12345678")
        system_id = derive_system_id(digest, 16)
        assert system_id_prefix(system_id) == digest[:16]

    @pytest.mark.parametrize("length", [0, 65])
    def test_out_of_range_length(self, length: int) -> None:
        with pytest.raises(ValueError, match="length must be between"):
            derive_system_id(hash_voter_id("1"), length)


class TestRedactIdentifiers:
    """Tests for message scrubbing."""

    def test_replaces_raw_ids(self) -> None:
        message = "Row 4: voter 12345678 failed; see 87654321"
        assert redact_identifiers(message, ["12345678", "87654321"]) == "Row 4: voter ***5678 failed; see ***4321"

    def test_longer_id_wins_over_contained_id(self) -> None:
        message = "duplicate key 1234567890"
        assert redact_identifiers(message, ["4567", "1234567890"]) == "duplicate key ***7890"

    def test_no_ids_returns_message(self) -> None:
        assert redact_identifiers("nothing here", []) == "nothing here"
        assert redact_identifiers("nothing here", [None, ""]) == "nothing here"
