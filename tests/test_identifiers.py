"""
tests/test_identifiers.py

Pytest unit tests for national identifier and phone canonicalization.
"""

from __future__ import annotations

import pytest

from app.normalizers.identifiers import (
    compute_check_character,
    has_valid_check_character,
    identifier_key,
    is_canonical_identifier,
    normalize_identifier,
    normalize_phone,
)


# ---------------------------------------------------------------------------
# Check character
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("body", "expected"),
    [
        ("12345678", "5"),
        ("11111111", "1"),
        ("7654321", "6"),
        ("12345670", "K"),
        ("12345675", "0"),
        ("6", "K"),
    ],
)
def test_compute_check_character(body: str, expected: str) -> None:
    assert compute_check_character(body) == expected


@pytest.mark.parametrize("body", ["1", "999999", "7654321", "12345678", "20123456", "99999999"])
def test_computed_identifier_is_canonical_and_valid(body: str) -> None:
    identifier = normalize_identifier(body + "-" + compute_check_character(body))

    assert is_canonical_identifier(identifier)
    assert has_valid_check_character(identifier)


# ---------------------------------------------------------------------------
# normalize_identifier
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("12345678", "12.345.678-5"),
        ("12.345.678-5", "12.345.678-5"),
        ("123456785", "12.345.678-5"),
        (" 12 345 678 - 5 ", "12.345.678-5"),
        ("012345678-5", "12.345.678-5"),
        (12345678, "12.345.678-5"),
        (12345678.0, "12.345.678-5"),
        ("12.345.670-k", "12.345.670-K"),
        ("12345670K", "12.345.670-K"),
        ("7654321-6", "7.654.321-6"),
    ],
)
def test_normalize_identifier(raw: object, expected: str) -> None:
    assert normalize_identifier(raw) == expected


def test_supplied_check_character_is_never_overwritten() -> None:
    identifier = normalize_identifier("12345678-9")

    assert identifier == "12.345.678-9"
    assert is_canonical_identifier(identifier)
    assert not has_valid_check_character(identifier)


@pytest.mark.parametrize("raw", [None, "", "   ", "abc", True])
def test_normalize_identifier_returns_empty_for_garbage(raw: object) -> None:
    assert normalize_identifier(raw) == ""


@pytest.mark.parametrize(
    "raw",
    ["12345678", "12.345.678-5", "12345678-9", "12345670K", "7654321", "1-9", "012345678-5"],
)
def test_normalize_identifier_is_idempotent(raw: str) -> None:
    once = normalize_identifier(raw)
    assert normalize_identifier(once) == once


def test_identifier_key_ignores_punctuation() -> None:
    assert identifier_key("12.345.678-5") == identifier_key("123456785") == "123456785"
    assert identifier_key("12.345.670-k") == "12345670K"


# ---------------------------------------------------------------------------
# normalize_phone
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("912345678", "+56912345678"),
        ("12345678", "+56912345678"),
        ("56912345678", "+56912345678"),
        ("+56 9 1234 5678", "+56912345678"),
        ("+5612345678", "+56912345678"),
        ("(+56) 9-1234-5678", "+56912345678"),
        ("+56221234567", "+56221234567"),
        ("2345678", "+5622345678"),
        (912345678, "+56912345678"),
    ],
)
def test_normalize_phone(raw: object, expected: str) -> None:
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "abc", "   "])
def test_normalize_phone_returns_empty_for_blank(raw: object) -> None:
    assert normalize_phone(raw) == ""


@pytest.mark.parametrize(
    "raw",
    ["912345678", "12345678", "+5612345678", "+56221234567", "2345678", "123", "+1 555 0100"],
)
def test_normalize_phone_round_trip(raw: str) -> None:
    once = normalize_phone(raw)
    assert normalize_phone(once) == once
