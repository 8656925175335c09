"""
app/normalizers/identifiers.py

National identifier (RUT) and phone number canonicalization.

Canonical identifier form is the dotted body, a hyphen, and the mod-11
check character: ``12.345.678-5``. Canonical phone form is the international
``+56`` prefix followed by the subscriber digits.
"""

from __future__ import annotations

import re
from typing import Any

CANONICAL_IDENTIFIER_PATTERN = re.compile(r"^\d{1,2}(\.\d{3})*-[0-9K]$")

_IDENTIFIER_CHARS = re.compile(r"[^0-9K]")
_NON_DIGITS = re.compile(r"\D")

COUNTRY_PREFIX = "+56"
MOBILE_PREFIX = "+569"
LANDLINE_PREFIX = "+562"


def _as_text(raw: Any) -> str:
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, float):
        if raw != raw:
            return ""
        if raw.is_integer():
            return str(int(raw))
    return str(raw).strip()


def compute_check_character(body: str) -> str:
    """
    Compute the mod-11 check character for a digit body.

    Digits are weighted right-to-left with multipliers cycling 2..7.
    A result of 11 maps to ``0`` and 10 maps to ``K``.
    """

    digits = _NON_DIGITS.sub("", body or "")
    total = 0
    multiplier = 2
    for char in reversed(digits):
        total += int(char) * multiplier
        multiplier = 2 if multiplier == 7 else multiplier + 1

    check = 11 - (total % 11)
    if check == 11:
        return "0"
    if check == 10:
        return "K"
    return str(check)


def _split_body_and_check(text: str) -> tuple[str, str] | None:
    cleaned = _IDENTIFIER_CHARS.sub("", text)
    if not cleaned:
        return None

    if "-" in text:
        head, _, tail = text.rpartition("-")
        head_clean = _IDENTIFIER_CHARS.sub("", head)
        tail_clean = _IDENTIFIER_CHARS.sub("", tail)
        if head_clean and len(tail_clean) == 1:
            return head_clean, tail_clean

    if len(cleaned) >= 2 and cleaned.endswith("K"):
        return cleaned[:-1], "K"

    # Unhyphenated input: trust the last digit only when it is self-consistent.
    if len(cleaned) >= 2 and compute_check_character(cleaned[:-1]) == cleaned[-1]:
        return cleaned[:-1], cleaned[-1]

    return cleaned, compute_check_character(cleaned)


def _format_body(body: str) -> str:
    return f"{int(body):,}".replace(",", ".")


def normalize_identifier(raw: Any) -> str:
    """
    Return the canonical identifier for any input, or ``""`` for garbage.

    A supplied check character (after a hyphen, or a trailing ``K``) is kept
    as-is; use :func:`has_valid_check_character` to verify it.
    """

    text = _as_text(raw).upper()
    if not text:
        return ""

    split = _split_body_and_check(text)
    if split is None:
        return ""

    body, check = split
    if not body.isdigit():
        return ""

    body = body.lstrip("0") or "0"
    return f"{_format_body(body)}-{check}"


def is_canonical_identifier(value: Any) -> bool:
    return bool(CANONICAL_IDENTIFIER_PATTERN.match(_as_text(value)))


def has_valid_check_character(value: Any) -> bool:
    """
    True when a canonical identifier carries the check character its body computes to.
    """

    text = _as_text(value).upper()
    if not CANONICAL_IDENTIFIER_PATTERN.match(text):
        return False
    body, _, check = text.rpartition("-")
    return compute_check_character(body.replace(".", "")) == check


def identifier_key(value: Any) -> str:
    """
    Punctuation-free uppercase key used to compare identifiers across sources.
    """

    return _IDENTIFIER_CHARS.sub("", _as_text(value).upper())


def normalize_phone(raw: Any) -> str:
    """
    Canonicalize a Chilean phone number to ``+56`` international form.

    Unrecognized shapes are returned with only character stripping applied.
    """

    text = _as_text(raw)
    if not text:
        return ""

    has_plus = text.startswith("+")
    digits = _NON_DIGITS.sub("", text)
    if not digits:
        return ""

    if not has_plus:
        if len(digits) == 9 and digits.startswith("9"):
            return COUNTRY_PREFIX + digits
        if len(digits) == 8:
            return MOBILE_PREFIX + digits
        if len(digits) == 11 and digits.startswith(("569", "562")):
            return "+" + digits
        if len(digits) == 7:
            return LANDLINE_PREFIX + digits
        return digits

    subscriber = digits[2:]
    # +56 with an 8-digit mobile subscriber is missing the leading 9.
    if digits.startswith("56") and len(subscriber) == 8 and not subscriber.startswith("2"):
        return MOBILE_PREFIX + subscriber
    return "+" + digits
