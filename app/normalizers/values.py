"""
app/normalizers/values.py

Locale-aware parsing of amounts, dates, and display names from spreadsheet cells.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Any

_AMOUNT_NOISE = re.compile(r"[^\d\-.,]")
_SPREADSHEET_EPOCH = date(1899, 12, 30)

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%Y/%m/%d",
    "%d/%m/%y",
    "%d-%m-%y",
)


def parse_amount(
    value: Any,
    *,
    thousands_separator: str = ".",
    decimal_separator: str = ",",
) -> float | None:
    """
    Parse a currency amount such as ``$1.500.000`` or ``1.234,50`` into a float.

    Numbers pass through unchanged. Returns None when nothing numeric remains.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return None if math.isnan(number) or math.isinf(number) else number

    raw = str(value).strip()
    # Accounting notation: "(1.500)" is a negative amount.
    negative = len(raw) > 2 and raw[0] == "(" and raw[-1] == ")"
    text = _AMOUNT_NOISE.sub("", raw[1:-1] if negative else raw)
    if not text or not any(char.isdigit() for char in text):
        return None

    if text.count(decimal_separator) > 1 and thousands_separator not in text:
        # "1,500,000" written with the decimal mark as grouping.
        text = text.replace(decimal_separator, "")
    elif decimal_separator not in text and text.count(thousands_separator) == 1:
        _, _, fraction = text.partition(thousands_separator)
        if len(fraction) != 3:
            # "1500.5" is a decimal, "1.500" is grouping.
            text = text.replace(thousands_separator, decimal_separator)

    text = text.replace(thousands_separator, "").replace(decimal_separator, ".")
    try:
        number = float(text)
    except ValueError:
        return None
    if negative:
        number = -abs(number)
    return None if math.isnan(number) or math.isinf(number) else number


def parse_date(value: Any) -> date | None:
    """
    Parse ISO, day-first, or spreadsheet-serial dates into a calendar date.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        if math.isnan(value) or not 1 <= value <= 2958465:
            return None
        return _SPREADSHEET_EPOCH + timedelta(days=int(value))

    text = str(value).strip()
    if not text:
        return None

    # Drop a trailing time component ("2024-12-31 00:00:00", "2024-12-31T10:00").
    candidate = re.split(r"[ T]", text, maxsplit=1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(candidate, fmt).date()
        except ValueError:
            continue

    if re.fullmatch(r"\d{5}(\.\d+)?", candidate):
        return parse_date(float(candidate))
    return None


def capitalize_name(value: Any) -> str:
    if value is None:
        return ""
    words = str(value).strip().split()
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


def clean_text(value: Any) -> str | None:
    """
    Trim a cell value to a string, mapping blanks to None.
    """

    if value is None:
        return None
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            value = int(value)
    text = str(value).strip()
    return text or None
