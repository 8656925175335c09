"""
app/normalizers/record_normalizer.py

Deterministic, rule-based record canonicalization.

Used wherever the AI correction stage cannot produce a usable record set,
so its output must be stable under repeated application.
"""

from __future__ import annotations

from typing import Any, Iterable

from app.domain.import_records import FlatRecord
from app.normalizers.identifiers import normalize_identifier, normalize_phone
from app.normalizers.values import capitalize_name, parse_amount, parse_date


class DeterministicNormalizer:
    """
    Apply identifier, phone, email, name, amount, and date rules to records.
    """

    def __init__(
        self,
        *,
        thousands_separator: str = ".",
        decimal_separator: str = ",",
    ) -> None:
        self._thousands_separator = thousands_separator
        self._decimal_separator = decimal_separator

    def normalize_records(self, records: Iterable[FlatRecord]) -> list[FlatRecord]:
        return [self.normalize_record(record) for record in records]

    def normalize_record(self, record: FlatRecord) -> FlatRecord:
        normalized: FlatRecord = dict(record)

        if "identifier" in normalized:
            identifier = normalize_identifier(normalized["identifier"])
            if identifier:
                normalized["identifier"] = identifier

        if "contact_phone" in normalized:
            phone = normalize_phone(normalized["contact_phone"])
            normalized["contact_phone"] = phone or None

        if "contact_email" in normalized:
            email = normalized["contact_email"]
            normalized["contact_email"] = str(email).strip().lower() if email not in (None, "") else None

        if "full_name" in normalized and normalized["full_name"] not in (None, ""):
            normalized["full_name"] = capitalize_name(normalized["full_name"])

        if "amount" in normalized:
            amount = self._parse_amount(normalized["amount"])
            if amount is not None:
                normalized["amount"] = amount

        if "due_date" in normalized:
            due_date = parse_date(normalized["due_date"])
            if due_date is not None:
                normalized["due_date"] = due_date.isoformat()

        return normalized

    def _parse_amount(self, value: Any) -> float | None:
        return parse_amount(
            value,
            thousands_separator=self._thousands_separator,
            decimal_separator=self._decimal_separator,
        )
