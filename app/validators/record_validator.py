"""
app/validators/record_validator.py

Field-level validation and type coercion for mapped import records.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Mapping

from app.config import ImportSettings, ValidationSettings, get_import_settings, get_validation_settings
from app.domain.import_records import (
    CANONICAL_FIELDS,
    DEFAULT_CATEGORY,
    ERRORS_KEY,
    IS_VALID_KEY,
    FlatRecord,
    ValidationResult,
)
from app.normalizers.identifiers import (
    has_valid_check_character,
    is_canonical_identifier,
    normalize_identifier,
    normalize_phone,
)
from app.normalizers.values import clean_text, parse_amount, parse_date

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MAX_NAME_LENGTH = 255
MIN_NAME_LENGTH = 3


@dataclass(frozen=True)
class ValidationPolicy:
    """
    Strictness flags and locale conventions applied by RecordValidator.
    """

    strict_identifier: bool = True
    strict_email: bool = False
    thousands_separator: str = "."
    decimal_separator: str = ","
    max_amount: float = 999_999_999.99
    min_phone_length: int = 12

    @classmethod
    def from_settings(
        cls,
        validation: ValidationSettings | None = None,
        imports: ImportSettings | None = None,
    ) -> "ValidationPolicy":
        validation = validation or get_validation_settings()
        imports = imports or get_import_settings()
        return cls(
            strict_identifier=validation.strict_identifier,
            strict_email=validation.strict_email,
            thousands_separator=validation.thousands_separator,
            decimal_separator=validation.decimal_separator,
            max_amount=imports.max_amount,
            min_phone_length=validation.min_phone_length,
        )


class RecordValidator:
    """
    Validates one mapped record and returns a coerced copy.

    ``validate`` is total: it never raises, whatever the record holds.
    """

    def __init__(
        self,
        policy: ValidationPolicy | None = None,
        *,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._policy = policy or ValidationPolicy()
        self._today = today or date.today

    @property
    def policy(self) -> ValidationPolicy:
        return self._policy

    def validate(self, record: Mapping[str, Any] | None) -> ValidationResult:
        source: Mapping[str, Any] = record if isinstance(record, Mapping) else {}
        errors: list[str] = []
        warnings: list[str] = []

        normalized: FlatRecord = {
            key: value for key, value in source.items() if key not in CANONICAL_FIELDS
        }

        normalized["identifier"] = self._validate_identifier(source.get("identifier"), errors)
        normalized["full_name"] = self._validate_full_name(source.get("full_name"), errors, warnings)
        normalized["amount"] = self._validate_amount(source.get("amount"), errors)
        normalized["due_date"] = self._validate_due_date(source.get("due_date"), errors, warnings)
        normalized["counterparty_name"] = self._validate_counterparty(source.get("counterparty_name"), errors)
        normalized["contact_email"] = self._validate_email(source.get("contact_email"), errors, warnings)
        normalized["contact_phone"] = self._validate_phone(source.get("contact_phone"), warnings)
        normalized["reference"] = clean_text(source.get("reference"))
        normalized["category"] = (clean_text(source.get("category")) or DEFAULT_CATEGORY).lower()
        normalized["interest_rate"] = self._validate_interest_rate(source.get("interest_rate"), warnings)
        normalized["description"] = clean_text(source.get("description"))

        normalized[IS_VALID_KEY] = not errors
        normalized[ERRORS_KEY] = list(errors)

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            normalized_record=normalized,
        )

    # ------------------------------------------------------------------
    # Field rules
    # ------------------------------------------------------------------

    def _validate_identifier(self, value: Any, errors: list[str]) -> str:
        if clean_text(value) is None:
            errors.append("identifier is required.")
            return ""

        identifier = normalize_identifier(value)
        if not identifier or not is_canonical_identifier(identifier):
            errors.append(f"identifier has an invalid format: {value!s}.")
            return identifier

        if self._policy.strict_identifier and not has_valid_check_character(identifier):
            errors.append(f"identifier check character is incorrect: {identifier}.")
        return identifier

    def _validate_full_name(self, value: Any, errors: list[str], warnings: list[str]) -> str:
        name = clean_text(value)
        if name is None:
            errors.append("full_name is required.")
            return ""
        if len(name) > MAX_NAME_LENGTH:
            errors.append(f"full_name exceeds {MAX_NAME_LENGTH} characters.")
        elif len(name) < MIN_NAME_LENGTH:
            warnings.append("full_name is very short.")
        return name

    def _validate_amount(self, value: Any, errors: list[str]) -> float | None:
        if clean_text(value) is None:
            errors.append("amount is required.")
            return None

        amount = parse_amount(
            value,
            thousands_separator=self._policy.thousands_separator,
            decimal_separator=self._policy.decimal_separator,
        )
        if amount is None:
            errors.append(f"amount is not a valid number: {value!s}.")
            return None
        if amount <= 0:
            errors.append("amount must be greater than zero.")
        elif amount > self._policy.max_amount:
            errors.append(f"amount exceeds the maximum allowed ({self._policy.max_amount:.2f}).")
        return amount

    def _validate_due_date(self, value: Any, errors: list[str], warnings: list[str]) -> str | None:
        if clean_text(value) is None:
            errors.append("due_date is required.")
            return None

        parsed = parse_date(value)
        if parsed is None:
            errors.append(f"due_date is not a valid date: {value!s}.")
            return None
        if parsed < self._today():
            warnings.append(f"due_date {parsed.isoformat()} is in the past.")
        return parsed.isoformat()

    def _validate_counterparty(self, value: Any, errors: list[str]) -> str:
        name = clean_text(value)
        if name is None:
            errors.append("counterparty_name is required.")
            return ""
        return name

    def _validate_email(self, value: Any, errors: list[str], warnings: list[str]) -> str | None:
        email = clean_text(value)
        if email is None:
            return None
        email = email.lower()
        if not EMAIL_PATTERN.match(email):
            message = f"contact_email has an invalid format: {email}."
            if self._policy.strict_email:
                errors.append(message)
            else:
                warnings.append(message)
        return email

    def _validate_phone(self, value: Any, warnings: list[str]) -> str | None:
        if clean_text(value) is None:
            return None
        phone = normalize_phone(value)
        if len(phone) < self._policy.min_phone_length:
            warnings.append(f"contact_phone looks incomplete: {phone or value!s}.")
        return phone or None

    def _validate_interest_rate(self, value: Any, warnings: list[str]) -> float | None:
        if clean_text(value) is None:
            return None
        raw = value if isinstance(value, (int, float)) else str(value).replace("%", "")
        rate = parse_amount(
            raw,
            thousands_separator=self._policy.thousands_separator,
            decimal_separator=self._policy.decimal_separator,
        )
        if rate is None:
            warnings.append(f"interest_rate ignored, not a number: {value!s}.")
        return rate
