"""
app/validators/mapping_validator.py

Checks operator-supplied field mappings against the uploaded file's headers.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Iterator, Mapping, Sequence


@dataclass(frozen=True)
class MappingErrorDetail:
    code: str
    message: str
    canonical_field: str | None = None
    source_column: str | None = None
    context: dict[str, Any] | None = None


class FieldMappingError(ValueError):
    """
    A mapping that cannot be applied to the file. Carries one detail per problem.
    """

    def __init__(self, *, message: str, errors: Sequence[MappingErrorDetail]) -> None:
        super().__init__(message)
        self.message = message
        self.errors = tuple(errors)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "errors": [asdict(error) for error in self.errors]}


class MappingValidator:
    """
    Every mapped field must be canonical, every mapped column must exist in the
    headers, and no column may feed two fields.
    """

    def __init__(self, *, canonical_fields: Sequence[str]) -> None:
        self._canonical_fields = frozenset(canonical_fields)

    def validate(
        self,
        *,
        mapping: Mapping[str, str],
        source_headers: Sequence[str],
    ) -> None:
        headers = list(source_headers)
        claimed: dict[str, str] = {}
        errors: list[MappingErrorDetail] = []
        for canonical_field, source_column in mapping.items():
            errors.extend(self._check_entry(canonical_field, source_column, headers, claimed))

        if errors:
            failed = sorted({error.canonical_field or "?" for error in errors})
            raise FieldMappingError(
                message=f"Field mapping validation failed for: {', '.join(failed)}.",
                errors=errors,
            )

    def _check_entry(
        self,
        canonical_field: str,
        source_column: str,
        headers: list[str],
        claimed: dict[str, str],
    ) -> Iterator[MappingErrorDetail]:
        if canonical_field not in self._canonical_fields:
            yield MappingErrorDetail(
                code="invalid_canonical_field",
                message=f"'{canonical_field}' is not an importable field.",
                canonical_field=canonical_field,
                source_column=source_column,
            )

        if source_column not in headers:
            yield MappingErrorDetail(
                code="unknown_source_column",
                message=f"Column '{source_column}' is not present in the file.",
                canonical_field=canonical_field,
                source_column=source_column,
                context={"source_headers": headers},
            )
            return

        owner = claimed.setdefault(source_column, canonical_field)
        if owner != canonical_field:
            yield MappingErrorDetail(
                code="duplicate_source_column",
                message=f"Column '{source_column}' is already mapped to '{owner}'.",
                canonical_field=canonical_field,
                source_column=source_column,
                context={"claimed_by": owner},
            )
