"""
app/mappers/field_mapper.py

Heuristic mapping from spreadsheet column names to canonical import fields.

Matching is greedy: per canonical field the first column that matches any
synonym wins. Operators can override any mapping before import.
"""

from __future__ import annotations

import re
import unicodedata
from functools import lru_cache
from typing import Any, Mapping, Sequence

from app.domain.import_records import (
    AUTO_GENERATED_KEY,
    CANONICAL_FIELDS,
    DEFAULT_CATEGORY,
    DEFAULT_COUNTERPARTY_NAME,
    DEFAULT_DESCRIPTION_TEMPLATE,
    ORIGINAL_INDEX_KEY,
    REQUIRED_FIELDS,
    FlatRecord,
)
from app.validators.mapping_validator import FieldMappingError, MappingErrorDetail, MappingValidator

FieldMapping = dict[str, str]

DEFAULT_FIELD_SYNONYMS: dict[str, tuple[str, ...]] = {
    "identifier": ("rut", "r.u.t", "run", "dni", "cedula", "identificacion", "id", "documento"),
    "full_name": ("nombre", "name", "cliente", "deudor", "razon_social", "full_name"),
    "contact_email": ("email", "correo", "mail", "e-mail"),
    "contact_phone": ("telefono", "phone", "celular", "movil", "fono"),
    "amount": ("monto", "amount", "deuda", "saldo", "total", "valor", "importe", "capital"),
    "due_date": ("fecha_vencimiento", "due_date", "vencimiento", "fecha", "vto"),
    "counterparty_name": (
        "acreedor",
        "creditor",
        "empresa",
        "entidad",
        "banco",
        "institucion",
        "proveedor",
        "counterparty",
    ),
    "reference": ("referencia", "reference", "numero", "id_deuda", "nro_operacion", "codigo"),
    "category": ("tipo", "type", "categoria", "clasificacion", "category"),
    "interest_rate": ("interes", "interest", "tasa", "interest_rate"),
    "description": ("descripcion", "description", "detalle", "comentario", "observaciones", "notas"),
}

# Synonyms this short only match a whole token ("id" must not match "apellido").
_SHORT_SYNONYM_LENGTH = 3


def _fold(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).strip().lower()


def _compact(text: str) -> str:
    return text.replace("_", "").replace(" ", "")


def _tokens(text: str) -> set[str]:
    return {token for token in re.split(r"[^a-z0-9]+", text) if token}


def slugify_column(header: str) -> str:
    """
    Turn a free-form column header into a lowercase snake_case key.
    """

    slug = re.sub(r"[^a-z0-9]+", "_", _fold(header)).strip("_")
    return slug or "column"


class FieldMapper:
    """
    Infers, validates, and applies canonical field mappings.
    """

    def __init__(
        self,
        *,
        synonyms: Mapping[str, Sequence[str]] | None = None,
        validator: MappingValidator | None = None,
    ) -> None:
        self._synonyms: dict[str, tuple[str, ...]] = {
            canonical: tuple(_fold(value) for value in values)
            for canonical, values in (synonyms or DEFAULT_FIELD_SYNONYMS).items()
        }
        self._validator = validator or MappingValidator(canonical_fields=CANONICAL_FIELDS)

    # ------------------------------------------------------------------
    # Inference
    # ------------------------------------------------------------------

    def infer_mapping(self, header_row: Sequence[str]) -> FieldMapping:
        """
        Build a canonical-to-source mapping from one header row.

        Exact (underscore/space-insensitive) matches are claimed across all
        fields before any substring match, and each column is claimed once.
        """

        headers = [header for header in header_row if isinstance(header, str) and header.strip()]
        folded = {header: _fold(header) for header in headers}

        mapping: FieldMapping = {}
        used_headers: set[str] = set()

        for canonical_field in CANONICAL_FIELDS:
            match = self._first_match(
                canonical_field,
                headers=headers,
                folded=folded,
                used_headers=used_headers,
                exact_only=True,
            )
            if match is not None:
                mapping[canonical_field] = match
                used_headers.add(match)

        for canonical_field in CANONICAL_FIELDS:
            if canonical_field in mapping:
                continue
            match = self._first_match(
                canonical_field,
                headers=headers,
                folded=folded,
                used_headers=used_headers,
                exact_only=False,
            )
            if match is not None:
                mapping[canonical_field] = match
                used_headers.add(match)

        return {field: mapping[field] for field in CANONICAL_FIELDS if field in mapping}

    def _first_match(
        self,
        canonical_field: str,
        *,
        headers: Sequence[str],
        folded: Mapping[str, str],
        used_headers: set[str],
        exact_only: bool,
    ) -> str | None:
        synonyms = self._synonyms.get(canonical_field, ())
        for header in headers:
            if header in used_headers:
                continue
            column = folded[header]
            for synonym in synonyms:
                if _compact(column) == _compact(synonym):
                    return header
                if not exact_only and self._is_partial_match(column, synonym):
                    return header
        return None

    @staticmethod
    def _is_partial_match(column: str, synonym: str) -> bool:
        if len(synonym) <= _SHORT_SYNONYM_LENGTH:
            return synonym in _tokens(column)
        if synonym in column:
            return True
        return len(column) > _SHORT_SYNONYM_LENGTH and column in synonym

    # ------------------------------------------------------------------
    # Overrides and coverage
    # ------------------------------------------------------------------

    def apply_overrides(
        self,
        mapping: Mapping[str, str],
        overrides: Mapping[str, str | None] | None,
        headers: Sequence[str],
    ) -> FieldMapping:
        """
        Merge operator overrides into an inferred mapping.

        A None or blank override value unmaps the field. An override takes its
        column away from any inferred field that claimed it. Raises
        FieldMappingError when the merged mapping references unknown fields
        or columns, or maps one column twice.
        """

        if not [header for header in headers if isinstance(header, str) and header.strip()]:
            raise FieldMappingError(
                message="File headers are empty; cannot apply mapping.",
                errors=[
                    MappingErrorDetail(
                        code="empty_headers",
                        message="No file headers were provided.",
                    )
                ],
            )

        merged: FieldMapping = dict(mapping)
        overridden: dict[str, str] = {}
        for raw_field, raw_column in (overrides or {}).items():
            canonical_field = str(raw_field).strip()
            if raw_column is None or not str(raw_column).strip():
                merged.pop(canonical_field, None)
                continue
            overridden[canonical_field] = str(raw_column).strip()

        override_columns = set(overridden.values())
        merged = {
            field: column
            for field, column in merged.items()
            if field in overridden or column not in override_columns
        }
        merged.update(overridden)

        self._validator.validate(mapping=merged, source_headers=headers)
        return {field: merged[field] for field in CANONICAL_FIELDS if field in merged}

    @staticmethod
    def unmapped_fields(mapping: Mapping[str, str]) -> list[str]:
        return [field for field in CANONICAL_FIELDS if field not in mapping]

    @staticmethod
    def missing_required_fields(mapping: Mapping[str, str]) -> list[str]:
        return [field for field in REQUIRED_FIELDS if field not in mapping]

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def map_record(
        self,
        raw_row: Mapping[str, Any],
        mapping: Mapping[str, str],
        *,
        row_index: int,
        defaults: Mapping[str, Any] | None = None,
    ) -> FlatRecord:
        """
        Project one raw row onto canonical keys.

        Columns not claimed by the mapping are kept under slugified keys.
        Unmapped or blank counterparty_name, category, and description are
        filled from deterministic defaults and listed in ``_auto_generated``.
        """

        record: FlatRecord = {ORIGINAL_INDEX_KEY: row_index}
        auto_generated: list[str] = []

        for canonical_field, source_column in mapping.items():
            record[canonical_field] = raw_row.get(source_column)

        claimed_columns = set(mapping.values())
        for column, value in raw_row.items():
            if column in claimed_columns or not isinstance(column, str):
                continue
            key = slugify_column(column)
            if key in CANONICAL_FIELDS or key.startswith("_"):
                key = f"extra_{key.lstrip('_')}"
            if key not in record:
                record[key] = value

        fill_values = dict(defaults or {})
        counterparty_default = fill_values.get("counterparty_name") or DEFAULT_COUNTERPARTY_NAME
        if self._is_blank(record.get("counterparty_name")):
            record["counterparty_name"] = counterparty_default
            auto_generated.append(f"counterparty_name: {counterparty_default}")

        if self._is_blank(record.get("category")):
            category = fill_values.get("category") or DEFAULT_CATEGORY
            record["category"] = category
            auto_generated.append(f"category: {category}")

        if self._is_blank(record.get("description")):
            description = fill_values.get("description") or DEFAULT_DESCRIPTION_TEMPLATE.format(
                counterparty_name=record["counterparty_name"],
            )
            record["description"] = description
            auto_generated.append(f"description: {description}")

        record[AUTO_GENERATED_KEY] = auto_generated
        return record

    def map_records(
        self,
        raw_rows: Sequence[Mapping[str, Any]],
        mapping: Mapping[str, str],
        *,
        defaults: Mapping[str, Any] | None = None,
    ) -> list[FlatRecord]:
        return [
            self.map_record(row, mapping, row_index=index, defaults=defaults)
            for index, row in enumerate(raw_rows, start=1)
        ]

    @staticmethod
    def _is_blank(value: Any) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())


@lru_cache(maxsize=1)
def get_field_mapper() -> FieldMapper:
    return FieldMapper()
