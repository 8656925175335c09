"""Structured prompt builder for the import correction stage.

Builds the (system, user) message pairs for the three provider calls:
error detection, record correction, and schema evolution.
"""

import json
from typing import Any, Dict, List, Sequence, Tuple

from llm_correction.schema import SchemaDescription

_DETECTION_SYSTEM = """\
You are an expert in bulk data imports for a debt-collection platform.
Analyse the records and detect errors, inconsistencies, or anything that
would prevent them from being stored.

Target schema:
{schema}

Error types to detect:
1. Missing required fields
2. Wrong formats (national identifier, email, phone, dates)
3. Invalid or inconsistent values
4. Fields that do not exist in the target schema
5. Wrong data types

Reply with JSON only, using exactly this structure:
{{
  "has_errors": true,
  "errors": [
    {{
      "type": "missing_field|invalid_format|unknown_field|invalid_data",
      "field": "field_name",
      "row": 1,
      "message": "what is wrong",
      "suggestion": "how to fix it"
    }}
  ],
  "missing_fields": ["field1"],
  "unknown_fields": ["field2"],
  "corrections": {{"row_1": {{"field": "corrected value"}}}}
}}
"""

_DETECTION_USER = """\
Analyse these records and detect errors:

{sample}

Total rows: {total_rows}

Detect every possible error and suggest automatic corrections.
"""

CORRECTION_RULES: Tuple[str, ...] = (
    "Chilean national identifier (RUT): format XX.XXX.XXX-X, e.g. 12.345.678-5. Never change a supplied check character.",
    "Chilean phone: format +569XXXXXXXX, e.g. +56912345678.",
    "Email: standard lowercase form, e.g. user@domain.com.",
    "Amounts: positive plain numbers without separators or currency symbols, e.g. 1500000.",
    "Dates: YYYY-MM-DD, e.g. 2024-12-31. Input dates are day-first.",
    "Names: first letter of each word uppercase, the rest lowercase.",
    "Do not invent identifiers, amounts, or dates. Leave a value empty when it cannot be corrected.",
    "Keep every key of each record; do not add or rename keys.",
)

_CORRECTION_SYSTEM = """\
You are an expert in normalizing Chilean personal and financial data.
Correct the records following these rules:

{rules}

Target schema:
{schema}

Reply ONLY with a JSON array containing exactly {count} corrected records,
in the same order as received, with no explanations and no markdown.
"""

_CORRECTION_USER = """\
Correct these records applying the rules:

{records}

Detected errors:
{errors}

Return the complete JSON array with every record corrected.
"""

_EVOLUTION_SYSTEM = """\
You are an SQL database expert. Decide whether each unknown input field
should be added as a column to the table "{table}".

For each field provide:
1. whether it should be created (true/false)
2. an appropriate SQL data type (TEXT, VARCHAR(n), INTEGER, BIGINT, NUMERIC(p,s), BOOLEAN, DATE, TIMESTAMPTZ)
3. a short reason

Reply with JSON only:
{{
  "suggestions": [
    {{"field": "field_name", "should_create": true, "data_type": "VARCHAR(255)", "reason": "why"}}
  ]
}}
"""

_EVOLUTION_USER = """\
Analyse these fields and decide whether they should be created in table {table}: {fields}
"""


def _dump(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


class CorrectionPromptBuilder:
    """Builds deterministic prompts for the correction-stage provider calls."""

    def build_detection_prompt(
        self,
        schema: SchemaDescription,
        sample: Sequence[Dict[str, Any]],
        total_rows: int,
    ) -> Tuple[str, str]:
        """Build the error-detection prompt.

        Args:
            schema: Target schema description.
            sample: The first records of the run.
            total_rows: Size of the whole record set.

        Returns:
            A ``(system_prompt, user_prompt)`` pair.
        """
        system_prompt = _DETECTION_SYSTEM.format(schema=_dump(schema.to_prompt_dict()))
        user_prompt = _DETECTION_USER.format(sample=_dump(list(sample)), total_rows=total_rows)
        return system_prompt, user_prompt

    def build_correction_prompt(
        self,
        schema: SchemaDescription,
        records: Sequence[Dict[str, Any]],
        errors: Sequence[Dict[str, Any]],
    ) -> Tuple[str, str]:
        """Build the record-correction prompt.

        Args:
            schema: Target schema description.
            records: Full record set to correct.
            errors: Errors reported by the detection call.

        Returns:
            A ``(system_prompt, user_prompt)`` pair.
        """
        rules = "\n".join(f"{index}. {rule}" for index, rule in enumerate(CORRECTION_RULES, start=1))
        system_prompt = _CORRECTION_SYSTEM.format(
            rules=rules,
            schema=_dump(schema.to_prompt_dict()),
            count=len(records),
        )
        user_prompt = _CORRECTION_USER.format(records=_dump(list(records)), errors=_dump(list(errors)))
        return system_prompt, user_prompt

    def build_schema_evolution_prompt(
        self,
        table: str,
        unknown_fields: List[str],
    ) -> Tuple[str, str]:
        """Build the schema-evolution prompt.

        Args:
            table: Target table for new columns.
            unknown_fields: Input fields absent from the schema.

        Returns:
            A ``(system_prompt, user_prompt)`` pair.
        """
        system_prompt = _EVOLUTION_SYSTEM.format(table=table)
        user_prompt = _EVOLUTION_USER.format(table=table, fields=", ".join(unknown_fields))
        return system_prompt, user_prompt
