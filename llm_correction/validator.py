"""Parsing layer for raw correction-stage replies.

Providers frequently wrap JSON in markdown fences or add a sentence of
prose around it, so parsing strips fences and falls back to the first
balanced JSON value found in the text.
"""

import json
import re
from typing import Any, Dict, List

from pydantic import BaseModel, ValidationError

from llm_correction.schema import ColumnSuggestionReport, DetectionReport


class LLMOutputValidationError(Exception):
    """Raised when a reply fails parsing or schema validation.

    Attributes:
        stage: Which validation step failed ("json_parse" or "schema").
        errors: List of human-readable error descriptions.
        raw_response: The original string that failed validation.
    """

    def __init__(
        self,
        stage: str,
        errors: List[str],
        raw_response: str,
    ) -> None:
        self.stage = stage
        self.errors = errors
        self.raw_response = raw_response
        message = (
            f"LLM output validation failed at stage '{stage}': "
            + "; ".join(errors)
        )
        super().__init__(message)


def _strip_markdown_fences(text: str) -> str:
    """Remove optional markdown code fences wrapping JSON.

    Args:
        text: Raw reply string.

    Returns:
        The text with leading/trailing code fences removed, if present.
    """
    stripped = text.strip()
    match = re.match(
        r"^```(?:json)?\s*\n?(.*?)\n?\s*```$",
        stripped,
        re.DOTALL,
    )
    if match:
        return match.group(1).strip()
    return stripped


def _load_json(raw_response: str) -> Any:
    if not isinstance(raw_response, str):
        raise LLMOutputValidationError(
            stage="json_parse",
            errors=["reply is not a string"],
            raw_response=str(raw_response),
        )

    cleaned = _strip_markdown_fences(raw_response)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as first_error:
        decoder = json.JSONDecoder()
        for index, char in enumerate(cleaned):
            if char not in "[{":
                continue
            try:
                value, _ = decoder.raw_decode(cleaned[index:])
                return value
            except json.JSONDecodeError:
                continue
        raise LLMOutputValidationError(
            stage="json_parse",
            errors=[str(first_error)],
            raw_response=raw_response,
        ) from first_error


def _schema_error(message: str, raw_response: str) -> LLMOutputValidationError:
    return LLMOutputValidationError(stage="schema", errors=[message], raw_response=raw_response)


def _validate_model(model: type, data: Any, raw_response: str) -> BaseModel:
    if not isinstance(data, dict):
        raise _schema_error("top-level JSON must be an object", raw_response)
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        errors = [f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}" for item in exc.errors()]
        raise LLMOutputValidationError(stage="schema", errors=errors, raw_response=raw_response) from exc


def parse_detection_report(raw_response: str) -> DetectionReport:
    """Parse the detection call reply.

    Raises:
        LLMOutputValidationError: If JSON parsing or schema validation fails.
    """
    return _validate_model(DetectionReport, _load_json(raw_response), raw_response)


def parse_corrected_records(raw_response: str, expected_length: int) -> List[Dict[str, Any]]:
    """Parse the correction call reply into a list of records.

    Accepts a bare array or an object wrapping the array under ``records``
    or ``data``.

    Args:
        raw_response: The raw string returned by the adapter.
        expected_length: Number of records that were sent.

    Returns:
        The corrected records, same length and order as the input.

    Raises:
        LLMOutputValidationError: If the reply is not an array of objects of
            the expected length.
    """
    data = _load_json(raw_response)
    if isinstance(data, dict):
        data = next(
            (
                data[key]
                for key in ("records", "data", "corrected_records", "correctedRecords")
                if isinstance(data.get(key), list)
            ),
            data,
        )

    if not isinstance(data, list):
        raise _schema_error("reply must be a JSON array of records", raw_response)
    if len(data) != expected_length:
        raise _schema_error(f"expected {expected_length} records, got {len(data)}", raw_response)
    bad_rows = [index + 1 for index, item in enumerate(data) if not isinstance(item, dict)]
    if bad_rows:
        raise _schema_error(f"rows {bad_rows} are not JSON objects", raw_response)
    return data


def parse_column_suggestions(raw_response: str) -> ColumnSuggestionReport:
    """Parse the schema-evolution call reply; a bare list is read as the suggestions."""
    data = _load_json(raw_response)
    if isinstance(data, list):
        data = {"suggestions": data}
    return _validate_model(ColumnSuggestionReport, data, raw_response)
