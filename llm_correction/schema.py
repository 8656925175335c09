"""Structured contracts for correction-stage prompts and replies."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class DetectedError(BaseModel):
    """One problem reported by the detection call."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    type: str = "invalid_data"
    field: str = "general"
    row: Optional[int] = None
    message: str = ""
    suggestion: Optional[str] = None

    @field_validator("row", mode="before")
    @classmethod
    def _coerce_row(cls, value: Any) -> Optional[int]:
        if value is None or isinstance(value, bool):
            return None
        try:
            return int(str(value).replace("row_", "").strip())
        except ValueError:
            return None


class DetectionReport(BaseModel):
    """Detection reply: per-row errors plus schema coverage gaps.

    Accepts both snake_case and camelCase keys since providers are not
    consistent about which one they echo back.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    has_errors: bool = Field(default=False, validation_alias=AliasChoices("has_errors", "hasErrors"))
    errors: List[DetectedError] = Field(default_factory=list)
    missing_fields: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("missing_fields", "missingFields"),
    )
    unknown_fields: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("unknown_fields", "unknownFields"),
    )
    corrections: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def failure(cls, reason: str) -> "DetectionReport":
        return cls(
            has_errors=True,
            errors=[
                DetectedError(
                    type="ai_analysis_failed",
                    field="general",
                    row=1,
                    message=reason,
                    suggestion="Apply the standard normalization rules.",
                )
            ],
        )


class ColumnSuggestion(BaseModel):
    """Schema-evolution verdict for one unknown input field."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)

    field: str = Field(min_length=1)
    should_create: bool = Field(default=False, validation_alias=AliasChoices("should_create", "shouldCreate"))
    data_type: str = Field(default="TEXT", validation_alias=AliasChoices("data_type", "dataType"))
    reason: str = ""


class ColumnSuggestionReport(BaseModel):
    model_config = ConfigDict(extra="ignore")

    suggestions: List[ColumnSuggestion] = Field(default_factory=list)


@dataclass(frozen=True)
class SchemaField:
    """One target field the correction stage may write."""

    name: str
    data_type: str
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class SchemaDescription:
    """Target schema presented to the model and used for unknown-field detection.

    Attributes:
        fields: Canonical import fields.
        extra_columns: Additional live columns of the target table.
        table: Name of the table new columns would be added to.
    """

    fields: Tuple[SchemaField, ...]
    extra_columns: Tuple[str, ...] = field(default_factory=tuple)
    table: str = "obligations"

    def field_names(self) -> List[str]:
        return [item.name for item in self.fields] + list(self.extra_columns)

    def is_known(self, name: str) -> bool:
        return name in set(self.field_names())

    def to_prompt_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "fields": [
                {
                    "name": item.name,
                    "type": item.data_type,
                    "required": item.required,
                    "description": item.description,
                }
                for item in self.fields
            ],
            "extra_columns": list(self.extra_columns),
        }
