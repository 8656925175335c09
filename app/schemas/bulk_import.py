"""
app/schemas/bulk_import.py

Response schemas for bulk import endpoints.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from app.domain.import_records import ImportResult


class ImportPreviewResponse(BaseModel):
    """
    Parsed headers, inferred mapping, and a sample of raw rows.
    """

    file_kind: str
    headers: list[str]
    row_count: int = Field(..., ge=0)
    mapping: dict[str, str]
    unmapped_fields: list[str] = Field(default_factory=list)
    missing_required_fields: list[str] = Field(default_factory=list)
    sample: list[dict[str, Any]] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class RowErrorResponse(BaseModel):
    row: int = Field(..., ge=1)
    errors: list[str]
    original_data: dict[str, Any] = Field(default_factory=dict)


class RowWarningResponse(BaseModel):
    row: int = Field(..., ge=1)
    warnings: list[str]


class BatchResultResponse(BaseModel):
    batch_number: int = Field(..., ge=1)
    total_batches: int = Field(..., ge=1)
    size: int = Field(..., ge=0)
    processed: int = Field(..., ge=0)
    successful: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    subjects_created: int = Field(..., ge=0)
    obligations_created: int = Field(..., ge=0)


class ImportResultResponse(BaseModel):
    """
    API response model for one finished import run.
    """

    success: bool
    total_rows: int = Field(..., ge=0)
    processed: int = Field(..., ge=0)
    successful: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    subjects_created: int = Field(..., ge=0)
    obligations_created: int = Field(..., ge=0)
    success_rate: float = Field(..., ge=0)
    duration: float = Field(..., ge=0)
    retry_with_ai_data: bool = False
    cancelled: bool = False
    errors: list[RowErrorResponse] = Field(default_factory=list)
    warnings: list[RowWarningResponse] = Field(default_factory=list)
    batches: list[BatchResultResponse] = Field(default_factory=list)
    ai_processing: dict[str, Any] | None = None

    @classmethod
    def from_result(cls, result: ImportResult) -> "ImportResultResponse":
        return cls(
            success=result.success,
            total_rows=result.total_rows,
            processed=result.processed,
            successful=result.successful,
            failed=result.failed,
            subjects_created=result.subjects_created,
            obligations_created=result.obligations_created,
            success_rate=result.success_rate,
            duration=result.duration,
            retry_with_ai_data=result.retry_with_ai_data,
            cancelled=result.cancelled,
            errors=[
                RowErrorResponse(row=error.row, errors=error.errors, original_data=error.original_data)
                for error in result.errors
            ],
            warnings=[
                RowWarningResponse(row=warning.row, warnings=warning.warnings)
                for warning in result.warnings
            ],
            batches=[BatchResultResponse(**batch.as_progress()) for batch in result.batches],
            ai_processing=result.ai_processing.summary() if result.ai_processing is not None else None,
        )
