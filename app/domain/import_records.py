"""
app/domain/import_records.py

Domain models used by the bulk import flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable

FlatRecord = dict[str, Any]

REQUIRED_FIELDS: tuple[str, ...] = (
    "identifier",
    "full_name",
    "amount",
    "due_date",
    "counterparty_name",
)

OPTIONAL_FIELDS: tuple[str, ...] = (
    "contact_email",
    "contact_phone",
    "reference",
    "category",
    "interest_rate",
    "description",
)

CANONICAL_FIELDS: tuple[str, ...] = REQUIRED_FIELDS + OPTIONAL_FIELDS

# Metadata keys carried alongside canonical fields.
ORIGINAL_INDEX_KEY = "_original_index"
AUTO_GENERATED_KEY = "_auto_generated"
IS_VALID_KEY = "_is_valid"
ERRORS_KEY = "_errors"

DEFAULT_CATEGORY = "other"
DEFAULT_COUNTERPARTY_NAME = "Acreedor no especificado"
DEFAULT_DESCRIPTION_TEMPLATE = "Deuda importada - {counterparty_name}"


def is_metadata_key(key: str) -> bool:
    return key.startswith("_")


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one flat record.
    """

    is_valid: bool
    errors: list[str]
    warnings: list[str]
    normalized_record: FlatRecord


@dataclass(frozen=True)
class RowError:
    """
    One rejected row: 1-based row number, reasons, and the data as received.
    """

    row: int
    errors: list[str]
    original_data: FlatRecord


@dataclass(frozen=True)
class RowWarning:
    row: int
    warnings: list[str]


@dataclass
class BatchResult:
    """
    Counters for one order-preserving slice of the working record set.
    """

    batch_number: int
    total_batches: int
    size: int
    processed: int = 0
    successful: int = 0
    failed: int = 0
    subjects_created: int = 0
    obligations_created: int = 0

    def as_progress(self) -> dict[str, int]:
        return {
            "batch_number": self.batch_number,
            "total_batches": self.total_batches,
            "size": self.size,
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "subjects_created": self.subjects_created,
            "obligations_created": self.obligations_created,
        }


@dataclass
class ImportResult:
    """
    End-of-run import summary returned to the caller.
    """

    total_rows: int
    processed: int = 0
    successful: int = 0
    failed: int = 0
    subjects_created: int = 0
    obligations_created: int = 0
    errors: list[RowError] = field(default_factory=list)
    warnings: list[RowWarning] = field(default_factory=list)
    batches: list[BatchResult] = field(default_factory=list)
    ai_processing: Any | None = None
    retry_with_ai_data: bool = False
    cancelled: bool = False
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return self.successful > 0

    @property
    def success_rate(self) -> float:
        if self.total_rows <= 0:
            return 0.0
        return round(self.successful / self.total_rows * 100, 2)


ProgressCallback = Callable[[dict[str, int]], None]
BatchCompleteCallback = Callable[[dict[str, int]], None]
CancelCheck = Callable[[], bool]


@dataclass(frozen=True)
class ImportOptions:
    """
    Per-run parameters for the batch import orchestrator.

    ``batch_size`` falls back to the configured default when None.
    """

    organization_id: Any
    counterparty_id: Any | None = None
    batch_size: int | None = None
    use_ai: bool = False
    on_progress: ProgressCallback | None = None
    on_batch_complete: BatchCompleteCallback | None = None
    is_cancelled: CancelCheck | None = None
