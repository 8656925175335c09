"""
app/domain/ai_correction.py

Result type shared by every AI correction path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.domain.import_records import FlatRecord


class CorrectionOutcome:
    AI_SUCCESS = "ai_success"
    AI_PARTIAL = "ai_partial"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class CorrectionResult:
    """
    Records produced by the correction stage plus what happened on the way.

    ``outcome`` is ``ai_success`` when the model output validated cleanly,
    ``ai_partial`` when deterministic normalization was layered on top of it,
    and ``fallback`` when only deterministic normalization was applied.
    """

    outcome: str
    records: list[FlatRecord]
    notes: list[str] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)
    missing_fields: list[str] = field(default_factory=list)
    unknown_fields: list[str] = field(default_factory=list)
    fields_created: list[str] = field(default_factory=list)
    fields_dropped: list[str] = field(default_factory=list)

    @property
    def fallback(self) -> bool:
        return self.outcome == CorrectionOutcome.FALLBACK

    @property
    def ai_ran(self) -> bool:
        return self.outcome in (CorrectionOutcome.AI_SUCCESS, CorrectionOutcome.AI_PARTIAL)

    def summary(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "notes": list(self.notes),
            "errors": list(self.errors),
            "missing_fields": list(self.missing_fields),
            "unknown_fields": list(self.unknown_fields),
            "fields_created": list(self.fields_created),
            "fields_dropped": list(self.fields_dropped),
            "record_count": len(self.records),
        }
