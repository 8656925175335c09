"""
app/domain package marker.
"""

from app.domain.ai_correction import CorrectionOutcome, CorrectionResult
from app.domain.import_records import (
    BatchResult,
    FlatRecord,
    ImportOptions,
    ImportResult,
    RowError,
    RowWarning,
    ValidationResult,
)
from app.domain.matching import MatchCandidate, MatchingFailure, MatchingSummary, SubjectMatchResult

__all__ = [
    "BatchResult",
    "CorrectionOutcome",
    "CorrectionResult",
    "FlatRecord",
    "ImportOptions",
    "ImportResult",
    "MatchCandidate",
    "MatchingFailure",
    "MatchingSummary",
    "RowError",
    "RowWarning",
    "SubjectMatchResult",
    "ValidationResult",
]
