"""
app/schemas package marker.
"""

from app.schemas.bulk_import import ImportPreviewResponse, ImportResultResponse
from app.schemas.matching import MatchCandidateResponse, MatchingSummaryResponse, StoredMatchCandidateResponse

__all__ = [
    "ImportPreviewResponse",
    "ImportResultResponse",
    "MatchCandidateResponse",
    "MatchingSummaryResponse",
    "StoredMatchCandidateResponse",
]
