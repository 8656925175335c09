"""
app/schemas/matching.py

Response schemas for matching endpoints.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MatchCandidateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    counterparty_id: uuid.UUID
    score: float = Field(..., ge=0, le=1)
    match_type: str
    details: dict[str, Any] = Field(default_factory=dict)


class StoredMatchCandidateResponse(MatchCandidateResponse):
    id: uuid.UUID
    subject_id: uuid.UUID
    created_at: datetime | None = None


class SubjectMatchResponse(BaseModel):
    subject_id: uuid.UUID
    candidates: list[MatchCandidateResponse] = Field(default_factory=list)


class MatchingFailureResponse(BaseModel):
    subject_id: uuid.UUID
    error: str


class SubjectMatchResultResponse(BaseModel):
    subject_id: uuid.UUID
    candidates_found: int = Field(..., ge=0)
    candidates: list[MatchCandidateResponse] = Field(default_factory=list)
    error: str | None = None


class MatchingSummaryResponse(BaseModel):
    """
    API response model for one pass over unmatched subjects.
    """

    subjects_processed: int = Field(..., ge=0)
    subjects_matched: int = Field(..., ge=0)
    subjects_failed: int = Field(..., ge=0)
    candidates_created: int = Field(..., ge=0)
    failures: list[MatchingFailureResponse] = Field(default_factory=list)
    results: list[SubjectMatchResultResponse] = Field(default_factory=list)
