"""
app/domain/matching.py

Domain models for subject-to-counterparty matching.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class MatchCandidate:
    """
    One scored counterparty for a subject.

    ``details`` holds ``identifier_match``, ``name_match`` and
    ``contact_match``.
    """

    counterparty_id: uuid.UUID
    score: float
    match_type: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MatchingFailure:
    subject_id: uuid.UUID
    error: str


@dataclass(frozen=True)
class SubjectMatchResult:
    """
    Outcome for one subject in a matching pass; ``error`` is set when it failed.
    """

    subject_id: uuid.UUID
    candidates: list[MatchCandidate] = field(default_factory=list)
    error: str | None = None

    @property
    def candidates_found(self) -> int:
        return len(self.candidates)


@dataclass
class MatchingSummary:
    """
    Counters and per-subject results for one pass over unmatched subjects.
    """

    subjects_processed: int = 0
    subjects_matched: int = 0
    candidates_created: int = 0
    failures: list[MatchingFailure] = field(default_factory=list)
    results: list[SubjectMatchResult] = field(default_factory=list)

    @property
    def subjects_failed(self) -> int:
        return len(self.failures)
