"""
app/repositories/match_candidate_repository.py

Persistence of ranked match candidates per subject.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.domain.matching import MatchCandidate
from db.models.match_candidate import MatchCandidateRecord


class MatchCandidateRepository:
    """
    Repository that keeps exactly one candidate set per subject.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def replace_for_subject(
        self,
        subject_id: uuid.UUID,
        candidates: Sequence[MatchCandidate],
    ) -> int:
        """
        Delete the subject's previous candidates and insert the new set.
        """

        self._session.execute(
            delete(MatchCandidateRecord).where(MatchCandidateRecord.subject_id == subject_id)
        )
        for candidate in candidates:
            self._session.add(
                MatchCandidateRecord(
                    subject_id=subject_id,
                    counterparty_id=candidate.counterparty_id,
                    score=candidate.score,
                    match_type=candidate.match_type,
                    details=dict(candidate.details),
                )
            )
        self._session.flush()
        return len(candidates)

    def list_for_subject(self, subject_id: uuid.UUID) -> list[MatchCandidateRecord]:
        stmt = (
            select(MatchCandidateRecord)
            .where(MatchCandidateRecord.subject_id == subject_id)
            .order_by(MatchCandidateRecord.score.desc())
        )
        return list(self._session.execute(stmt).scalars().all())
