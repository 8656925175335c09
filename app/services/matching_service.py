"""
app/services/matching_service.py

Score debtor subjects against active counterparties and persist the
ranked candidates.
"""

from __future__ import annotations

import logging
import re
import unicodedata
import uuid

from rapidfuzz.distance import Levenshtein
from sqlalchemy.orm import Session

from app.config import MatchingSettings, get_matching_settings
from app.domain.matching import MatchCandidate, MatchingFailure, MatchingSummary, SubjectMatchResult
from app.logging_utils import log_event
from app.normalizers.identifiers import identifier_key
from app.repositories.counterparty_repository import CounterpartyRepository
from app.repositories.match_candidate_repository import MatchCandidateRepository
from app.repositories.subject_repository import SubjectRepository
from db.models.match_candidate import MatchCandidateRecord, MatchType

logger = logging.getLogger(__name__)

# Bonus weight of the shared-token ratio on top of edit-distance similarity.
_TOKEN_OVERLAP_WEIGHT = 0.2


class SubjectNotFoundError(LookupError):
    def __init__(self, subject_id: uuid.UUID) -> None:
        self.subject_id = subject_id
        super().__init__(f"Subject not found: {subject_id}")


def _normalize_name(text: str | None) -> str:
    if not text:
        return ""
    folded = unicodedata.normalize("NFKD", text)
    folded = "".join(char for char in folded if not unicodedata.combining(char))
    folded = re.sub(r"[^\w\s]", " ", folded.lower())
    return re.sub(r"\s+", " ", folded).strip()


def name_similarity(left: str | None, right: str | None) -> float:
    """
    Edit-distance similarity plus a shared-token bonus, capped at 1.
    """

    a = _normalize_name(left)
    b = _normalize_name(right)
    if not a or not b:
        return 0.0

    base = Levenshtein.normalized_similarity(a, b)
    tokens_a = set(a.split())
    tokens_b = set(b.split())
    overlap = len(tokens_a & tokens_b) / max(len(tokens_a), len(tokens_b))
    return min(1.0, base + _TOKEN_OVERLAP_WEIGHT * overlap)


def _same_identifier(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return identifier_key(left) == identifier_key(right)


def _same_email(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.strip().lower() == right.strip().lower()


class MatchingService:
    """
    Stateless scorer over repositories; candidate sets are replaced, never
    appended, so re-running a match is idempotent.
    """

    def __init__(
        self,
        *,
        subjects: SubjectRepository,
        counterparties: CounterpartyRepository,
        candidates: MatchCandidateRepository,
        session: Session | None = None,
        settings: MatchingSettings | None = None,
    ) -> None:
        self._subjects = subjects
        self._counterparties = counterparties
        self._candidates = candidates
        self._session = session
        self._settings = settings or get_matching_settings()

    def match_subject(self, subject_id: uuid.UUID) -> list[MatchCandidate]:
        """
        Score one subject against every active counterparty.

        Candidates at or above the score floor replace the subject's
        persisted candidates, highest score first.
        """

        subject = self._subjects.get(subject_id)
        if subject is None:
            raise SubjectNotFoundError(subject_id)

        scored: list[MatchCandidate] = []
        for counterparty in self._counterparties.list_active():
            candidate = self.score(subject, counterparty)
            if candidate.score >= self._settings.similarity_floor:
                scored.append(candidate)
        scored.sort(key=lambda candidate: candidate.score, reverse=True)

        self._candidates.replace_for_subject(subject.id, scored)
        if self._session is not None:
            self._session.commit()

        logger.info("Matched subject %s: %d candidate(s)", subject.id, len(scored))
        return scored

    def match_all_unmatched(self) -> MatchingSummary:
        """
        Match every debtor that has no candidates yet.

        A failure on one subject is recorded and the pass continues.
        """

        summary = MatchingSummary()
        for subject in self._subjects.list_unmatched_debtors():
            summary.subjects_processed += 1
            try:
                found = self.match_subject(subject.id)
            except Exception as exc:  # noqa: BLE001
                if self._session is not None:
                    self._session.rollback()
                logger.warning("Matching failed for subject %s: %s", subject.id, exc)
                summary.failures.append(MatchingFailure(subject_id=subject.id, error=str(exc)))
                summary.results.append(SubjectMatchResult(subject_id=subject.id, error=str(exc)))
                continue
            summary.results.append(SubjectMatchResult(subject_id=subject.id, candidates=found))
            if found:
                summary.subjects_matched += 1
                summary.candidates_created += len(found)

        log_event(
            logger,
            logging.INFO,
            "matching_run_completed",
            subjects_processed=summary.subjects_processed,
            subjects_matched=summary.subjects_matched,
            subjects_failed=summary.subjects_failed,
            candidates_created=summary.candidates_created,
        )
        return summary

    def get_candidates(self, subject_id: uuid.UUID) -> list[MatchCandidateRecord]:
        if self._subjects.get(subject_id) is None:
            raise SubjectNotFoundError(subject_id)
        return self._candidates.list_for_subject(subject_id)

    def score(self, subject, counterparty) -> MatchCandidate:
        settings = self._settings
        identifier_match = _same_identifier(subject.identifier, counterparty.identifier)
        name_match = name_similarity(subject.full_name, counterparty.name)
        contact_match = _same_email(subject.contact_email, counterparty.contact_email)

        score = 0.0
        match_type = MatchType.PARTIAL
        if identifier_match:
            score += settings.identifier_weight
            match_type = MatchType.IDENTIFIER_EXACT
        score += name_match * settings.name_weight
        if name_match > settings.name_high_threshold:
            match_type = MatchType.PERFECT if identifier_match else MatchType.NAME_HIGH
        if contact_match:
            score += settings.email_weight

        return MatchCandidate(
            counterparty_id=counterparty.id,
            score=round(min(1.0, score), 4),
            match_type=match_type,
            details={
                "identifier_match": identifier_match,
                "name_match": round(name_match, 4),
                "contact_match": contact_match,
            },
        )


def build_matching_service(db: Session) -> MatchingService:
    return MatchingService(
        subjects=SubjectRepository(db),
        counterparties=CounterpartyRepository(db),
        candidates=MatchCandidateRepository(db),
        session=db,
    )
