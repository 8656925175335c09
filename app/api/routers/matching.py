"""
app/api/routers/matching.py

Subject-to-counterparty matching endpoints.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.schemas.matching import (
    MatchCandidateResponse,
    MatchingFailureResponse,
    MatchingSummaryResponse,
    StoredMatchCandidateResponse,
    SubjectMatchResponse,
    SubjectMatchResultResponse,
)
from app.services.matching_service import MatchingService, SubjectNotFoundError, build_matching_service
from db.session import get_db

router = APIRouter(prefix="/matching", tags=["matching"])


def get_matching_service(db: Session = Depends(get_db)) -> MatchingService:
    return build_matching_service(db)


@router.post("/subjects/{subject_id}", response_model=SubjectMatchResponse)
def match_subject(
    subject_id: uuid.UUID,
    service: MatchingService = Depends(get_matching_service),
) -> SubjectMatchResponse:
    try:
        candidates = service.match_subject(subject_id)
    except SubjectNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    return SubjectMatchResponse(
        subject_id=subject_id,
        candidates=[MatchCandidateResponse.model_validate(candidate) for candidate in candidates],
    )


@router.post("/run", response_model=MatchingSummaryResponse)
def run_matching(service: MatchingService = Depends(get_matching_service)) -> MatchingSummaryResponse:
    """
    Match every debtor that has no candidates yet.
    """

    summary = service.match_all_unmatched()
    return MatchingSummaryResponse(
        subjects_processed=summary.subjects_processed,
        subjects_matched=summary.subjects_matched,
        subjects_failed=summary.subjects_failed,
        candidates_created=summary.candidates_created,
        failures=[
            MatchingFailureResponse(subject_id=failure.subject_id, error=failure.error)
            for failure in summary.failures
        ],
        results=[
            SubjectMatchResultResponse(
                subject_id=item.subject_id,
                candidates_found=item.candidates_found,
                candidates=[MatchCandidateResponse.model_validate(candidate) for candidate in item.candidates],
                error=item.error,
            )
            for item in summary.results
        ],
    )


@router.get("/subjects/{subject_id}", response_model=list[StoredMatchCandidateResponse])
def list_candidates(
    subject_id: uuid.UUID,
    service: MatchingService = Depends(get_matching_service),
) -> list[StoredMatchCandidateResponse]:
    try:
        records = service.get_candidates(subject_id)
    except SubjectNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return [StoredMatchCandidateResponse.model_validate(record) for record in records]
