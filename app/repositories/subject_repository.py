"""
app/repositories/subject_repository.py

Persistence helpers for debtor subjects.
"""

from __future__ import annotations

import uuid

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from db.models.match_candidate import MatchCandidateRecord
from db.models.subject import Subject, SubjectRole, SubjectValidationStatus


class SubjectRepository:
    """
    Repository for subject lookup, creation, and contact refresh.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def get(self, subject_id: uuid.UUID) -> Subject | None:
        return self._session.get(Subject, subject_id)

    def get_by_identifier(self, identifier: str) -> Subject | None:
        stmt = select(Subject).where(Subject.identifier == identifier)
        return self._session.execute(stmt).scalars().first()

    def create(
        self,
        *,
        identifier: str,
        full_name: str,
        contact_email: str | None = None,
        contact_phone: str | None = None,
    ) -> Subject:
        """
        Insert a new debtor inside a savepoint.

        A unique-identifier conflict surfaces as IntegrityError with the
        outer transaction still usable, so callers can re-fetch.
        """

        subject = Subject(
            identifier=identifier,
            full_name=full_name,
            contact_email=contact_email,
            contact_phone=contact_phone,
            role=SubjectRole.DEBTOR,
            validation_status=SubjectValidationStatus.PENDING,
        )
        with self._session.begin_nested():
            self._session.add(subject)
            self._session.flush()
        return subject

    def update_contact(
        self,
        subject: Subject,
        *,
        full_name: str | None = None,
        contact_email: str | None = None,
        contact_phone: str | None = None,
    ) -> Subject:
        """
        Refresh name and contact fields; the identifier is never touched.
        """

        if full_name:
            subject.full_name = full_name
        if contact_email:
            subject.contact_email = contact_email
        if contact_phone:
            subject.contact_phone = contact_phone
        self._session.flush()
        return subject

    def list_unmatched_debtors(self) -> list[Subject]:
        has_candidates = exists().where(MatchCandidateRecord.subject_id == Subject.id)
        stmt = (
            select(Subject)
            .where(Subject.role == SubjectRole.DEBTOR)
            .where(~has_candidates)
            .order_by(Subject.created_at, Subject.identifier)
        )
        return list(self._session.execute(stmt).scalars().all())
