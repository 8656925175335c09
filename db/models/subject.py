"""
db/models/subject.py

Debtor record keyed by canonical national identifier.
"""

from __future__ import annotations

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class SubjectRole:
    DEBTOR = "debtor"


class SubjectValidationStatus:
    PENDING = "pending"
    VERIFIED = "verified"


class Subject(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "subjects"

    identifier: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="Canonical national identifier; never updated after insert",
    )
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=SubjectRole.DEBTOR)
    validation_status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=SubjectValidationStatus.PENDING,
    )

    __table_args__ = (
        UniqueConstraint("identifier", name="uq_subjects_identifier"),
        Index("ix_subjects_role", "role"),
    )
