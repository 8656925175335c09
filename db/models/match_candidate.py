"""
db/models/match_candidate.py

Ranked subject-to-counterparty match candidates.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Float, ForeignKey, Index, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONVariant, UUIDPrimaryKeyMixin


class MatchType:
    IDENTIFIER_EXACT = "identifier_exact"
    NAME_HIGH = "name_high"
    PERFECT = "perfect"
    PARTIAL = "partial"


class MatchCandidateRecord(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "match_candidates"

    subject_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("subjects.id", ondelete="CASCADE"),
        nullable=False,
    )
    counterparty_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("counterparties.id", ondelete="CASCADE"),
        nullable=False,
    )
    score: Mapped[float] = mapped_column(Float, nullable=False)
    match_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="identifier_exact, name_high, perfect, partial",
    )
    details: Mapped[dict[str, Any]] = mapped_column(JSONVariant, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("ix_match_candidates_subject_id", "subject_id"),
        Index("ix_match_candidates_subject_score", "subject_id", "score"),
    )
