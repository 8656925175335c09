"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.ai_provider_config import AIProviderConfig
from db.models.counterparty import Counterparty
from db.models.match_candidate import MatchCandidateRecord
from db.models.obligation import Obligation
from db.models.organization import Organization
from db.models.subject import Subject

__all__ = [
    "AIProviderConfig",
    "Counterparty",
    "MatchCandidateRecord",
    "Obligation",
    "Organization",
    "Subject",
]
