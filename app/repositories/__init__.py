"""
app/repositories package marker.
"""

from app.repositories.ai_provider_config_repository import AIProviderConfigRepository
from app.repositories.counterparty_repository import CounterpartyRepository
from app.repositories.match_candidate_repository import MatchCandidateRepository
from app.repositories.obligation_repository import ObligationRepository
from app.repositories.subject_repository import SubjectRepository

__all__ = [
    "AIProviderConfigRepository",
    "CounterpartyRepository",
    "MatchCandidateRepository",
    "ObligationRepository",
    "SubjectRepository",
]
