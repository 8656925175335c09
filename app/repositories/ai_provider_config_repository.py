"""
app/repositories/ai_provider_config_repository.py

Stored AI provider credentials.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.ai_provider_config import AIProviderConfig
from llm_correction.credentials import StoredCredential


class AIProviderConfigRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def get_active(self, provider: str) -> AIProviderConfig | None:
        stmt = (
            select(AIProviderConfig)
            .where(AIProviderConfig.provider == provider.strip().lower())
            .where(AIProviderConfig.is_active.is_(True))
        )
        return self._session.execute(stmt).scalars().first()

    def get_stored_credential(self, provider: str) -> StoredCredential | None:
        """
        Return the active provider configuration as a credential lookup result.
        """

        config = self.get_active(provider)
        if config is None:
            return None
        models = [str(model) for model in (config.models_json or []) if str(model).strip()]
        return StoredCredential(
            provider=config.provider,
            api_key=config.api_key,
            base_url=config.base_url,
            models=models,
        )
