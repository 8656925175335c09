"""
db/models/ai_provider_config.py

Stored credentials and model catalog for AI providers.
"""

from __future__ import annotations

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONVariant, TimestampMixin, UUIDPrimaryKeyMixin


class AIProviderConfig(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "ai_provider_configs"

    provider: Mapped[str] = mapped_column(String(64), nullable=False)
    api_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    base_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    models_json: Mapped[list[str] | None] = mapped_column(
        JSONVariant,
        nullable=True,
        comment="Ordered list of preferred model ids",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("provider", name="uq_ai_provider_configs_provider"),
    )
