"""
app/repositories/counterparty_repository.py

Read access to counterparties used by matching.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.counterparty import Counterparty


class CounterpartyRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def list_active(self) -> list[Counterparty]:
        stmt = (
            select(Counterparty)
            .where(Counterparty.is_active.is_(True))
            .order_by(Counterparty.name)
        )
        return list(self._session.execute(stmt).scalars().all())
