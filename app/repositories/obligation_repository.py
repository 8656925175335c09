"""
app/repositories/obligation_repository.py

Obligation inserts restricted to the columns present in the live table.

The obligations table may gain columns at runtime (schema evolution) or
lag behind the ORM model on older deployments, so inserts are built against
a reflected column list instead of the declarative model.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Mapping

from sqlalchemy import Column, MetaData, Table, inspect, insert
from sqlalchemy.orm import Session

from db.models.obligation import Obligation

logger = logging.getLogger(__name__)


class ObligationRepository:
    """
    Repository for append-only obligation inserts.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._table: Table | None = None

    def live_columns(self) -> list[str]:
        return [column.name for column in self._live_table().columns]

    def refresh_schema(self) -> None:
        self._table = None

    def create(self, values: Mapping[str, Any]) -> uuid.UUID:
        """
        Insert one obligation and return its id.

        Keys missing from the live table are dropped and logged.
        """

        table = self._live_table()
        live = set(table.columns.keys())

        payload = {key: value for key, value in values.items() if key in live}
        dropped = sorted(key for key in values if key not in live)
        if dropped:
            logger.debug("Skipping obligation fields absent from live schema: %s", dropped)

        obligation_id = payload.get("id") or uuid.uuid4()
        payload["id"] = obligation_id

        with self._session.begin_nested():
            self._session.execute(insert(table).values(**payload))
        return obligation_id

    def _live_table(self) -> Table:
        if self._table is None:
            inspector = inspect(self._session.connection())
            model_columns = Obligation.__table__.columns
            columns = []
            for info in inspector.get_columns(Obligation.__tablename__):
                name = info["name"]
                column_type = model_columns[name].type if name in model_columns else info["type"]
                columns.append(Column(name, column_type))
            self._table = Table(Obligation.__tablename__, MetaData(), *columns)
        return self._table
