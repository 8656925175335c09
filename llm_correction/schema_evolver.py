"""Capability interface for model-suggested schema changes.

Adding columns on a model's say-so is opt-in: the default evolver
declines every proposal, and the SQL evolver only accepts identifiers
and types from fixed allow-lists.
"""

import logging
import re
from typing import Optional, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

_IDENTIFIER_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,62}$")

_TYPE_PATTERNS = (
    re.compile(r"^TEXT$"),
    re.compile(r"^VARCHAR\(\d{1,4}\)$"),
    re.compile(r"^INTEGER$"),
    re.compile(r"^BIGINT$"),
    re.compile(r"^NUMERIC\(\d{1,2},\s*\d{1,2}\)$"),
    re.compile(r"^BOOLEAN$"),
    re.compile(r"^DATE$"),
    re.compile(r"^TIMESTAMPTZ$"),
)

_TYPE_ALIASES = {
    "STRING": "TEXT",
    "INT": "INTEGER",
    "FLOAT": "NUMERIC(14,2)",
    "DECIMAL": "NUMERIC(14,2)",
    "NUMERIC": "NUMERIC(14,2)",
    "BOOL": "BOOLEAN",
    "TIMESTAMP": "TIMESTAMPTZ",
    "DATETIME": "TIMESTAMPTZ",
}

_RESERVED_COLUMNS = frozenset(
    {"id", "subject_id", "organization_id", "counterparty_id", "created_at", "updated_at", "status"}
)


class SchemaEvolver(Protocol):
    """Decides whether a proposed column may be added to the import target."""

    def propose_column(self, name: str, data_type: str) -> bool:
        """Return True when the column exists after the call."""


class DecliningSchemaEvolver:
    """Default evolver: never alters the schema."""

    def propose_column(self, name: str, data_type: str) -> bool:
        logger.info("Declined schema change proposal column=%s type=%s", name, data_type)
        return False


def normalize_column_type(data_type: str) -> Optional[str]:
    """Map a suggested SQL type onto the allow-list, or None if it is not allowed."""
    candidate = re.sub(r"\s+", " ", (data_type or "").strip().upper())
    candidate = _TYPE_ALIASES.get(candidate, candidate)
    for pattern in _TYPE_PATTERNS:
        if pattern.match(candidate):
            return candidate
    return None


def normalize_column_name(name: str) -> Optional[str]:
    candidate = (name or "").strip().lower()
    if not _IDENTIFIER_PATTERN.match(candidate) or candidate in _RESERVED_COLUMNS:
        return None
    return candidate


class SQLSchemaEvolver:
    """Adds nullable columns to a PostgreSQL table with ``ADD COLUMN IF NOT EXISTS``.

    Requires an engine whose role may alter the target table.
    """

    def __init__(self, engine: Engine, table: str = "obligations", schema: str = "public") -> None:
        """Initialise the evolver.

        Args:
            engine: Engine connected with DDL privileges.
            table: Target table name.
            schema: Target schema name.
        """
        if not _IDENTIFIER_PATTERN.match(table) or not _IDENTIFIER_PATTERN.match(schema):
            raise ValueError(f"Invalid table reference: {schema}.{table}")
        self._engine = engine
        self._table = table
        self._schema = schema

    def propose_column(self, name: str, data_type: str) -> bool:
        column = normalize_column_name(name)
        sql_type = normalize_column_type(data_type)
        if column is None or sql_type is None:
            logger.warning(
                "Rejected schema change proposal column=%s type=%s (not allow-listed)",
                name,
                data_type,
            )
            return False

        statement = text(
            f'ALTER TABLE "{self._schema}"."{self._table}" '
            f'ADD COLUMN IF NOT EXISTS "{column}" {sql_type} NULL'
        )
        try:
            with self._engine.begin() as connection:
                connection.execute(statement)
        except SQLAlchemyError as exc:
            logger.warning("Schema change failed column=%s type=%s: %s", column, sql_type, exc)
            return False

        logger.info("Added column %s.%s (%s)", self._table, column, sql_type)
        return True
