from __future__ import annotations

import os
from collections.abc import Iterator
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

import db.models  # noqa: F401 registers every import table on Base.metadata
from db.base import Base
from db.config import (
    load_env_files,
    normalize_postgres_url,
    resolve_admin_database_url,
    resolve_database_url,
)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _explicit_urls() -> Iterator[str]:
    x_args = context.get_x_argument(as_dictionary=True)
    yield x_args.get("db_url") or ""
    yield os.getenv("ALEMBIC_DATABASE_URL") or ""
    yield config.get_main_option("sqlalchemy.url") or ""


def _migration_url() -> str:
    """
    Pick the URL migrations run against.

    An explicit target (``-x db_url=...``, ALEMBIC_DATABASE_URL, or the ini
    file) wins. Otherwise the elevated ADMIN_DATABASE_URL is preferred,
    since migrations and runtime schema evolution need the DDL-capable role,
    then the regular tenant URL.
    """

    load_env_files()

    url = next((value.strip() for value in _explicit_urls() if value.strip()), "")
    url = normalize_postgres_url(url) if url else (resolve_admin_database_url() or resolve_database_url())
    if not url.startswith("postgresql"):
        raise RuntimeError("Migrations target PostgreSQL only; got a non-PostgreSQL URL.")
    return url


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(url=_migration_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = _migration_url()
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
