"""
db/session.py

Engines and sessions for the two database roles.

The tenant-scoped role serves reads and matching. The optional elevated role
(ADMIN_DATABASE_URL) carries bulk import writes and runtime DDL, which must
bypass per-organization access policies.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import resolve_admin_database_url, resolve_database_url

# (create_engine keyword, environment variable, default)
_POOL_OPTIONS = (
    ("pool_recycle", "DB_POOL_RECYCLE", 1800),
    ("pool_size", "DB_POOL_SIZE", 5),
    ("max_overflow", "DB_MAX_OVERFLOW", 10),
)


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


def _build_engine(database_url: str) -> Engine:
    if not database_url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported.")

    pool_kwargs = {keyword: _int_env(env_name, default) for keyword, env_name, default in _POOL_OPTIONS}
    return create_engine(
        database_url,
        echo=os.getenv("SQL_ECHO", "").strip().lower() in {"1", "true", "yes", "on"},
        pool_pre_ping=True,
        connect_args={"connect_timeout": _int_env("DB_CONNECT_TIMEOUT", 10)},
        **pool_kwargs,
    )


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return _build_engine(resolve_database_url())


@lru_cache(maxsize=1)
def get_admin_engine() -> Engine | None:
    """None when no elevated URL is configured."""
    admin_url = resolve_admin_database_url()
    return _build_engine(admin_url) if admin_url else None


@lru_cache(maxsize=None)
def _factory_for(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def SessionLocal() -> Session:
    return _factory_for(get_engine())()


def AdminSessionLocal() -> Session | None:
    engine = get_admin_engine()
    return _factory_for(engine)() if engine is not None else None


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def get_admin_db() -> Generator[Session | None, None, None]:
    """FastAPI dependency; yields None when the elevated role is not configured."""
    session = AdminSessionLocal()
    try:
        yield session
    finally:
        if session is not None:
            session.close()
