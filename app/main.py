"""
app/main.py

FastAPI entrypoint for the bulk debt import service.
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI

logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _env_set(name: str) -> bool:
    return bool(os.getenv(name, "").strip())


def _any_database_url() -> bool:
    return any(_env_set(name) for name in ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL"))


def _admin_url_when_evolving() -> bool:
    evolving = os.getenv("AI_CORRECTION_SCHEMA_EVOLUTION", "false").strip().lower() in _TRUTHY
    return not evolving or _env_set("ADMIN_DATABASE_URL")


# Each rule is (check, message shown when the check fails). The AI provider
# key is optional; imports degrade to deterministic cleanup without it.
_STARTUP_RULES: tuple[tuple[Callable[[], bool], str], ...] = (
    (
        _any_database_url,
        "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL or LOCAL_DATABASE_URL.",
    ),
    (
        _admin_url_when_evolving,
        "AI_CORRECTION_SCHEMA_EVOLUTION is enabled but ADMIN_DATABASE_URL is not set.",
    ),
)


def _validate_env() -> None:
    """
    Fail fast with every broken startup rule listed at once.
    """

    from db.config import load_env_files

    load_env_files()
    failures = [message for check, message in _STARTUP_RULES if not check()]
    if failures:
        raise RuntimeError(
            "Startup validation failed:\n" + "\n".join(f"  - {message}" for message in failures)
        )


def _configure_logging() -> None:
    level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _verify_database() -> None:
    """
    Confirm the database answers and carries every table the models declare.

    Does not migrate; a missing table means ``alembic upgrade head`` was skipped.
    """

    from sqlalchemy import inspect, text

    import db.models  # noqa: F401 registers every import table on Base.metadata
    from db.base import Base
    from db.session import get_engine

    engine = get_engine()
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            present = set(inspect(connection).get_table_names())
    except Exception as exc:  # noqa: BLE001
        raise RuntimeError("Database unavailable.") from exc
    logger.info("Database connectivity confirmed")

    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        logger.critical("Tables missing from the database: %s. Run 'alembic upgrade head'.", ", ".join(missing))
        raise RuntimeError(f"Schema mismatch: missing tables {', '.join(missing)}. Run migrations and restart.")
    logger.info("Database schema validated")


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    _verify_database()
    yield


health_router = APIRouter(tags=["health"])


@health_router.get("/health")
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


def create_app() -> FastAPI:
    _validate_env()
    _configure_logging()

    from app.api.routers import bulk_import_router, matching_router

    application = FastAPI(title="Debt Import API", version="1.0.0", lifespan=_lifespan)
    for router in (health_router, bulk_import_router, matching_router):
        application.include_router(router)
    return application


app = create_app()
