"""
db/config.py

Database URL resolution for the tenant-scoped and elevated connections.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

ENV_FILES = (".env", ".env.local")

_CLOUD_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})

_DRIVER_PREFIXES = {
    "postgres://": "postgresql+psycopg://",
    "postgresql://": "postgresql+psycopg://",
}


def _read_env_file(path: Path) -> Iterator[tuple[str, str]]:
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        if key:
            yield key, value.strip().strip('"').strip("'")


def load_env_files(project_root: Path | None = None) -> None:
    """
    Load KEY=VALUE pairs from ``.env`` then ``.env.local`` into os.environ.

    Variables already set in the process (or by an earlier file) win.
    """

    root = project_root or Path(__file__).resolve().parents[1]
    for filename in ENV_FILES:
        env_path = root / filename
        if not env_path.is_file():
            continue
        for key, value in _read_env_file(env_path):
            os.environ.setdefault(key, value)


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite bare postgres URLs to the psycopg (v3) driver form.
    """

    for prefix, replacement in _DRIVER_PREFIXES.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix) :]
    return url


def _env_url(name: str) -> str | None:
    value = (os.getenv(name) or "").strip()
    return normalize_postgres_url(value) if value else None


def resolve_database_url() -> str:
    """
    Resolve the tenant-scoped database URL.

    DATABASE_URL wins; CLOUD_DATABASE_URL is only consulted when ENVIRONMENT
    is cloud-like; LOCAL_DATABASE_URL is the last resort.
    """

    load_env_files()

    candidates = ["DATABASE_URL"]
    if os.getenv("ENVIRONMENT", "local").strip().lower() in _CLOUD_ENVIRONMENTS:
        candidates.append("CLOUD_DATABASE_URL")
    candidates.append("LOCAL_DATABASE_URL")

    for name in candidates:
        url = _env_url(name)
        if url:
            return url

    raise RuntimeError(
        "No database URL configured. Set DATABASE_URL, or configure "
        "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )


def resolve_admin_database_url() -> str | None:
    """
    Resolve the elevated-privilege URL used for import writes and DDL.

    None means the importer shares the tenant-scoped connection.
    """

    load_env_files()
    return _env_url("ADMIN_DATABASE_URL")
