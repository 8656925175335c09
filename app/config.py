"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, TypeVar

from db.config import load_env_files

NumberT = TypeVar("NumberT", int, float)

_TRUTHY = frozenset({"1", "true", "yes", "on"})


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    load_env_files()


def _raw_env(name: str) -> str | None:
    _load_env_once()
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _get_bool_env(name: str, default: bool) -> bool:
    raw_value = _raw_env(name)
    return default if raw_value is None else raw_value.lower() in _TRUTHY


def _get_number_env(name: str, default: NumberT, cast: Callable[[str], NumberT]) -> NumberT:
    """
    Read a numeric setting; unset or unparseable values fall back to default.
    """

    raw_value = _raw_env(name)
    if raw_value is None:
        return default
    try:
        return cast(raw_value)
    except ValueError:
        return default


def _get_int_env(name: str, default: int) -> int:
    return _get_number_env(name, default, int)


def _get_float_env(name: str, default: float) -> float:
    return _get_number_env(name, default, float)


def _get_str_env(name: str, default: str) -> str:
    raw_value = _raw_env(name)
    return default if raw_value is None else raw_value


@dataclass(frozen=True)
class ImportSettings:
    """
    Runtime settings for file ingestion and batched import writes.
    """

    batch_size: int = 25
    max_rows: int = 5000
    max_file_bytes: int = 10 * 1024 * 1024
    max_retries: int = 3
    retry_delay_seconds: float = 2.0
    batch_pause_seconds: float = 1.0
    max_amount: float = 999_999_999.99
    log_validation_errors: bool = True


@dataclass(frozen=True)
class ValidationSettings:
    """
    Strictness flags and locale conventions for record validation.
    """

    strict_identifier: bool = True
    strict_email: bool = False
    thousands_separator: str = "."
    decimal_separator: str = ","
    min_phone_length: int = 12


@dataclass(frozen=True)
class AICorrectionSettings:
    """
    Chat-completion provider settings for the AI correction stage.
    """

    provider: str = "groq"
    base_url: str = "https://api.groq.com/openai/v1"
    model: str = "llama-3.1-70b-versatile"
    max_tokens: int = 2000
    temperature: float = 0.1
    timeout_seconds: float = 30.0
    max_attempts: int = 2
    retry_delay_seconds: float = 1.0
    detection_sample_size: int = 5
    api_key_env: str = "GROQ_API_KEY"
    catalog_ttl_seconds: float = 300.0
    schema_evolution_enabled: bool = False


@dataclass(frozen=True)
class MatchingSettings:
    """
    Weights and thresholds for subject/counterparty matching.
    """

    similarity_floor: float = 0.3
    identifier_weight: float = 0.6
    name_weight: float = 0.3
    email_weight: float = 0.1
    name_high_threshold: float = 0.9


@lru_cache(maxsize=1)
def get_import_settings() -> ImportSettings:
    """
    Return cached import settings from environment variables.
    """

    return ImportSettings(
        batch_size=max(1, _get_int_env("IMPORT_BATCH_SIZE", 25)),
        max_rows=max(1, _get_int_env("IMPORT_MAX_ROWS", 5000)),
        max_file_bytes=max(1, _get_int_env("IMPORT_MAX_FILE_BYTES", 10 * 1024 * 1024)),
        max_retries=max(1, _get_int_env("IMPORT_MAX_RETRIES", 3)),
        retry_delay_seconds=max(0.0, _get_float_env("IMPORT_RETRY_DELAY_SECONDS", 2.0)),
        batch_pause_seconds=max(0.0, _get_float_env("IMPORT_BATCH_PAUSE_SECONDS", 1.0)),
        max_amount=max(1.0, _get_float_env("IMPORT_MAX_AMOUNT", 999_999_999.99)),
        log_validation_errors=_get_bool_env("IMPORT_LOG_VALIDATION_ERRORS", True),
    )


@lru_cache(maxsize=1)
def get_validation_settings() -> ValidationSettings:
    """
    Return cached record validation settings.
    """

    return ValidationSettings(
        strict_identifier=_get_bool_env("VALIDATION_STRICT_IDENTIFIER", True),
        strict_email=_get_bool_env("VALIDATION_STRICT_EMAIL", False),
        thousands_separator=_get_str_env("VALIDATION_THOUSANDS_SEPARATOR", "."),
        decimal_separator=_get_str_env("VALIDATION_DECIMAL_SEPARATOR", ","),
        min_phone_length=max(1, _get_int_env("VALIDATION_MIN_PHONE_LENGTH", 12)),
    )


@lru_cache(maxsize=1)
def get_ai_correction_settings() -> AICorrectionSettings:
    """
    Return cached AI correction provider settings.
    """

    return AICorrectionSettings(
        provider=_get_str_env("AI_CORRECTION_PROVIDER", "groq").lower(),
        base_url=_get_str_env("AI_CORRECTION_BASE_URL", "https://api.groq.com/openai/v1"),
        model=_get_str_env("AI_CORRECTION_MODEL", "llama-3.1-70b-versatile"),
        max_tokens=max(1, _get_int_env("AI_CORRECTION_MAX_TOKENS", 2000)),
        temperature=max(0.0, _get_float_env("AI_CORRECTION_TEMPERATURE", 0.1)),
        timeout_seconds=max(1.0, _get_float_env("AI_CORRECTION_TIMEOUT_SECONDS", 30.0)),
        max_attempts=max(1, _get_int_env("AI_CORRECTION_MAX_ATTEMPTS", 2)),
        retry_delay_seconds=max(0.0, _get_float_env("AI_CORRECTION_RETRY_DELAY_SECONDS", 1.0)),
        detection_sample_size=max(1, _get_int_env("AI_CORRECTION_DETECTION_SAMPLE", 5)),
        api_key_env=_get_str_env("AI_CORRECTION_API_KEY_ENV", "GROQ_API_KEY"),
        catalog_ttl_seconds=max(0.0, _get_float_env("AI_CORRECTION_CATALOG_TTL_SECONDS", 300.0)),
        schema_evolution_enabled=_get_bool_env("AI_CORRECTION_SCHEMA_EVOLUTION", False),
    )


@lru_cache(maxsize=1)
def get_matching_settings() -> MatchingSettings:
    """
    Return cached matching weights and thresholds.
    """

    return MatchingSettings(
        similarity_floor=min(1.0, max(0.0, _get_float_env("MATCHING_SIMILARITY_FLOOR", 0.3))),
        identifier_weight=max(0.0, _get_float_env("MATCHING_IDENTIFIER_WEIGHT", 0.6)),
        name_weight=max(0.0, _get_float_env("MATCHING_NAME_WEIGHT", 0.3)),
        email_weight=max(0.0, _get_float_env("MATCHING_EMAIL_WEIGHT", 0.1)),
        name_high_threshold=min(1.0, max(0.0, _get_float_env("MATCHING_NAME_HIGH_THRESHOLD", 0.9))),
    )
