"""
app/services/ai_correction_service.py

Optional AI correction stage of the bulk import.

Runs a detection call and a correction call against an OpenAI-compatible
chat-completion endpoint, with deterministic normalization as the fallback
at every step. ``AICorrectionAgent.correct`` never raises.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy.orm import Session

from app.config import AICorrectionSettings, get_ai_correction_settings, get_validation_settings
from app.domain.ai_correction import CorrectionOutcome, CorrectionResult
from app.domain.import_records import FlatRecord, is_metadata_key
from app.logging_utils import log_event
from app.normalizers.record_normalizer import DeterministicNormalizer
from app.repositories.ai_provider_config_repository import AIProviderConfigRepository
from app.validators.record_validator import RecordValidator, ValidationPolicy
from llm_correction.adapter import BaseChatAdapter, OpenAIChatAdapter
from llm_correction.credentials import CredentialResolver, ProviderCredential
from llm_correction.prompt_builder import CorrectionPromptBuilder
from llm_correction.retry import generate_with_retry
from llm_correction.schema import DetectionReport, SchemaDescription, SchemaField
from llm_correction.schema_evolver import DecliningSchemaEvolver, SchemaEvolver, SQLSchemaEvolver
from llm_correction.validator import (
    parse_column_suggestions,
    parse_corrected_records,
    parse_detection_report,
)

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[ProviderCredential, str], BaseChatAdapter]

IMPORT_SCHEMA_FIELDS: tuple[SchemaField, ...] = (
    SchemaField("identifier", "TEXT", True, "Chilean national identifier, XX.XXX.XXX-X"),
    SchemaField("full_name", "TEXT", True, "Debtor full name"),
    SchemaField("amount", "NUMERIC", True, "Debt amount, positive"),
    SchemaField("due_date", "DATE", True, "Due date, YYYY-MM-DD"),
    SchemaField("counterparty_name", "TEXT", True, "Creditor the debt is owed to"),
    SchemaField("contact_email", "TEXT", False, "Debtor email"),
    SchemaField("contact_phone", "TEXT", False, "Debtor phone, +569XXXXXXXX"),
    SchemaField("reference", "TEXT", False, "Operation or invoice reference"),
    SchemaField("category", "TEXT", False, "Debt category"),
    SchemaField("interest_rate", "NUMERIC", False, "Interest rate in percent"),
    SchemaField("description", "TEXT", False, "Free-text description"),
)


def build_import_schema(extra_columns: Sequence[str] = ()) -> SchemaDescription:
    known = {item.name for item in IMPORT_SCHEMA_FIELDS}
    extras = tuple(name for name in extra_columns if name not in known)
    return SchemaDescription(fields=IMPORT_SCHEMA_FIELDS, extra_columns=extras)


def _strip_metadata(record: FlatRecord) -> FlatRecord:
    return {key: value for key, value in record.items() if not is_metadata_key(key)}


def _metadata(record: FlatRecord) -> FlatRecord:
    return {key: value for key, value in record.items() if is_metadata_key(key)}


class AICorrectionAgent:
    """
    Detect and correct record problems with a chat model, falling back to
    deterministic normalization whenever the model path is unavailable.
    """

    def __init__(
        self,
        *,
        credential_resolver: CredentialResolver,
        adapter_factory: AdapterFactory | None = None,
        settings: AICorrectionSettings | None = None,
        normalizer: DeterministicNormalizer | None = None,
        validator: RecordValidator | None = None,
        schema_evolver: SchemaEvolver | None = None,
        prompt_builder: CorrectionPromptBuilder | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._resolver = credential_resolver
        self._settings = settings or get_ai_correction_settings()
        self._adapter_factory = adapter_factory or self._default_adapter
        self._normalizer = normalizer or self._default_normalizer()
        self._validator = validator or RecordValidator(ValidationPolicy.from_settings())
        self._evolver: SchemaEvolver = schema_evolver or DecliningSchemaEvolver()
        self._prompts = prompt_builder or CorrectionPromptBuilder()
        self._sleep = sleep

    def correct(
        self,
        records: Sequence[FlatRecord],
        schema: SchemaDescription | None = None,
    ) -> CorrectionResult:
        """
        Return corrected records for the whole set.

        Any failure on the model path degrades to the deterministic
        normalizer applied to the input records.
        """

        originals = [dict(record) for record in records]
        try:
            result = self._correct(originals, schema or build_import_schema())
        except Exception as exc:  # noqa: BLE001
            logger.exception("AI correction failed unexpectedly; using deterministic normalization")
            result = self._fallback(originals, notes=[f"unexpected error: {exc}"])

        log_event(
            logger,
            logging.INFO,
            "ai_correction_completed",
            outcome=result.outcome,
            records=len(result.records),
            errors=len(result.errors),
            unknown_fields=result.unknown_fields,
            fields_created=result.fields_created,
            fields_dropped=result.fields_dropped,
        )
        return result

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _correct(self, originals: list[FlatRecord], schema: SchemaDescription) -> CorrectionResult:
        if not originals:
            return self._fallback(originals, notes=["no records to correct"])

        credential = self._resolver.resolve()
        if credential is None:
            return self._fallback(
                originals,
                notes=[f"no credential configured for provider '{self._resolver.provider}'"],
            )

        model = self._resolver.select_model(self._settings.model)
        adapter = self._adapter_factory(credential, model)
        logger.info(
            "Running AI correction provider=%s model=%s source=%s records=%d",
            credential.provider,
            model,
            credential.source,
            len(originals),
        )

        payload = [_strip_metadata(record) for record in originals]
        report = self._detect(adapter, schema, payload)
        unknown_fields = self._unknown_fields(report, schema, payload)
        fields_created, fields_dropped = self._evolve_schema(adapter, schema, unknown_fields)

        notes: list[str] = []
        try:
            system_prompt, user_prompt = self._prompts.build_correction_prompt(
                schema,
                payload,
                [error.model_dump() for error in report.errors],
            )
            raw = self._call(adapter, user_prompt, system_prompt, stage="correction")
            corrected = parse_corrected_records(raw, expected_length=len(payload))
        except Exception as exc:  # noqa: BLE001
            logger.warning("AI correction call unusable; using deterministic normalization: %s", exc)
            return self._fallback(
                originals,
                notes=[f"correction failed: {exc}"],
                report=report,
                unknown_fields=unknown_fields,
                fields_created=fields_created,
                fields_dropped=fields_dropped,
            )

        merged = [
            self._merge(original, ai_record, fields_dropped)
            for original, ai_record in zip(originals, corrected)
        ]

        invalid_rows = [
            index + 1
            for index, record in enumerate(merged)
            if not self._validator.validate(record).is_valid
        ]
        if invalid_rows:
            notes.append(
                f"{len(invalid_rows)} record(s) still invalid after AI correction; "
                "deterministic normalization applied"
            )
            outcome = CorrectionOutcome.AI_PARTIAL
            merged = self._normalizer.normalize_records(merged)
        else:
            outcome = CorrectionOutcome.AI_SUCCESS

        return CorrectionResult(
            outcome=outcome,
            records=merged,
            notes=notes,
            errors=[error.model_dump() for error in report.errors],
            missing_fields=list(report.missing_fields),
            unknown_fields=unknown_fields,
            fields_created=fields_created,
            fields_dropped=fields_dropped,
        )

    def _detect(
        self,
        adapter: BaseChatAdapter,
        schema: SchemaDescription,
        payload: list[FlatRecord],
    ) -> DetectionReport:
        sample = payload[: max(1, self._settings.detection_sample_size)]
        try:
            system_prompt, user_prompt = self._prompts.build_detection_prompt(schema, sample, len(payload))
            raw = self._call(adapter, user_prompt, system_prompt, stage="detection")
            return parse_detection_report(raw)
        except Exception as exc:  # noqa: BLE001
            logger.warning("AI detection call unusable; continuing with a generic error: %s", exc)
            return DetectionReport.failure(f"Error analysis failed: {exc}")

    def _unknown_fields(
        self,
        report: DetectionReport,
        schema: SchemaDescription,
        payload: list[FlatRecord],
    ) -> list[str]:
        found: list[str] = []
        candidates = list(report.unknown_fields)
        for record in payload:
            candidates.extend(record.keys())
        for name in candidates:
            if not name or is_metadata_key(name) or schema.is_known(name) or name in found:
                continue
            found.append(name)
        return found

    def _evolve_schema(
        self,
        adapter: BaseChatAdapter,
        schema: SchemaDescription,
        unknown_fields: list[str],
    ) -> tuple[list[str], list[str]]:
        """
        Ask the model which unknown fields deserve a column.

        Returns ``(created, dropped)``; every unknown field ends up in
        exactly one of them.
        """

        if not unknown_fields:
            return [], []

        created: list[str] = []
        try:
            system_prompt, user_prompt = self._prompts.build_schema_evolution_prompt(schema.table, unknown_fields)
            raw = self._call(adapter, user_prompt, system_prompt, stage="schema_evolution")
            suggestions = parse_column_suggestions(raw).suggestions
            for suggestion in suggestions:
                if suggestion.field not in unknown_fields or suggestion.field in created:
                    continue
                if not suggestion.should_create:
                    logger.info(
                        "Model advised against column %s: %s",
                        suggestion.field,
                        suggestion.reason,
                    )
                    continue
                if self._evolver.propose_column(suggestion.field, suggestion.data_type):
                    created.append(suggestion.field)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Schema evolution step failed; dropping unknown fields: %s", exc)

        dropped = [name for name in unknown_fields if name not in created]
        if dropped:
            logger.info("Dropping fields without a target column: %s", dropped)
        return created, dropped

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _call(self, adapter: BaseChatAdapter, prompt: str, system_prompt: str, *, stage: str) -> str:
        return generate_with_retry(
            adapter,
            prompt,
            system_prompt,
            max_attempts=self._settings.max_attempts,
            delay_seconds=self._settings.retry_delay_seconds,
            sleep=self._sleep,
            stage=stage,
        )

    def _merge(
        self,
        original: FlatRecord,
        ai_record: dict[str, Any],
        dropped: list[str],
    ) -> FlatRecord:
        merged = _strip_metadata(original)
        for key, value in ai_record.items():
            if not is_metadata_key(key):
                merged[key] = value
        for name in dropped:
            merged.pop(name, None)
        merged.update(_metadata(original))
        return merged

    def _fallback(
        self,
        originals: list[FlatRecord],
        *,
        notes: list[str],
        report: DetectionReport | None = None,
        unknown_fields: list[str] | None = None,
        fields_created: list[str] | None = None,
        fields_dropped: list[str] | None = None,
    ) -> CorrectionResult:
        return CorrectionResult(
            outcome=CorrectionOutcome.FALLBACK,
            records=self._normalizer.normalize_records(originals),
            notes=notes,
            errors=[error.model_dump() for error in report.errors] if report else [],
            missing_fields=list(report.missing_fields) if report else [],
            unknown_fields=unknown_fields or [],
            fields_created=fields_created or [],
            fields_dropped=fields_dropped or [],
        )

    def _default_adapter(self, credential: ProviderCredential, model: str) -> BaseChatAdapter:
        return OpenAIChatAdapter(
            api_key=credential.api_key,
            model=model,
            base_url=credential.base_url,
            max_tokens=self._settings.max_tokens,
            temperature=self._settings.temperature,
            timeout_seconds=self._settings.timeout_seconds,
        )

    @staticmethod
    def _default_normalizer() -> DeterministicNormalizer:
        validation = get_validation_settings()
        return DeterministicNormalizer(
            thousands_separator=validation.thousands_separator,
            decimal_separator=validation.decimal_separator,
        )


def build_ai_correction_agent(
    db: Session | None,
    *,
    schema_evolver: SchemaEvolver | None = None,
) -> AICorrectionAgent:
    """
    Wire an agent with stored-credential lookup and the configured evolver.
    """

    settings = get_ai_correction_settings()
    lookup = AIProviderConfigRepository(db).get_stored_credential if db is not None else None
    resolver = CredentialResolver(
        provider=settings.provider,
        env_var=settings.api_key_env,
        default_base_url=settings.base_url,
        lookup=lookup,
        catalog_ttl_seconds=settings.catalog_ttl_seconds,
    )

    if schema_evolver is None and settings.schema_evolution_enabled:
        from db.session import get_admin_engine

        engine = get_admin_engine()
        if engine is not None:
            schema_evolver = SQLSchemaEvolver(engine)
        else:
            logger.warning("Schema evolution enabled but ADMIN_DATABASE_URL is not configured")

    return AICorrectionAgent(
        credential_resolver=resolver,
        settings=settings,
        schema_evolver=schema_evolver,
    )
