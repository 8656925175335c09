"""
app/services/bulk_import_service.py

Batch import orchestrator: validate mapped records, upsert debtors, and
append obligations, one row at a time in order-preserving batches.

Transaction contract:
  - The subject stage and the obligation stage of a row commit separately,
    so a subject created for a row whose obligation later fails is kept.
  - Transient store errors roll the session back and retry the stage with a
    fixed delay; exhausted retries downgrade the row to a failure.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Any, TypeVar

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import ImportSettings, get_import_settings
from app.domain.ai_correction import CorrectionResult
from app.domain.import_records import (
    CANONICAL_FIELDS,
    DEFAULT_COUNTERPARTY_NAME,
    DEFAULT_DESCRIPTION_TEMPLATE,
    BatchResult,
    FlatRecord,
    ImportOptions,
    ImportResult,
    RowError,
    RowWarning,
    is_metadata_key,
)
from app.logging_utils import log_event
from app.repositories.obligation_repository import ObligationRepository
from app.repositories.subject_repository import SubjectRepository
from app.services.ai_correction_service import AICorrectionAgent
from app.validators.record_validator import RecordValidator, ValidationPolicy
from db.models.obligation import ObligationStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNIQUE_VIOLATION_SQLSTATE = "23505"

_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    TimeoutError,
    ConnectionError,
)

# Obligation columns written from canonical record fields.
_OBLIGATION_FIELDS = ("counterparty_name", "reference", "category", "interest_rate", "description")

# Live columns that unmapped source columns must never write.
_PROTECTED_OBLIGATION_COLUMNS = frozenset({"id", "created_at", "updated_at"})


class ImportRequestError(ValueError):
    """
    Raised when an import call is malformed (missing organization,
    empty or oversized record set, bad batch size).
    """


class ImportAttempt:
    FIRST_ATTEMPT = "first_attempt"
    FALLBACK_ATTEMPT = "fallback_attempt"


class _RowStoreError(Exception):
    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} failed: {describe_store_error(cause)}")


def is_unique_violation(exc: BaseException) -> bool:
    """
    Recognize a unique-constraint violation across drivers.
    """

    if not isinstance(exc, IntegrityError):
        return False
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNIQUE_VIOLATION_SQLSTATE:
        return True
    return "unique" in str(orig or exc).lower()


def is_transient_error(exc: BaseException) -> bool:
    return isinstance(exc, _TRANSIENT_ERRORS)


def describe_store_error(exc: BaseException) -> str:
    orig = getattr(exc, "orig", None)
    text = str(orig or exc).strip()
    message = text.splitlines()[0] if text else type(exc).__name__
    diag = getattr(orig, "diag", None)
    detail = getattr(diag, "message_detail", None)
    if detail:
        return f"{message} ({detail})"
    return message


class BatchImportOrchestrator:
    """
    Run one bulk import: optional AI correction, then per-row persistence.

    Rows and batches are processed sequentially. ``is_cancelled`` is polled
    before every batch and every row.
    """

    def __init__(
        self,
        *,
        subjects: SubjectRepository,
        obligations: ObligationRepository,
        session: Session | None = None,
        validator: RecordValidator | None = None,
        ai_agent: AICorrectionAgent | None = None,
        settings: ImportSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._subjects = subjects
        self._obligations = obligations
        self._session = session
        self._settings = settings or get_import_settings()
        self._validator = validator or RecordValidator(ValidationPolicy.from_settings(imports=self._settings))
        self._ai_agent = ai_agent
        self._sleep = sleep
        self._clock = clock

    def import_records(
        self,
        records: Sequence[FlatRecord],
        options: ImportOptions,
    ) -> ImportResult:
        """
        Import mapped records for one organization.

        Raises:
            ImportRequestError: the call itself is invalid; nothing is written.
        """

        organization_id, counterparty_id, batch_size = self._check_request(records, options)
        started = self._clock()
        working = [dict(record) for record in records]

        log_event(
            logger,
            logging.INFO,
            "import_run_started",
            organization_id=organization_id,
            rows=len(working),
            batch_size=batch_size,
            use_ai=options.use_ai,
        )

        ai_result: CorrectionResult | None = None
        if options.use_ai:
            ai_result = self._run_ai_correction(working)
            if ai_result is not None:
                working = [dict(record) for record in ai_result.records]

        attempt = ImportAttempt.FIRST_ATTEMPT
        first_result: ImportResult | None = None
        while True:
            run_options = options if attempt == ImportAttempt.FIRST_ATTEMPT else replace(options, use_ai=False)
            run = self._run_batches(
                working,
                run_options,
                organization_id=organization_id,
                counterparty_id=counterparty_id,
                batch_size=batch_size,
            )

            if attempt == ImportAttempt.FIRST_ATTEMPT:
                first_result = run
                if self._should_retry_with_ai_data(run, ai_result):
                    logger.warning(
                        "No rows imported with AI processing; retrying once with AI-corrected data and AI off"
                    )
                    attempt = ImportAttempt.FALLBACK_ATTEMPT
                    continue
                result = run
            elif run.successful > 0:
                run.retry_with_ai_data = True
                result = run
            else:
                result = first_result
            break

        result.ai_processing = ai_result
        result.duration = round(self._clock() - started, 3)

        log_event(
            logger,
            logging.INFO,
            "import_run_completed",
            organization_id=organization_id,
            attempt=attempt,
            total_rows=result.total_rows,
            processed=result.processed,
            successful=result.successful,
            failed=result.failed,
            subjects_created=result.subjects_created,
            obligations_created=result.obligations_created,
            retry_with_ai_data=result.retry_with_ai_data,
            cancelled=result.cancelled,
            duration=result.duration,
        )
        return result

    # ------------------------------------------------------------------
    # Request checks
    # ------------------------------------------------------------------

    def _check_request(
        self,
        records: Sequence[FlatRecord],
        options: ImportOptions,
    ) -> tuple[uuid.UUID, uuid.UUID | None, int]:
        if options.organization_id in (None, ""):
            raise ImportRequestError("organization_id is required.")
        organization_id = _coerce_uuid(options.organization_id, "organization_id")
        counterparty_id = (
            _coerce_uuid(options.counterparty_id, "counterparty_id")
            if options.counterparty_id not in (None, "")
            else None
        )

        if not records:
            raise ImportRequestError("No records to import.")
        if len(records) > self._settings.max_rows:
            raise ImportRequestError(
                f"Too many records: {len(records)} (maximum {self._settings.max_rows})."
            )

        batch_size = options.batch_size if options.batch_size is not None else self._settings.batch_size
        if batch_size < 1:
            raise ImportRequestError("batch_size must be at least 1.")
        return organization_id, counterparty_id, batch_size

    def _run_ai_correction(self, records: list[FlatRecord]) -> CorrectionResult | None:
        if self._ai_agent is None:
            logger.warning("AI processing requested but no correction agent is configured")
            return None
        try:
            return self._ai_agent.correct(records)
        except Exception as exc:  # noqa: BLE001
            logger.warning("AI correction failed; importing original records: %s", exc)
            return None

    @staticmethod
    def _should_retry_with_ai_data(run: ImportResult, ai_result: CorrectionResult | None) -> bool:
        return (
            run.successful == 0
            and not run.cancelled
            and ai_result is not None
            and ai_result.ai_ran
        )

    # ------------------------------------------------------------------
    # Batch loop
    # ------------------------------------------------------------------

    def _run_batches(
        self,
        records: list[FlatRecord],
        options: ImportOptions,
        *,
        organization_id: uuid.UUID,
        counterparty_id: uuid.UUID | None,
        batch_size: int,
    ) -> ImportResult:
        result = ImportResult(total_rows=len(records))
        total_batches = (len(records) + batch_size - 1) // batch_size

        for batch_index in range(total_batches):
            if self._cancelled(options):
                result.cancelled = True
                break

            start = batch_index * batch_size
            chunk = records[start : start + batch_size]
            batch = BatchResult(
                batch_number=batch_index + 1,
                total_batches=total_batches,
                size=len(chunk),
            )

            for offset, record in enumerate(chunk):
                if self._cancelled(options):
                    result.cancelled = True
                    break
                self._process_row(
                    record,
                    row_number=start + offset + 1,
                    options=options,
                    organization_id=organization_id,
                    counterparty_id=counterparty_id,
                    batch=batch,
                    result=result,
                )
                self._notify(
                    options.on_progress,
                    {
                        "processed": result.processed,
                        "total": result.total_rows,
                        "successful": result.successful,
                        "failed": result.failed,
                        "current_row": start + offset + 1,
                        "batch_number": batch.batch_number,
                        "total_batches": total_batches,
                    },
                )

            result.batches.append(batch)
            log_event(logger, logging.INFO, "import_batch_completed", **batch.as_progress())
            self._notify(options.on_batch_complete, batch.as_progress())

            if result.cancelled:
                break
            if batch.batch_number < total_batches and self._settings.batch_pause_seconds > 0:
                self._sleep(self._settings.batch_pause_seconds)

        if result.cancelled:
            logger.info("Import cancelled after %d of %d rows", result.processed, result.total_rows)
        return result

    def _process_row(
        self,
        record: FlatRecord,
        *,
        row_number: int,
        options: ImportOptions,
        organization_id: uuid.UUID,
        counterparty_id: uuid.UUID | None,
        batch: BatchResult,
        result: ImportResult,
    ) -> None:
        batch.processed += 1
        result.processed += 1

        validation = self._validator.validate(record)
        if validation.warnings:
            result.warnings.append(RowWarning(row=row_number, warnings=list(validation.warnings)))

        if not validation.is_valid:
            self._fail_row(batch, result, row_number, validation.errors, record)
            if self._settings.log_validation_errors:
                logger.warning("Row %d failed validation: %s", row_number, "; ".join(validation.errors))
            return

        normalized = validation.normalized_record
        try:
            subject, created = self._with_retry("subject", lambda: self._find_or_create_subject(normalized))
            if created:
                batch.subjects_created += 1
                result.subjects_created += 1
            self._with_retry(
                "obligation",
                lambda: self._create_obligation(normalized, subject.id, organization_id, counterparty_id),
            )
        except _RowStoreError as exc:
            logger.warning("Row %d could not be stored: %s", row_number, exc)
            self._fail_row(batch, result, row_number, [str(exc)], record)
            return

        batch.obligations_created += 1
        result.obligations_created += 1
        batch.successful += 1
        result.successful += 1

    @staticmethod
    def _fail_row(
        batch: BatchResult,
        result: ImportResult,
        row_number: int,
        errors: list[str],
        record: FlatRecord,
    ) -> None:
        batch.failed += 1
        result.failed += 1
        original = {key: value for key, value in record.items() if not is_metadata_key(key)}
        result.errors.append(RowError(row=row_number, errors=list(errors), original_data=original))

    # ------------------------------------------------------------------
    # Store steps
    # ------------------------------------------------------------------

    def _find_or_create_subject(self, record: FlatRecord) -> tuple[Any, bool]:
        identifier = record["identifier"]
        existing = self._subjects.get_by_identifier(identifier)
        if existing is not None:
            self._subjects.update_contact(
                existing,
                full_name=record.get("full_name"),
                contact_email=record.get("contact_email"),
                contact_phone=record.get("contact_phone"),
            )
            self._commit()
            return existing, False

        try:
            subject = self._subjects.create(
                identifier=identifier,
                full_name=record["full_name"],
                contact_email=record.get("contact_email"),
                contact_phone=record.get("contact_phone"),
            )
        except IntegrityError as exc:
            if not is_unique_violation(exc):
                raise
            logger.info("Subject %s created concurrently; re-fetching", identifier)
            subject = self._subjects.get_by_identifier(identifier)
            if subject is None:
                raise
            self._commit()
            return subject, False

        self._commit()
        return subject, True

    def _create_obligation(
        self,
        record: FlatRecord,
        subject_id: uuid.UUID,
        organization_id: uuid.UUID,
        counterparty_id: uuid.UUID | None,
    ) -> uuid.UUID:
        amount = Decimal(str(record["amount"]))
        counterparty_name = record.get("counterparty_name") or DEFAULT_COUNTERPARTY_NAME
        values: dict[str, Any] = {
            "subject_id": subject_id,
            "organization_id": organization_id,
            "counterparty_id": counterparty_id,
            "original_amount": amount,
            "current_amount": amount,
            "due_date": date.fromisoformat(record["due_date"]),
            "status": ObligationStatus.ACTIVE,
        }
        for name in _OBLIGATION_FIELDS:
            values[name] = record.get(name)
        if values["interest_rate"] is not None:
            values["interest_rate"] = Decimal(str(values["interest_rate"]))
        values["counterparty_name"] = counterparty_name
        if not values["description"]:
            values["description"] = DEFAULT_DESCRIPTION_TEMPLATE.format(counterparty_name=counterparty_name)

        # Fields outside the canonical set land only in columns the live table has.
        for key, value in record.items():
            if (
                is_metadata_key(key)
                or key in CANONICAL_FIELDS
                or key in values
                or key in _PROTECTED_OBLIGATION_COLUMNS
            ):
                continue
            values[key] = value

        obligation_id = self._obligations.create(values)
        self._commit()
        return obligation_id

    def _with_retry(self, stage: str, operation: Callable[[], T]) -> T:
        attempts = max(1, self._settings.max_retries)
        attempt = 0
        while True:
            attempt += 1
            try:
                return operation()
            except (SQLAlchemyError, OSError) as exc:
                self._rollback()
                if not is_transient_error(exc) or attempt >= attempts:
                    raise _RowStoreError(stage, exc) from exc
                logger.warning(
                    "Transient store error on %s (attempt %d/%d): %s",
                    stage,
                    attempt,
                    attempts,
                    describe_store_error(exc),
                )
                if self._settings.retry_delay_seconds > 0:
                    self._sleep(self._settings.retry_delay_seconds)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _commit(self) -> None:
        if self._session is not None:
            self._session.commit()

    def _rollback(self) -> None:
        if self._session is not None:
            self._session.rollback()

    @staticmethod
    def _cancelled(options: ImportOptions) -> bool:
        return bool(options.is_cancelled and options.is_cancelled())

    @staticmethod
    def _notify(callback: Callable[[dict[str, int]], None] | None, payload: dict[str, int]) -> None:
        if callback is None:
            return
        try:
            callback(payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Import progress callback failed: %s", exc)


def _coerce_uuid(value: Any, name: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise ImportRequestError(f"{name} is not a valid UUID: {value!s}.") from exc


def build_bulk_import_orchestrator(
    db: Session,
    *,
    admin_db: Session | None = None,
    ai_agent: AICorrectionAgent | None = None,
) -> BatchImportOrchestrator:
    """
    Wire repositories over the elevated session when one is available.
    """

    session = admin_db if admin_db is not None else db
    return BatchImportOrchestrator(
        subjects=SubjectRepository(session),
        obligations=ObligationRepository(session),
        session=session,
        ai_agent=ai_agent,
    )
