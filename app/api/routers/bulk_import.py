"""
app/api/routers/bulk_import.py

Bulk import HTTP endpoints: preview an upload, then import it.
"""

from __future__ import annotations

import json
import logging
import uuid

from fastapi import APIRouter, Depends, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_import_upload
from app.domain.import_records import ImportOptions
from app.mappers.field_mapper import FieldMapper, get_field_mapper
from app.schemas.bulk_import import ImportPreviewResponse, ImportResultResponse
from app.services.ai_correction_service import build_ai_correction_agent
from app.services.bulk_import_service import ImportRequestError, build_bulk_import_orchestrator
from app.services.file_ingestion_service import (
    FileIngestor,
    ImportInputError,
    ParsedFile,
    get_file_ingestor,
)
from app.validators.mapping_validator import FieldMappingError
from db.session import get_admin_db, get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/imports", tags=["imports"])

_PREVIEW_SAMPLE_ROWS = 5


def _parse_upload(file: UploadFile, ingestor: FileIngestor) -> ParsedFile:
    try:
        return ingestor.parse(file.file.read(), file.content_type, file.filename)
    except ImportInputError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": exc.code, "message": str(exc)},
        ) from exc
    finally:
        file.file.close()


def _parse_overrides(raw: str | None) -> dict[str, str | None]:
    if raw is None or not raw.strip():
        return {}
    try:
        overrides = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"mapping must be a JSON object: {exc.msg}",
        ) from exc
    if not isinstance(overrides, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="mapping must be a JSON object of canonical field -> column.",
        )
    return overrides


@router.post("/preview", response_model=ImportPreviewResponse)
def preview_import(
    file: UploadFile = Depends(get_import_upload),
    ingestor: FileIngestor = Depends(get_file_ingestor),
    mapper: FieldMapper = Depends(get_field_mapper),
) -> ImportPreviewResponse:
    """
    Parse an upload and propose a column mapping without writing anything.
    """

    parsed = _parse_upload(file, ingestor)
    mapping = mapper.infer_mapping(parsed.headers)
    return ImportPreviewResponse(
        file_kind=parsed.file_kind,
        headers=list(parsed.headers),
        row_count=len(parsed.records),
        mapping=mapping,
        unmapped_fields=mapper.unmapped_fields(mapping),
        missing_required_fields=mapper.missing_required_fields(mapping),
        sample=parsed.records[:_PREVIEW_SAMPLE_ROWS],
        warnings=ingestor.validate_upload(file.filename, file.content_type, file.size or 1).warnings,
    )


@router.post("", response_model=ImportResultResponse)
def run_import(
    file: UploadFile = Depends(get_import_upload),
    organization_id: uuid.UUID = Form(...),
    counterparty_id: uuid.UUID | None = Form(default=None),
    batch_size: int | None = Form(default=None, ge=1),
    use_ai: bool = Form(default=False),
    mapping: str | None = Form(default=None, description="JSON object of canonical field -> column overrides"),
    db: Session = Depends(get_db),
    admin_db: Session | None = Depends(get_admin_db),
    ingestor: FileIngestor = Depends(get_file_ingestor),
    mapper: FieldMapper = Depends(get_field_mapper),
) -> ImportResultResponse:
    """
    Parse, map, and import one upload for an organization.
    """

    parsed = _parse_upload(file, ingestor)
    try:
        field_mapping = mapper.apply_overrides(
            mapper.infer_mapping(parsed.headers),
            _parse_overrides(mapping),
            parsed.headers,
        )
    except FieldMappingError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.to_dict(),
        ) from exc

    missing = mapper.missing_required_fields(field_mapping)
    if missing:
        logger.warning("Importing with unmapped required fields: %s", missing)

    records = mapper.map_records(parsed.records, field_mapping)
    ai_agent = build_ai_correction_agent(db) if use_ai else None
    orchestrator = build_bulk_import_orchestrator(db, admin_db=admin_db, ai_agent=ai_agent)

    try:
        result = orchestrator.import_records(
            records,
            ImportOptions(
                organization_id=organization_id,
                counterparty_id=counterparty_id,
                batch_size=batch_size,
                use_ai=use_ai,
            ),
        )
    except ImportRequestError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    return ImportResultResponse.from_result(result)
