"""
app/api/dependencies.py

Shared FastAPI dependencies for request validation.
"""

from __future__ import annotations

from fastapi import Depends, File, HTTPException, UploadFile, status

from app.services.file_ingestion_service import FileIngestor, get_file_ingestor


def get_import_upload(
    file: UploadFile = File(...),
    ingestor: FileIngestor = Depends(get_file_ingestor),
) -> UploadFile:
    """
    Reject uploads whose filename, MIME type, or declared size cannot be imported.
    """

    size = file.size if file.size is not None else 1
    check = ingestor.validate_upload(file.filename, file.content_type, size)
    if not check.is_valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Upload rejected.", "errors": check.errors},
        )
    return file
