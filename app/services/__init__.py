"""
app/services package marker.
"""

from app.services.ai_correction_service import AICorrectionAgent, build_ai_correction_agent
from app.services.bulk_import_service import (
    BatchImportOrchestrator,
    ImportRequestError,
    build_bulk_import_orchestrator,
)
from app.services.file_ingestion_service import FileIngestor, ImportInputError, get_file_ingestor
from app.services.matching_service import MatchingService, SubjectNotFoundError, build_matching_service

__all__ = [
    "AICorrectionAgent",
    "build_ai_correction_agent",
    "BatchImportOrchestrator",
    "ImportRequestError",
    "build_bulk_import_orchestrator",
    "FileIngestor",
    "ImportInputError",
    "get_file_ingestor",
    "MatchingService",
    "SubjectNotFoundError",
    "build_matching_service",
]
