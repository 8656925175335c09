"""
app/validators package marker.
"""

from app.validators.mapping_validator import FieldMappingError, MappingErrorDetail, MappingValidator
from app.validators.record_validator import RecordValidator, ValidationPolicy

__all__ = [
    "FieldMappingError",
    "MappingErrorDetail",
    "MappingValidator",
    "RecordValidator",
    "ValidationPolicy",
]
