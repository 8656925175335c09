"""
app/mappers package marker.
"""

from app.mappers.field_mapper import DEFAULT_FIELD_SYNONYMS, FieldMapper, FieldMapping, get_field_mapper

__all__ = [
    "DEFAULT_FIELD_SYNONYMS",
    "FieldMapper",
    "FieldMapping",
    "get_field_mapper",
]
