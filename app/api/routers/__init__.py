"""
app/api/routers package marker.
"""

from app.api.routers.bulk_import import router as bulk_import_router
from app.api.routers.matching import router as matching_router

__all__ = [
    "bulk_import_router",
    "matching_router",
]
