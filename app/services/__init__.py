"""
app/services package marker.
"""

from app.services.extraction_service import (
    ExtractionService,
    RecordExport,
    build_extraction_store,
    get_extraction_service,
)

__all__ = [
    "ExtractionService",
    "RecordExport",
    "build_extraction_store",
    "get_extraction_service",
]
