"""
app/api/routers package marker.
"""

from app.api.routers.extraction import router as extraction_router

__all__ = [
    "extraction_router",
]
