"""
Storage layer exports.
"""

from app.extraction.storage.base import ExtractionStore
from app.extraction.storage.memory_storage import InMemoryExtractionStore
from app.extraction.storage.sqlalchemy_storage import SQLAlchemyExtractionStore

__all__ = ["ExtractionStore", "InMemoryExtractionStore", "SQLAlchemyExtractionStore"]
