"""
app/domain package marker.
"""

from app.domain.extraction import (
    ExtractionTask,
    LogLevel,
    ProgressStatus,
    ScrapedRecord,
    TaskLogEntry,
    TaskStatus,
    WebsiteAnalysisRecord,
)

__all__ = [
    "ExtractionTask",
    "LogLevel",
    "ProgressStatus",
    "ScrapedRecord",
    "TaskLogEntry",
    "TaskStatus",
    "WebsiteAnalysisRecord",
]
