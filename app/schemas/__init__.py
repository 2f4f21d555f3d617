"""
app/schemas package marker.
"""

from app.schemas.extraction import (
    AnalyzeRequest,
    AnalyzeResponse,
    CreateExtractionTaskRequest,
    ExtractionOptionsModel,
    ExtractionTaskListResponse,
    ExtractionTaskResponse,
    ScrapedRecordPageResponse,
    ScrapedRecordResponse,
    SelectorSetModel,
    TaskLogListResponse,
    TaskLogResponse,
)

__all__ = [
    "AnalyzeRequest",
    "AnalyzeResponse",
    "CreateExtractionTaskRequest",
    "ExtractionOptionsModel",
    "ExtractionTaskListResponse",
    "ExtractionTaskResponse",
    "ScrapedRecordPageResponse",
    "ScrapedRecordResponse",
    "SelectorSetModel",
    "TaskLogListResponse",
    "TaskLogResponse",
]
