"""
app/domain/extraction.py

Domain models for extraction tasks and their outputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID


class TaskStatus:
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    ALL = (PENDING, RUNNING, PAUSED, COMPLETED, FAILED, CANCELLED)
    TERMINAL = frozenset({COMPLETED, FAILED, CANCELLED})


class ProgressStatus:
    """
    Statuses carried by progress events: every task status plus the
    analysis phase, which is never stored on a task.
    """

    ANALYZING = "analyzing"

    ALL = (ANALYZING, *TaskStatus.ALL)


class LogLevel:
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    ALL = (INFO, WARNING, ERROR)


@dataclass
class ExtractionTask:
    """
    One submitted extraction job and its live counters.
    """

    id: UUID
    name: str
    url: str
    status: str
    created_at: datetime
    updated_at: datetime
    selectors: dict[str, Any] | None = None
    strategy: str | None = None
    options: dict[str, Any] = field(default_factory=dict)
    progress: int = 0
    total_items: int = 0
    scraped_items: int = 0
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TaskStatus.TERMINAL


@dataclass(frozen=True)
class ScrapedRecord:
    id: UUID
    task_id: UUID
    data: dict[str, str]
    url: str
    scraped_at: datetime


@dataclass(frozen=True)
class TaskLogEntry:
    id: UUID
    task_id: UUID
    level: str
    message: str
    metadata: dict[str, Any]
    created_at: datetime


@dataclass(frozen=True)
class WebsiteAnalysisRecord:
    """
    Cached analysis result for a URL, reused by later submissions.
    """

    id: UUID
    url: str
    selectors: dict[str, Any]
    strategy: str
    confidence: float
    source: str
    structure: dict[str, Any]
    recommendations: list[str]
    created_at: datetime
