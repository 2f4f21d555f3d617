"""
Storage layer interface for extraction tasks, records, logs and analyses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any
from uuid import UUID

from app.domain.extraction import (
    ExtractionTask,
    ScrapedRecord,
    TaskLogEntry,
    TaskStatus,
    WebsiteAnalysisRecord,
)


class ExtractionStore(ABC):
    """
    Persistence abstraction used by jobs, the worker and the API.
    """

    @abstractmethod
    def create_task(
        self,
        *,
        name: str,
        url: str,
        selectors: dict[str, Any] | None,
        options: dict[str, Any],
    ) -> ExtractionTask:
        """
        Persist a new task in the pending state.
        """

    @abstractmethod
    def get_task(self, task_id: UUID) -> ExtractionTask:
        """
        Return one task or raise TaskNotFoundError.
        """

    @abstractmethod
    def list_tasks(self, *, limit: int = 50) -> list[ExtractionTask]:
        """
        Return most recent tasks first.
        """

    @abstractmethod
    def update_task(self, task_id: UUID, **changes: Any) -> ExtractionTask:
        """
        Apply field changes that do not touch the status.
        """

    @abstractmethod
    def transition_task(
        self,
        task_id: UUID,
        target: str,
        *,
        expected_status: str | None = None,
        **changes: Any,
    ) -> ExtractionTask:
        """
        Atomically validate and apply a status change plus extra field changes.

        Raises InvalidTaskTransitionError when the move is not allowed, or when
        `expected_status` is given and the current status differs.
        """

    @abstractmethod
    def create_record(self, task_id: UUID, *, data: dict[str, str], url: str) -> ScrapedRecord:
        """
        Persist one record and bump the owning task's scraped_items by one.
        """

    @abstractmethod
    def list_records(
        self,
        task_id: UUID,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ScrapedRecord]:
        """
        Return records in insertion order.
        """

    @abstractmethod
    def count_records(self, task_id: UUID) -> int:
        """
        Return the number of records stored for the task.
        """

    @abstractmethod
    def append_log(
        self,
        task_id: UUID,
        *,
        level: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> TaskLogEntry:
        """
        Append one operator-facing log entry.
        """

    @abstractmethod
    def list_logs(self, task_id: UUID) -> list[TaskLogEntry]:
        """
        Return log entries oldest first.
        """

    @abstractmethod
    def save_analysis(
        self,
        *,
        url: str,
        selectors: dict[str, Any],
        strategy: str,
        confidence: float,
        source: str,
        structure: dict[str, Any],
        recommendations: list[str],
    ) -> WebsiteAnalysisRecord:
        """
        Persist one analysis result for later reuse.
        """

    @abstractmethod
    def get_recent_analysis(
        self,
        url: str,
        *,
        max_age: timedelta,
    ) -> WebsiteAnalysisRecord | None:
        """
        Return the newest analysis for `url` younger than `max_age`, if any.
        """


TERMINAL_TIMESTAMP_STATUSES = frozenset(
    {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED, TaskStatus.PAUSED}
)
MUTABLE_TASK_FIELDS = frozenset(
    {
        "name",
        "selectors",
        "strategy",
        "options",
        "progress",
        "total_items",
        "error_message",
        "started_at",
        "completed_at",
    }
)


def validate_task_changes(changes: dict[str, Any]) -> None:
    """
    Reject updates to fields owned by the store itself.
    """

    unknown = set(changes) - MUTABLE_TASK_FIELDS
    if unknown:
        raise ValueError(f"Unsupported task fields: {sorted(unknown)}")
