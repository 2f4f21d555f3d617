"""
Thread-safe in-process storage used by the CLI, tests and single-node runs.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

from app.domain.extraction import (
    ExtractionTask,
    ScrapedRecord,
    TaskLogEntry,
    TaskStatus,
    WebsiteAnalysisRecord,
)
from app.extraction.errors import InvalidTaskTransitionError, TaskNotFoundError
from app.extraction.state import ensure_transition
from app.extraction.storage.base import (
    TERMINAL_TIMESTAMP_STATUSES,
    ExtractionStore,
    validate_task_changes,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryExtractionStore(ExtractionStore):
    """
    Dictionary-backed store. Returned objects are copies.
    """

    def __init__(
        self,
        *,
        analysis_max_age: timedelta | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._lock = threading.RLock()
        self._analysis_max_age = analysis_max_age
        self._clock = clock or _utc_now
        self._tasks: dict[UUID, ExtractionTask] = {}
        self._records: dict[UUID, list[ScrapedRecord]] = {}
        self._logs: dict[UUID, list[TaskLogEntry]] = {}
        self._analyses: list[WebsiteAnalysisRecord] = []

    def create_task(
        self,
        *,
        name: str,
        url: str,
        selectors: dict[str, Any] | None,
        options: dict[str, Any],
    ) -> ExtractionTask:
        now = _utc_now()
        task = ExtractionTask(
            id=uuid4(),
            name=name,
            url=url,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
            selectors=copy.deepcopy(selectors),
            options=copy.deepcopy(options),
        )
        with self._lock:
            self._tasks[task.id] = task
            self._records[task.id] = []
            self._logs[task.id] = []
            return copy.deepcopy(task)

    def get_task(self, task_id: UUID) -> ExtractionTask:
        with self._lock:
            return copy.deepcopy(self._require_task(task_id))

    def list_tasks(self, *, limit: int = 50) -> list[ExtractionTask]:
        with self._lock:
            tasks = sorted(self._tasks.values(), key=lambda task: task.created_at, reverse=True)
            return [copy.deepcopy(task) for task in tasks[: max(0, limit)]]

    def update_task(self, task_id: UUID, **changes: Any) -> ExtractionTask:
        validate_task_changes(changes)
        with self._lock:
            task = self._require_task(task_id)
            updated = replace(task, **copy.deepcopy(changes), updated_at=_utc_now())
            self._tasks[task_id] = updated
            return copy.deepcopy(updated)

    def transition_task(
        self,
        task_id: UUID,
        target: str,
        *,
        expected_status: str | None = None,
        **changes: Any,
    ) -> ExtractionTask:
        validate_task_changes(changes)
        with self._lock:
            task = self._require_task(task_id)
            if expected_status is not None and task.status != expected_status:
                raise InvalidTaskTransitionError(task_id=task_id, current=task.status, target=target)
            ensure_transition(task_id=task_id, current=task.status, target=target)
            now = _utc_now()
            if target == TaskStatus.RUNNING and task.started_at is None:
                changes.setdefault("started_at", now)
            if target in TERMINAL_TIMESTAMP_STATUSES:
                changes.setdefault("completed_at", now)
            updated = replace(task, **copy.deepcopy(changes), status=target, updated_at=now)
            self._tasks[task_id] = updated
            return copy.deepcopy(updated)

    def create_record(self, task_id: UUID, *, data: dict[str, str], url: str) -> ScrapedRecord:
        record = ScrapedRecord(
            id=uuid4(),
            task_id=task_id,
            data=dict(data),
            url=url,
            scraped_at=_utc_now(),
        )
        with self._lock:
            task = self._require_task(task_id)
            self._records[task_id].append(record)
            self._tasks[task_id] = replace(
                task,
                scraped_items=task.scraped_items + 1,
                updated_at=record.scraped_at,
            )
        return record

    def list_records(
        self,
        task_id: UUID,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ScrapedRecord]:
        with self._lock:
            self._require_task(task_id)
            records = self._records[task_id][max(0, offset) :]
            return list(records if limit is None else records[: max(0, limit)])

    def count_records(self, task_id: UUID) -> int:
        with self._lock:
            self._require_task(task_id)
            return len(self._records[task_id])

    def append_log(
        self,
        task_id: UUID,
        *,
        level: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> TaskLogEntry:
        entry = TaskLogEntry(
            id=uuid4(),
            task_id=task_id,
            level=level,
            message=message,
            metadata=copy.deepcopy(metadata or {}),
            created_at=_utc_now(),
        )
        with self._lock:
            self._require_task(task_id)
            self._logs[task_id].append(entry)
        return entry

    def list_logs(self, task_id: UUID) -> list[TaskLogEntry]:
        with self._lock:
            self._require_task(task_id)
            return list(self._logs[task_id])

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
        record = WebsiteAnalysisRecord(
            id=uuid4(),
            url=url,
            selectors=copy.deepcopy(selectors),
            strategy=strategy,
            confidence=confidence,
            source=source,
            structure=copy.deepcopy(structure),
            recommendations=list(recommendations),
            created_at=self._clock(),
        )
        with self._lock:
            self._analyses = [
                existing
                for existing in self._analyses
                if existing.url != url and not self._analysis_expired(existing, record.created_at)
            ]
            self._analyses.append(record)
        return record

    def get_recent_analysis(
        self,
        url: str,
        *,
        max_age: timedelta,
    ) -> WebsiteAnalysisRecord | None:
        cutoff = self._clock() - max_age
        with self._lock:
            for record in reversed(self._analyses):
                if record.url == url and record.created_at >= cutoff:
                    return record
        return None

    def _analysis_expired(self, record: WebsiteAnalysisRecord, now: datetime) -> bool:
        if self._analysis_max_age is None:
            return False
        return record.created_at < now - self._analysis_max_age

    def _require_task(self, task_id: UUID) -> ExtractionTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task
