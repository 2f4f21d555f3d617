"""
SQLAlchemy-backed storage implementation for extraction state.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

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
from db.models.scraped_item import ScrapedItem
from db.models.scraping_task import ScrapingTask
from db.models.task_log import TaskLog
from db.models.website_analysis import WebsiteAnalysis
from db.repositories.scraping_task_repository import (
    ScrapedItemRepository,
    ScrapingTaskRepository,
    TaskLogRepository,
    WebsiteAnalysisRepository,
)


class SQLAlchemyExtractionStore(ExtractionStore):
    """
    Persist extraction state through repositories, one transaction per call.
    """

    def __init__(self, *, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            raise
        finally:
            session.close()

    def create_task(
        self,
        *,
        name: str,
        url: str,
        selectors: dict[str, Any] | None,
        options: dict[str, Any],
    ) -> ExtractionTask:
        with self._session() as session:
            row = ScrapingTaskRepository(session).create_task(
                name=name,
                url=url,
                status=TaskStatus.PENDING,
                selectors=selectors,
                options=options,
            )
            return _to_task(row)

    def get_task(self, task_id: UUID) -> ExtractionTask:
        with self._session() as session:
            return _to_task(self._require_task(session, task_id))

    def list_tasks(self, *, limit: int = 50) -> list[ExtractionTask]:
        with self._session() as session:
            return [_to_task(row) for row in ScrapingTaskRepository(session).list_tasks(limit=limit)]

    def update_task(self, task_id: UUID, **changes: Any) -> ExtractionTask:
        validate_task_changes(changes)
        with self._session() as session:
            row = self._require_task(session, task_id, for_update=True)
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = datetime.now(timezone.utc)
            session.flush()
            return _to_task(row)

    def transition_task(
        self,
        task_id: UUID,
        target: str,
        *,
        expected_status: str | None = None,
        **changes: Any,
    ) -> ExtractionTask:
        validate_task_changes(changes)
        with self._session() as session:
            row = self._require_task(session, task_id, for_update=True)
            if expected_status is not None and row.status != expected_status:
                raise InvalidTaskTransitionError(task_id=task_id, current=row.status, target=target)
            ensure_transition(task_id=task_id, current=row.status, target=target)
            now = datetime.now(timezone.utc)
            if target == TaskStatus.RUNNING and row.started_at is None:
                changes.setdefault("started_at", now)
            if target in TERMINAL_TIMESTAMP_STATUSES:
                changes.setdefault("completed_at", now)
            for key, value in changes.items():
                setattr(row, key, value)
            row.status = target
            row.updated_at = now
            session.flush()
            return _to_task(row)

    def create_record(self, task_id: UUID, *, data: dict[str, str], url: str) -> ScrapedRecord:
        with self._session() as session:
            self._require_task(session, task_id)
            item = ScrapedItemRepository(session).add(task_id=task_id, data=data, url=url)
            ScrapingTaskRepository(session).increment_scraped_items(task_id)
            return _to_record(item)

    def list_records(
        self,
        task_id: UUID,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ScrapedRecord]:
        with self._session() as session:
            self._require_task(session, task_id)
            rows = ScrapedItemRepository(session).list_for_task(task_id, limit=limit, offset=offset)
            return [_to_record(row) for row in rows]

    def count_records(self, task_id: UUID) -> int:
        with self._session() as session:
            self._require_task(session, task_id)
            return ScrapedItemRepository(session).count_for_task(task_id)

    def append_log(
        self,
        task_id: UUID,
        *,
        level: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> TaskLogEntry:
        with self._session() as session:
            entry = TaskLogRepository(session).add(
                task_id=task_id,
                level=level,
                message=message,
                metadata=metadata,
            )
            return _to_log(entry)

    def list_logs(self, task_id: UUID) -> list[TaskLogEntry]:
        with self._session() as session:
            self._require_task(session, task_id)
            return [_to_log(row) for row in TaskLogRepository(session).list_for_task(task_id)]

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
        with self._session() as session:
            row = WebsiteAnalysisRepository(session).add(
                url=url,
                selectors=selectors,
                strategy=strategy,
                confidence=confidence,
                source=source,
                structure=structure,
                recommendations=recommendations,
            )
            return _to_analysis(row)

    def get_recent_analysis(
        self,
        url: str,
        *,
        max_age: timedelta,
    ) -> WebsiteAnalysisRecord | None:
        cutoff = datetime.now(timezone.utc) - max_age
        with self._session() as session:
            row = WebsiteAnalysisRepository(session).latest_since(url, cutoff=cutoff)
            return _to_analysis(row) if row is not None else None

    @staticmethod
    def _require_task(
        session: Session,
        task_id: UUID,
        *,
        for_update: bool = False,
    ) -> ScrapingTask:
        row = ScrapingTaskRepository(session).get_task(task_id, for_update=for_update)
        if row is None:
            raise TaskNotFoundError(task_id)
        return row


def _to_task(row: ScrapingTask) -> ExtractionTask:
    return ExtractionTask(
        id=row.id,
        name=row.name,
        url=row.url,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        selectors=row.selectors,
        strategy=row.strategy,
        options=dict(row.options or {}),
        progress=row.progress,
        total_items=row.total_items,
        scraped_items=row.scraped_items,
        error_message=row.error_message,
        started_at=row.started_at,
        completed_at=row.completed_at,
    )


def _to_record(row: ScrapedItem) -> ScrapedRecord:
    return ScrapedRecord(
        id=row.id,
        task_id=row.task_id,
        data=dict(row.data or {}),
        url=row.url,
        scraped_at=row.scraped_at,
    )


def _to_log(row: TaskLog) -> TaskLogEntry:
    return TaskLogEntry(
        id=row.id,
        task_id=row.task_id,
        level=row.level,
        message=row.message,
        metadata=dict(row.log_metadata or {}),
        created_at=row.created_at,
    )


def _to_analysis(row: WebsiteAnalysis) -> WebsiteAnalysisRecord:
    return WebsiteAnalysisRecord(
        id=row.id,
        url=row.url,
        selectors=dict(row.selectors or {}),
        strategy=row.strategy,
        confidence=row.confidence,
        source=row.source,
        structure=dict(row.structure or {}),
        recommendations=list(row.recommendations or []),
        created_at=row.created_at,
    )
