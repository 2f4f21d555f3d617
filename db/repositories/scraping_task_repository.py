"""
Repositories for extraction task lifecycle, records, logs and analyses.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.orm import Session

from db.models.scraped_item import ScrapedItem
from db.models.scraping_task import ScrapingTask
from db.models.task_log import TaskLog
from db.models.website_analysis import WebsiteAnalysis


class ScrapingTaskRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_task(
        self,
        *,
        name: str,
        url: str,
        status: str,
        selectors: dict[str, Any] | None,
        options: dict[str, Any],
    ) -> ScrapingTask:
        task = ScrapingTask(
            name=name,
            url=url,
            status=status,
            selectors=selectors,
            options=options,
            progress=0,
            total_items=0,
            scraped_items=0,
        )
        self._session.add(task)
        self._session.flush()
        self._session.refresh(task)
        return task

    def get_task(self, task_id: uuid.UUID, *, for_update: bool = False) -> ScrapingTask | None:
        if not for_update:
            return self._session.get(ScrapingTask, task_id)
        stmt = select(ScrapingTask).where(ScrapingTask.id == task_id).with_for_update()
        return self._session.scalars(stmt).first()

    def list_tasks(self, *, limit: int = 50) -> list[ScrapingTask]:
        stmt: Select[tuple[ScrapingTask]] = (
            select(ScrapingTask).order_by(ScrapingTask.created_at.desc()).limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def increment_scraped_items(self, task_id: uuid.UUID) -> None:
        self._session.execute(
            update(ScrapingTask)
            .where(ScrapingTask.id == task_id)
            .values(
                scraped_items=ScrapingTask.scraped_items + 1,
                updated_at=datetime.now(timezone.utc),
            )
        )


class ScrapedItemRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def add(self, *, task_id: uuid.UUID, data: dict[str, str], url: str) -> ScrapedItem:
        item = ScrapedItem(
            task_id=task_id,
            data=data,
            url=url,
            scraped_at=datetime.now(timezone.utc),
        )
        self._session.add(item)
        self._session.flush()
        return item

    def list_for_task(
        self,
        task_id: uuid.UUID,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ScrapedItem]:
        stmt = (
            select(ScrapedItem)
            .where(ScrapedItem.task_id == task_id)
            .order_by(ScrapedItem.scraped_at.asc(), ScrapedItem.id.asc())
            .offset(max(0, offset))
        )
        if limit is not None:
            stmt = stmt.limit(max(0, limit))
        return list(self._session.scalars(stmt).all())

    def count_for_task(self, task_id: uuid.UUID) -> int:
        stmt = select(func.count()).select_from(ScrapedItem).where(ScrapedItem.task_id == task_id)
        return int(self._session.scalar(stmt) or 0)


class TaskLogRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def add(
        self,
        *,
        task_id: uuid.UUID,
        level: str,
        message: str,
        metadata: dict[str, Any] | None,
    ) -> TaskLog:
        entry = TaskLog(
            task_id=task_id,
            level=level,
            message=message,
            log_metadata=metadata,
            created_at=datetime.now(timezone.utc),
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    def list_for_task(self, task_id: uuid.UUID) -> list[TaskLog]:
        stmt = (
            select(TaskLog)
            .where(TaskLog.task_id == task_id)
            .order_by(TaskLog.created_at.asc(), TaskLog.id.asc())
        )
        return list(self._session.scalars(stmt).all())


class WebsiteAnalysisRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def add(self, **fields: Any) -> WebsiteAnalysis:
        analysis = WebsiteAnalysis(created_at=datetime.now(timezone.utc), **fields)
        self._session.add(analysis)
        self._session.flush()
        return analysis

    def latest_since(self, url: str, *, cutoff: datetime) -> WebsiteAnalysis | None:
        stmt = (
            select(WebsiteAnalysis)
            .where(WebsiteAnalysis.url == url, WebsiteAnalysis.created_at >= cutoff)
            .order_by(WebsiteAnalysis.created_at.desc())
            .limit(1)
        )
        return self._session.scalars(stmt).first()
