"""
app/services/extraction_service.py

Wires settings, storage, analysis and the background worker behind the
task lifecycle API.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from typing import Any
from urllib.parse import urlparse
from uuid import UUID

from app.domain.extraction import ExtractionTask, ScrapedRecord, TaskLogEntry
from app.extraction.analysis import AnalysisOutcome, SiteAnalyzer, build_site_analyzer
from app.extraction.config import ExtractionOptions, ExtractionSettings, get_extraction_settings
from app.extraction.errors import HTTPStatusError
from app.extraction.fetching import AdaptiveFetcher, build_adaptive_fetcher
from app.extraction.job import ExtractionJob, JobOutcome
from app.extraction.logging_utils import log_event
from app.extraction.progress import EventChannel
from app.extraction.state import JobControl
from app.extraction.storage import ExtractionStore, InMemoryExtractionStore, SQLAlchemyExtractionStore
from app.extraction.types import FetchOptions, SelectorSet
from app.extraction.worker import ExtractionWorker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordExport:
    """
    Flattened record data ready for CSV serialisation.
    """

    fields: list[str]
    rows: list[dict[str, Any]] = field(default_factory=list)


def validate_target_url(url: str) -> str:
    cleaned = (url or "").strip()
    parsed = urlparse(cleaned)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"URL must be an absolute http(s) URL, got '{url}'.")
    return cleaned


class ExtractionService:
    """
    Entry point used by the API router and the CLI.
    """

    def __init__(
        self,
        *,
        settings: ExtractionSettings,
        store: ExtractionStore,
        analyzer: SiteAnalyzer | None = None,
        channel: EventChannel | None = None,
        fetcher_factory: Callable[[], AdaptiveFetcher] | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._analyzer = analyzer or build_site_analyzer(settings, store=store)
        self._channel = channel or EventChannel()
        self._fetcher_factory = fetcher_factory or (lambda: build_adaptive_fetcher(settings))
        self._worker = ExtractionWorker(
            store=store,
            channel=self._channel,
            job_factory=self._build_job,
        )

    @property
    def channel(self) -> EventChannel:
        return self._channel

    @property
    def store(self) -> ExtractionStore:
        return self._store

    def start(self) -> None:
        self._worker.start()

    def shutdown(self, *, timeout: float | None = 10.0) -> None:
        self._worker.shutdown(timeout=timeout)

    def wait_idle(self) -> None:
        self._worker.wait_idle()

    def create_task(
        self,
        *,
        url: str,
        name: str | None = None,
        selectors: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> ExtractionTask:
        """
        Validate and persist a pending task without queueing it.

        Raises ValueError on a bad URL or bad options.
        """

        target = validate_target_url(url)
        parsed_options = ExtractionOptions.from_dict(options, settings=self._settings)
        selector_set = SelectorSet.from_dict(selectors)
        return self._store.create_task(
            name=(name or "").strip() or urlparse(target).netloc,
            url=target,
            selectors=None if selector_set.is_empty() else selector_set.to_dict(),
            options=parsed_options.to_dict(),
        )

    def submit_task(
        self,
        *,
        url: str,
        name: str | None = None,
        selectors: dict[str, Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> ExtractionTask:
        task = self.create_task(url=url, name=name, selectors=selectors, options=options)
        self._worker.submit(task.id)
        log_event(logger, logging.INFO, "extraction_task_submitted", task_id=task.id, url=task.url)
        return task

    def run_task(self, task_id: UUID) -> JobOutcome:
        """
        Run a stored task on the calling thread.
        """

        return self._worker.run_now(task_id)

    def get_task(self, task_id: UUID) -> ExtractionTask:
        return self._store.get_task(task_id)

    def list_tasks(self, *, limit: int = 50) -> list[ExtractionTask]:
        return self._store.list_tasks(limit=limit)

    def pause_task(self, task_id: UUID) -> ExtractionTask:
        self._worker.pause(task_id)
        return self._store.get_task(task_id)

    def stop_task(self, task_id: UUID) -> ExtractionTask:
        self._worker.stop(task_id)
        return self._store.get_task(task_id)

    def is_active(self, task_id: UUID) -> bool:
        return self._worker.is_active(task_id)

    def list_records(
        self,
        task_id: UUID,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[ScrapedRecord], int]:
        self._store.get_task(task_id)
        records = self._store.list_records(task_id, limit=limit, offset=offset)
        return records, self._store.count_records(task_id)

    def list_logs(self, task_id: UUID) -> list[TaskLogEntry]:
        self._store.get_task(task_id)
        return self._store.list_logs(task_id)

    def export_records(self, task_id: UUID) -> RecordExport:
        """
        Union of data keys in first-seen order, plus url and scraped_at.
        """

        records, _ = self.list_records(task_id)
        fields: list[str] = []
        rows: list[dict[str, Any]] = []
        for record in records:
            for key in record.data:
                if key not in fields:
                    fields.append(key)
            rows.append(
                {
                    **record.data,
                    "url": record.url,
                    "scraped_at": record.scraped_at.isoformat(),
                }
            )
        if not rows:
            return RecordExport(fields=[])
        return RecordExport(fields=[*fields, "url", "scraped_at"], rows=rows)

    def analyze(self, *, url: str, hint: str | None = None) -> AnalysisOutcome:
        """
        Fetch one page with the probe mode and run the analyzer on it.

        Raises ValueError on a bad URL and FetchError when nothing came back.
        """

        target = validate_target_url(url)
        fetch_options = FetchOptions(
            user_agent=self._settings.user_agent,
            page_load_timeout_seconds=self._settings.page_load_timeout_seconds,
            wait_timeout_seconds=self._settings.wait_timeout_seconds,
            browser_type=self._settings.browser_type,
            detect_next_page=False,
        )
        with self._fetcher_factory() as fetcher:
            try:
                html = fetcher.fetch(target, mode=self._settings.probe_render_mode, options=fetch_options).content
            except HTTPStatusError as exc:
                if not exc.body:
                    raise
                html = exc.body
        return self._analyzer.analyze(url=target, html=html, hint=hint)

    def _build_job(self, task_id: UUID, control: JobControl) -> ExtractionJob:
        return ExtractionJob(
            task_id=task_id,
            store=self._store,
            settings=self._settings,
            fetcher_factory=self._fetcher_factory,
            analyzer=self._analyzer,
            channel=self._channel,
            control=control,
        )


def build_extraction_store(settings: ExtractionSettings) -> ExtractionStore:
    if settings.storage_backend == "sqlalchemy":
        from db.session import SessionLocal

        return SQLAlchemyExtractionStore(session_factory=SessionLocal)
    return InMemoryExtractionStore(analysis_max_age=timedelta(hours=settings.analysis_cache_hours))


@lru_cache(maxsize=1)
def get_extraction_service() -> ExtractionService:
    """
    Build and cache the process-wide extraction service.
    """

    settings = get_extraction_settings()
    return ExtractionService(settings=settings, store=build_extraction_store(settings))
