"""
Progress estimation and best-effort event fan-out.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections.abc import Callable
from typing import Any

from app.domain.extraction import ProgressStatus, TaskStatus
from app.extraction.logging_utils import log_event
from app.extraction.types import ProgressEvent

logger = logging.getLogger(__name__)

ProgressListener = Callable[[ProgressEvent], None]


class EventChannel:
    """
    In-process publish/subscribe hub for progress events.

    Delivery is fire-and-forget: a failing listener is logged and skipped.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[int, ProgressListener] = {}
        self._ids = itertools.count(1)

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        with self._lock:
            listener_id = next(self._ids)
            self._listeners[listener_id] = listener

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        return unsubscribe

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:  # noqa: BLE001
                log_event(
                    logger,
                    logging.WARNING,
                    "progress_listener_failed",
                    task_id=event.task_id,
                    error=str(exc),
                )

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)


def estimate_total(*, max_pages: int, total_scraped: int, pages_done: int) -> int:
    """
    Project the final item count from the average items per finished page.
    """

    if pages_done <= 0:
        return 0
    return round(max_pages * (total_scraped / pages_done))


def progress_percent(*, total_scraped: int, estimated_total: int) -> int:
    if estimated_total <= 0:
        return 0
    return min(100, int(total_scraped * 100 / estimated_total))


class ProgressReporter:
    """
    Turn job milestones into monotonically non-decreasing progress events.
    """

    def __init__(self, *, task_id: str, channel: EventChannel, max_pages: int) -> None:
        self._task_id = task_id
        self._channel = channel
        self._max_pages = max(1, max_pages)
        self._progress = 0
        self._total_scraped = 0
        self._current_page: int | None = None
        self.estimated_total = 0

    @property
    def progress(self) -> int:
        return self._progress

    def analyzing(self, message: str, **details: Any) -> ProgressEvent:
        return self._emit(ProgressStatus.ANALYZING, message=message, details={"phase": "analyzing", **details})

    def page_done(
        self,
        *,
        page_number: int,
        items_on_page: int,
        total_scraped: int,
    ) -> ProgressEvent:
        self._current_page = page_number
        self._total_scraped = total_scraped
        self.estimated_total = estimate_total(
            max_pages=self._max_pages,
            total_scraped=total_scraped,
            pages_done=page_number,
        )
        self._advance(
            progress_percent(total_scraped=total_scraped, estimated_total=self.estimated_total)
        )
        return self._emit(
            TaskStatus.RUNNING,
            items_on_page=items_on_page,
            message=f"Page {page_number}: {items_on_page} items",
            details={"phase": "extracting", "estimated_total": self.estimated_total},
        )

    def completed(self, *, total_scraped: int, message: str = "") -> ProgressEvent:
        self._total_scraped = total_scraped
        self._advance(100)
        return self._emit(TaskStatus.COMPLETED, message=message or f"Completed with {total_scraped} items")

    def failed(self, message: str) -> ProgressEvent:
        return self._emit(TaskStatus.FAILED, message=message)

    def paused(self, message: str = "Paused by user") -> ProgressEvent:
        return self._emit(TaskStatus.PAUSED, message=message)

    def cancelled(self, message: str = "Stopped by user") -> ProgressEvent:
        return self._emit(TaskStatus.CANCELLED, message=message)

    def _advance(self, value: int) -> None:
        self._progress = max(self._progress, min(100, value))

    def _emit(
        self,
        status: str,
        *,
        message: str,
        items_on_page: int = 0,
        details: dict[str, Any] | None = None,
    ) -> ProgressEvent:
        event = ProgressEvent(
            task_id=self._task_id,
            status=status,
            progress=self._progress,
            total_scraped=self._total_scraped,
            items_on_page=items_on_page,
            current_page=self._current_page,
            message=message,
            details=details or {},
        )
        self._channel.publish(event)
        return event
