"""
Single background worker that runs extraction jobs one at a time, FIFO.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from app.domain.extraction import TaskStatus
from app.extraction.errors import InvalidTaskTransitionError
from app.extraction.job import ExtractionJob, JobOutcome
from app.extraction.logging_utils import log_event
from app.extraction.progress import EventChannel
from app.extraction.state import JobControl
from app.extraction.storage.base import ExtractionStore
from app.extraction.types import ProgressEvent

logger = logging.getLogger(__name__)

JobFactory = Callable[[UUID, JobControl], ExtractionJob]

_SHUTDOWN = object()


@dataclass
class JobHandle:
    task_id: UUID
    control: JobControl = field(default_factory=JobControl)
    submitted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started: bool = False


class ExtractionWorker:
    """
    Owns the FIFO queue and the registry of live job handles.

    Pause/stop on a queued task take effect immediately in the store; on a
    running task they are observed at the next page boundary.
    """

    def __init__(
        self,
        *,
        store: ExtractionStore,
        channel: EventChannel,
        job_factory: JobFactory,
    ) -> None:
        self._store = store
        self._channel = channel
        self._job_factory = job_factory
        self._queue: queue.Queue[object] = queue.Queue()
        self._handles: dict[UUID, JobHandle] = {}
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._thread = threading.Thread(
                target=self._run_loop,
                name="extraction-worker",
                daemon=True,
            )
            self._thread.start()
        log_event(logger, logging.INFO, "extraction_worker_started")

    def shutdown(self, *, timeout: float | None = 10.0) -> None:
        """
        Stop accepting work: signal the running job to stop and join the thread.
        """

        with self._lock:
            thread = self._thread
            running = [handle for handle in self._handles.values() if handle.started]
        for handle in running:
            handle.control.request_stop()
        if thread is None:
            return
        self._queue.put(_SHUTDOWN)
        thread.join(timeout=timeout)
        with self._lock:
            self._thread = None
        log_event(logger, logging.INFO, "extraction_worker_stopped", pending=self._queue.qsize())

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def submit(self, task_id: UUID) -> JobHandle:
        handle = JobHandle(task_id=task_id)
        with self._lock:
            self._handles[task_id] = handle
        self._queue.put(task_id)
        log_event(logger, logging.INFO, "extraction_task_queued", task_id=task_id, queue_size=self._queue.qsize())
        return handle

    def is_active(self, task_id: UUID) -> bool:
        with self._lock:
            return task_id in self._handles

    def pause(self, task_id: UUID) -> str:
        return self._control(task_id, TaskStatus.PAUSED)

    def stop(self, task_id: UUID) -> str:
        return self._control(task_id, TaskStatus.CANCELLED)

    def run_now(self, task_id: UUID) -> JobOutcome:
        """
        Run one task synchronously on the calling thread.
        """

        handle = JobHandle(task_id=task_id, started=True)
        with self._lock:
            self._handles[task_id] = handle
        try:
            return self._job_factory(task_id, handle.control).run()
        finally:
            with self._lock:
                self._handles.pop(task_id, None)

    def wait_idle(self) -> None:
        self._queue.join()

    def _control(self, task_id: UUID, target: str) -> str:
        """
        Request pause/stop and return the status the task has right now.

        Raises TaskNotFoundError or InvalidTaskTransitionError.
        """

        task = self._store.get_task(task_id)
        with self._lock:
            handle = self._handles.get(task_id)

        if handle is not None:
            if target == TaskStatus.CANCELLED:
                handle.control.request_stop()
            else:
                handle.control.request_pause()
            if handle.started and task.status in (TaskStatus.PENDING, TaskStatus.RUNNING):
                return task.status
            if task.status == TaskStatus.PENDING:
                try:
                    updated = self._store.transition_task(
                        task_id,
                        target,
                        expected_status=TaskStatus.PENDING,
                        error_message=_message(target),
                    )
                except InvalidTaskTransitionError:
                    # Picked up by the worker meanwhile; the flag covers it.
                    return self._store.get_task(task_id).status
                self._publish(updated.status, task_id=task_id, progress=updated.progress, total=updated.scraped_items)
                return updated.status

        updated = self._store.transition_task(task_id, target, error_message=_message(target))
        self._publish(updated.status, task_id=task_id, progress=updated.progress, total=updated.scraped_items)
        return updated.status

    def _publish(self, status: str, *, task_id: UUID, progress: int, total: int) -> None:
        self._channel.publish(
            ProgressEvent(
                task_id=str(task_id),
                status=status,
                progress=progress,
                total_scraped=total,
                message=_message(status),
            )
        )

    def _run_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _SHUTDOWN:
                    return
                self._run_one(item)
            finally:
                self._queue.task_done()

    def _run_one(self, task_id: UUID) -> None:
        with self._lock:
            handle = self._handles.get(task_id)
            if handle is None:
                return
            handle.started = True
        try:
            outcome = self._job_factory(task_id, handle.control).run()
            log_event(
                logger,
                logging.INFO,
                "extraction_task_finished",
                task_id=task_id,
                status=outcome.status,
                items=outcome.items_scraped,
                stop_reason=outcome.stop_reason,
            )
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.ERROR, "extraction_task_crashed", task_id=task_id, error=repr(exc))
        finally:
            with self._lock:
                self._handles.pop(task_id, None)


def _message(target: str) -> str:
    return "stopped by user" if target == TaskStatus.CANCELLED else "paused by user"
