"""
Task lifecycle rules and cooperative job control flags.
"""

from __future__ import annotations

import threading
from uuid import UUID

from app.domain.extraction import TaskStatus
from app.extraction.errors import InvalidTaskTransitionError

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    TaskStatus.PENDING: frozenset(
        {TaskStatus.RUNNING, TaskStatus.PAUSED, TaskStatus.CANCELLED, TaskStatus.FAILED}
    ),
    TaskStatus.RUNNING: frozenset(
        {TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.PAUSED, TaskStatus.CANCELLED}
    ),
    # Pause is advisory: a paused task can only be cancelled afterwards.
    TaskStatus.PAUSED: frozenset({TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def ensure_transition(*, task_id: UUID, current: str, target: str) -> None:
    """
    Raise InvalidTaskTransitionError when `current -> target` is not allowed.
    """

    if not can_transition(current, target):
        raise InvalidTaskTransitionError(task_id=task_id, current=current, target=target)


class ControlRequest:
    PAUSE = "pause"
    STOP = "stop"


class JobControl:
    """
    Thread-safe pause/stop flags observed by a running job at page boundaries.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requested: str | None = None
        self._wake = threading.Event()

    @property
    def requested(self) -> str | None:
        with self._lock:
            return self._requested

    def request_pause(self) -> None:
        with self._lock:
            # Stop wins over pause.
            if self._requested is None:
                self._requested = ControlRequest.PAUSE
        self._wake.set()

    def request_stop(self) -> None:
        with self._lock:
            self._requested = ControlRequest.STOP
        self._wake.set()

    def wait(self, seconds: float) -> bool:
        """
        Sleep up to `seconds`, returning early (True) if a control request arrives.
        """

        if seconds <= 0:
            return self._wake.is_set()
        return self._wake.wait(seconds)
