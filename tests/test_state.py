"""
tests/test_state.py

Task status transitions and cooperative pause/stop flags.
"""

from __future__ import annotations

import threading
import time
from uuid import uuid4

import pytest

from app.domain.extraction import TaskStatus
from app.extraction.errors import InvalidTaskTransitionError
from app.extraction.state import ControlRequest, JobControl, can_transition, ensure_transition


class TestTransitions:
    @pytest.mark.parametrize(
        "current,target",
        [
            (TaskStatus.PENDING, TaskStatus.RUNNING),
            (TaskStatus.PENDING, TaskStatus.CANCELLED),
            (TaskStatus.PENDING, TaskStatus.PAUSED),
            (TaskStatus.RUNNING, TaskStatus.COMPLETED),
            (TaskStatus.RUNNING, TaskStatus.FAILED),
            (TaskStatus.RUNNING, TaskStatus.PAUSED),
            (TaskStatus.PAUSED, TaskStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current: str, target: str) -> None:
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (TaskStatus.COMPLETED, TaskStatus.RUNNING),
            (TaskStatus.FAILED, TaskStatus.PENDING),
            (TaskStatus.CANCELLED, TaskStatus.PAUSED),
            (TaskStatus.PAUSED, TaskStatus.RUNNING),
            (TaskStatus.RUNNING, TaskStatus.PENDING),
            (TaskStatus.PENDING, TaskStatus.COMPLETED),
        ],
    )
    def test_rejected(self, current: str, target: str) -> None:
        assert not can_transition(current, target)

    def test_terminal_states_have_no_exits(self) -> None:
        for status in TaskStatus.TERMINAL:
            assert not any(can_transition(status, target) for target in TaskStatus.ALL)

    def test_ensure_transition_raises_with_context(self) -> None:
        task_id = uuid4()
        with pytest.raises(InvalidTaskTransitionError) as exc_info:
            ensure_transition(task_id=task_id, current=TaskStatus.COMPLETED, target=TaskStatus.RUNNING)
        assert exc_info.value.task_id == task_id
        assert exc_info.value.current == TaskStatus.COMPLETED
        assert exc_info.value.target == TaskStatus.RUNNING


class TestJobControl:
    def test_starts_clear(self) -> None:
        control = JobControl()
        assert control.requested is None
        assert control.wait(0) is False

    def test_stop_wins_over_pause(self) -> None:
        control = JobControl()
        control.request_stop()
        control.request_pause()
        assert control.requested == ControlRequest.STOP

    def test_stop_overrides_earlier_pause(self) -> None:
        control = JobControl()
        control.request_pause()
        control.request_stop()
        assert control.requested == ControlRequest.STOP

    def test_wait_returns_early_on_request(self) -> None:
        control = JobControl()
        timer = threading.Timer(0.05, control.request_stop)
        timer.start()
        started = time.monotonic()
        try:
            assert control.wait(5.0) is True
        finally:
            timer.cancel()
        assert time.monotonic() - started < 4.0

    def test_wait_times_out_without_request(self) -> None:
        assert JobControl().wait(0.01) is False
