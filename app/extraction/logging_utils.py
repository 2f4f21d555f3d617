"""
Structured logging helpers for extraction workflows.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from app.extraction.storage.base import ExtractionStore


def log_event(
    logger: logging.Logger,
    level: int,
    event: str,
    **fields: Any,
) -> None:
    """
    Emit one structured log line as compact JSON.
    """

    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, default=str, sort_keys=True))


class TaskLogWriter:
    """
    Append operator-facing task log entries and mirror them to the process log.
    """

    _LEVELS = {
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }

    def __init__(
        self,
        *,
        store: "ExtractionStore",
        task_id: UUID,
        logger: logging.Logger,
    ) -> None:
        self._store = store
        self._task_id = task_id
        self._logger = logger

    def info(self, event: str, message: str, **metadata: Any) -> None:
        self._write("info", event, message, metadata)

    def warning(self, event: str, message: str, **metadata: Any) -> None:
        self._write("warning", event, message, metadata)

    def error(self, event: str, message: str, **metadata: Any) -> None:
        self._write("error", event, message, metadata)

    def _write(self, level: str, event: str, message: str, metadata: dict[str, Any]) -> None:
        self._store.append_log(
            self._task_id,
            level=level,
            message=message,
            metadata={"event": event, **metadata},
        )
        log_event(
            self._logger,
            self._LEVELS[level],
            event,
            task_id=self._task_id,
            message=message,
            **metadata,
        )
