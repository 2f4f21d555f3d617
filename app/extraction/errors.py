"""
Typed failures raised by the extraction engine.
"""

from __future__ import annotations

from typing import Any


class ExtractionError(Exception):
    """
    Base class for extraction engine failures.
    """


class FetchError(ExtractionError):
    """
    A page could not be retrieved in the requested render mode.
    """

    def __init__(self, message: str, *, url: str, render_mode: str) -> None:
        super().__init__(message)
        self.url = url
        self.render_mode = render_mode


class HTTPStatusError(FetchError):
    """
    The target answered with a non-success status code.

    The response body is kept so anti-bot pages can still be classified.
    """

    def __init__(
        self,
        *,
        url: str,
        render_mode: str,
        status_code: int,
        body: str = "",
    ) -> None:
        super().__init__(
            f"HTTP {status_code} while fetching {url}",
            url=url,
            render_mode=render_mode,
        )
        self.status_code = status_code
        self.body = body


class NavigationTimeoutError(FetchError):
    """
    Page load did not finish within the configured timeout.
    """


class BrowserUnavailableError(FetchError):
    """
    The headless browser could not be launched or crashed mid-run.
    """


class SelectorResolutionError(ExtractionError):
    """
    No candidate selector matched any element on the page.
    """

    def __init__(self, *, url: str, tried: tuple[str, ...]) -> None:
        tried_text = ", ".join(tried) if tried else "<none>"
        super().__init__(f"No items matched on {url} (tried: {tried_text})")
        self.url = url
        self.tried = tried


class AnalysisProviderError(ExtractionError):
    """
    The analysis provider failed or returned unusable output.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        errors: list[dict[str, Any]] | None = None,
        raw_response: str | None = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.errors = errors or []
        self.raw_response = raw_response


class TaskNotFoundError(ExtractionError):
    def __init__(self, task_id: object) -> None:
        super().__init__(f"Extraction task not found: {task_id}")
        self.task_id = task_id


class InvalidTaskTransitionError(ExtractionError):
    def __init__(self, *, task_id: object, current: str, target: str) -> None:
        super().__init__(
            f"Task {task_id} cannot move from '{current}' to '{target}'."
        )
        self.task_id = task_id
        self.current = current
        self.target = target
