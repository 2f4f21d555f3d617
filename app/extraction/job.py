"""
One end-to-end extraction run for a single task.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

from app.domain.extraction import ExtractionTask, TaskStatus
from app.extraction.analysis.base import SiteAnalyzer
from app.extraction.classifier import StrategyClassifier
from app.extraction.config.models import ExtractionOptions, ExtractionSettings
from app.extraction.errors import (
    ExtractionError,
    FetchError,
    HTTPStatusError,
    InvalidTaskTransitionError,
    SelectorResolutionError,
)
from app.extraction.extractor import DEFAULT_FIELD_SELECTORS
from app.extraction.fetching.base import AdaptiveFetcher
from app.extraction.logging_utils import TaskLogWriter, log_event
from app.extraction.pagination import PaginationController, PaginationResult, StopReason
from app.extraction.progress import EventChannel, ProgressReporter
from app.extraction.resolver import SelectorResolver
from app.extraction.state import ControlRequest, JobControl
from app.extraction.storage.base import ExtractionStore
from app.extraction.throttle import PageThrottle
from app.extraction.types import FetchOptions, FetchResult, PageReport, SelectorSet, StrategyDecision

logger = logging.getLogger(__name__)

FetcherFactory = Callable[[], AdaptiveFetcher]


@dataclass(frozen=True)
class JobOutcome:
    task_id: UUID
    status: str
    pages_fetched: int
    items_scraped: int
    stop_reason: str | None = None
    error_message: str | None = None


class ExtractionJob:
    """
    Classify, pick selectors, then paginate while persisting records.

    Every exit path leaves the task in a terminal or paused state and closes
    the fetcher opened for this run.
    """

    def __init__(
        self,
        *,
        task_id: UUID,
        store: ExtractionStore,
        settings: ExtractionSettings,
        fetcher_factory: FetcherFactory,
        analyzer: SiteAnalyzer,
        channel: EventChannel,
        control: JobControl | None = None,
        classifier: StrategyClassifier | None = None,
        resolver: SelectorResolver | None = None,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self.task_id = task_id
        self._store = store
        self._settings = settings
        self._fetcher_factory = fetcher_factory
        self._analyzer = analyzer
        self._channel = channel
        self._control = control or JobControl()
        self._classifier = classifier or StrategyClassifier()
        self._resolver = resolver or SelectorResolver()
        self._sleep = sleep or self._control.wait
        self._task_log = TaskLogWriter(store=store, task_id=task_id, logger=logger)

    def run(self) -> JobOutcome:
        task = self._store.get_task(self.task_id)
        options = ExtractionOptions.from_dict(task.options, settings=self._settings)
        reporter = ProgressReporter(
            task_id=str(self.task_id),
            channel=self._channel,
            max_pages=options.max_pages,
        )

        if task.status != TaskStatus.PENDING:
            return self._skipped(task, reason=f"task is {task.status}")

        early = self._control.requested
        if early is not None:
            return self._finish_interrupted(reporter, early, pages_fetched=0)

        try:
            task = self._store.transition_task(self.task_id, TaskStatus.RUNNING)
        except InvalidTaskTransitionError as exc:
            return self._skipped(self._store.get_task(self.task_id), reason=str(exc))

        reporter.analyzing("Analyzing website structure")
        try:
            with self._fetcher_factory() as fetcher:
                result = self._execute(task, options, fetcher, reporter)
        except ExtractionError as exc:
            return self._finish_failed(reporter, exc, already_logged=isinstance(
                exc, (FetchError, SelectorResolutionError)
            ))
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.ERROR, "job_crashed", task_id=self.task_id, error=repr(exc))
            return self._finish_failed(reporter, exc, already_logged=False)

        if result.stop_reason in (StopReason.PAUSED, StopReason.CANCELLED):
            request = ControlRequest.PAUSE if result.stop_reason == StopReason.PAUSED else ControlRequest.STOP
            return self._finish_interrupted(reporter, request, pages_fetched=result.pages_fetched)
        return self._finish_completed(reporter, result)

    def _execute(
        self,
        task: ExtractionTask,
        options: ExtractionOptions,
        fetcher: AdaptiveFetcher,
        reporter: ProgressReporter,
    ) -> PaginationResult:
        fetch_options = self._fetch_options(options)
        probe_mode = self._settings.probe_render_mode
        probe, probe_html, probe_error = self._probe(fetcher, task.url, probe_mode, fetch_options)

        decision = self._classifier.classify(probe_html)
        render_mode = options.render_mode or decision.render_mode
        self._task_log.info(
            "strategy_classified",
            f"Using {render_mode} rendering ({decision.complexity} complexity)",
            render_mode=render_mode,
            classified_mode=decision.render_mode,
            complexity=decision.complexity,
            signals=list(decision.structure.signals),
            framework=decision.structure.js_framework,
        )
        if probe_error is not None and render_mode == probe_mode:
            self._task_log.error(
                "page_fetch_failed",
                f"Failed to fetch page 1: {probe_error}",
                url=task.url,
                page=1,
                render_mode=probe_mode,
            )
            raise probe_error

        selectors = self._selectors_for(task, probe_html, options)
        self._store.update_task(
            self.task_id,
            selectors=selectors.to_dict(),
            strategy=self._strategy_text(decision, render_mode),
        )
        reporter.analyzing(
            f"Strategy: {render_mode} rendering, {decision.complexity} complexity",
            render_mode=render_mode,
            complexity=decision.complexity,
            framework=decision.structure.js_framework,
        )

        throttle = PageThrottle(
            base_delay_seconds=options.delay_seconds,
            complexity=decision.complexity,
            wait=self._sleep,
        )
        first_page: FetchResult | None = None
        if probe is not None and render_mode == probe_mode:
            first_page = probe
        throttle.mark(url=task.url)

        controller = PaginationController(
            fetcher=fetcher,
            render_mode=render_mode,
            fetch_options=fetch_options,
            options=options,
            selectors=selectors,
            resolver=self._resolver,
            throttle=throttle,
            control=self._control,
            task_log=self._task_log,
        )
        return controller.run(
            base_url=task.url,
            on_page=lambda report: self._persist_page(report, reporter),
            first_page=first_page,
        )

    def _probe(
        self,
        fetcher: AdaptiveFetcher,
        url: str,
        mode: str,
        fetch_options: FetchOptions,
    ) -> tuple[FetchResult | None, str, FetchError | None]:
        try:
            result = fetcher.fetch(url, mode=mode, options=fetch_options)
        except HTTPStatusError as exc:
            # Block pages still carry the markers the classifier needs.
            log_event(
                logger,
                logging.WARNING,
                "probe_http_error",
                task_id=self.task_id,
                url=url,
                status_code=exc.status_code,
            )
            return None, exc.body, exc
        except FetchError as exc:
            self._task_log.error(
                "page_fetch_failed",
                f"Failed to fetch page 1: {exc}",
                url=url,
                page=1,
                render_mode=mode,
            )
            raise
        return result, result.content, None

    def _selectors_for(
        self,
        task: ExtractionTask,
        html: str,
        options: ExtractionOptions,
    ) -> SelectorSet:
        supplied = SelectorSet.from_dict(task.selectors)
        if not supplied.is_empty():
            return supplied if supplied.fields else supplied.with_fields(DEFAULT_FIELD_SELECTORS)

        outcome = self._analyzer.analyze(url=task.url, html=html, hint=options.analysis_hint)
        if outcome.is_fallback:
            self._task_log.info(
                "analysis_fallback",
                f"Analysis provider unavailable, using heuristic selectors: {outcome.reason}",
                source=outcome.result.source,
            )
        else:
            self._task_log.info(
                "analysis_completed",
                f"Selectors proposed by {outcome.result.source} analysis",
                source=outcome.result.source,
                confidence=outcome.result.confidence,
                cached=outcome.cached,
            )
        selectors = outcome.result.selectors
        return selectors if selectors.fields else selectors.with_fields(DEFAULT_FIELD_SELECTORS)

    def _persist_page(self, report: PageReport, reporter: ProgressReporter) -> None:
        for item in report.items:
            self._store.create_record(self.task_id, data=item, url=report.url)

        total_scraped = self._store.get_task(self.task_id).scraped_items
        event = reporter.page_done(
            page_number=report.page_number,
            items_on_page=len(report.items),
            total_scraped=total_scraped,
        )
        self._store.update_task(
            self.task_id,
            progress=event.progress,
            total_items=max(reporter.estimated_total, total_scraped),
        )
        log_event(
            logger,
            logging.INFO,
            "page_persisted",
            task_id=self.task_id,
            page=report.page_number,
            items=len(report.items),
            skipped=report.skipped_items,
            total_scraped=total_scraped,
            selector=report.container_selector,
        )

    def _finish_completed(self, reporter: ProgressReporter, result: PaginationResult) -> JobOutcome:
        scraped = self._store.get_task(self.task_id).scraped_items
        message = f"Extraction completed with {scraped} items from {result.pages_fetched} page(s)"
        self._store.transition_task(
            self.task_id,
            TaskStatus.COMPLETED,
            progress=100,
            total_items=scraped,
        )
        self._task_log.info(
            "task_completed",
            message,
            pages=result.pages_fetched,
            items=scraped,
            stop_reason=result.stop_reason,
        )
        reporter.completed(total_scraped=scraped, message=message)
        return JobOutcome(
            task_id=self.task_id,
            status=TaskStatus.COMPLETED,
            pages_fetched=result.pages_fetched,
            items_scraped=scraped,
            stop_reason=result.stop_reason,
        )

    def _finish_failed(
        self,
        reporter: ProgressReporter,
        exc: BaseException,
        *,
        already_logged: bool,
    ) -> JobOutcome:
        message = str(exc) or exc.__class__.__name__
        if not already_logged:
            self._task_log.error("task_failed", f"Extraction failed: {message}", error_type=type(exc).__name__)
        task = self._store.transition_task(
            self.task_id,
            TaskStatus.FAILED,
            error_message=message,
            total_items=self._store.get_task(self.task_id).scraped_items,
        )
        reporter.failed(message)
        return JobOutcome(
            task_id=self.task_id,
            status=TaskStatus.FAILED,
            pages_fetched=0,
            items_scraped=task.scraped_items,
            error_message=message,
        )

    def _finish_interrupted(
        self,
        reporter: ProgressReporter,
        request: str,
        *,
        pages_fetched: int,
    ) -> JobOutcome:
        scraped = self._store.get_task(self.task_id).scraped_items
        if request == ControlRequest.STOP:
            status, message = TaskStatus.CANCELLED, "stopped by user"
        else:
            status, message = TaskStatus.PAUSED, "paused by user"

        task = self._store.transition_task(
            self.task_id,
            status,
            error_message=message,
            total_items=scraped,
        )
        self._task_log.info(f"task_{status}", f"Extraction {message}", pages=pages_fetched, items=scraped)
        if status == TaskStatus.CANCELLED:
            reporter.cancelled(message)
        else:
            reporter.paused(message)
        return JobOutcome(
            task_id=self.task_id,
            status=task.status,
            pages_fetched=pages_fetched,
            items_scraped=scraped,
            stop_reason=StopReason.CANCELLED if status == TaskStatus.CANCELLED else StopReason.PAUSED,
            error_message=message,
        )

    def _skipped(self, task: ExtractionTask, *, reason: str) -> JobOutcome:
        log_event(logger, logging.INFO, "job_skipped", task_id=self.task_id, reason=reason)
        return JobOutcome(
            task_id=self.task_id,
            status=task.status,
            pages_fetched=0,
            items_scraped=task.scraped_items,
            error_message=task.error_message,
        )

    def _fetch_options(self, options: ExtractionOptions) -> FetchOptions:
        return FetchOptions(
            user_agent=self._settings.user_agent,
            page_load_timeout_seconds=self._settings.page_load_timeout_seconds,
            wait_timeout_seconds=self._settings.wait_timeout_seconds,
            wait_for_selector=options.wait_for_selector,
            wait_for_network_idle=options.wait_for_network_idle,
            scroll_to_bottom=options.scroll_to_bottom,
            browser_type=options.browser_type,
            detect_next_page=True,
        )

    @staticmethod
    def _strategy_text(decision: StrategyDecision, render_mode: str) -> str:
        if render_mode == decision.render_mode:
            return decision.describe()
        return f"{render_mode} rendering (override), {decision.complexity} complexity"
