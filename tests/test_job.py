"""
tests/test_job.py

End-to-end extraction runs against scripted page backends.
"""

from __future__ import annotations

from app.domain.extraction import ProgressStatus, TaskStatus
from app.extraction.analysis import AnalysisProvider, AnalysisResult, HeuristicAnalysisProvider, SiteAnalyzer
from app.extraction.errors import AnalysisProviderError, HTTPStatusError
from app.extraction.job import ExtractionJob
from app.extraction.pagination import StopReason
from app.extraction.progress import EventChannel
from app.extraction.state import JobControl
from app.extraction.types import ProgressEvent

BASE = "https://shop.test/catalog"
CHALLENGE = "<html><head><title>Just a moment...</title></head><body>checking your browser</body></html>"


def _job(store, settings, site, task, *, control=None, channel=None) -> ExtractionJob:
    heuristic = HeuristicAnalysisProvider()
    return ExtractionJob(
        task_id=task.id,
        store=store,
        settings=settings,
        fetcher_factory=site.fetcher_factory,
        analyzer=SiteAnalyzer(provider=heuristic, fallback=heuristic),
        channel=channel or EventChannel(),
        control=control,
        sleep=lambda seconds: False,
    )


def _create(store, *, selectors=None, **options):
    return store.create_task(name="catalog", url=BASE, selectors=selectors, options=options)


def _log_events(store, task_id) -> list[str]:
    return [entry.metadata.get("event") for entry in store.list_logs(task_id)]


class _FailingProvider(AnalysisProvider):
    name = "openai"

    def analyze(self, *, url: str, html: str, hint: str | None = None) -> AnalysisResult:
        raise AnalysisProviderError("rate limited", stage="request")


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------


class TestCompletedRuns:
    def test_static_catalog_over_two_pages(self, store, settings, make_site, page_html) -> None:
        site = make_site(
            static={
                BASE: page_html("Lamp", "Desk", "Chair", next_href="?page=2"),
                f"{BASE}?page=2": page_html("Rug", "Sofa", "Shelf"),
            }
        )
        task = _create(store, max_pages=2, delay_seconds=0)
        channel = EventChannel()
        events: list[ProgressEvent] = []
        channel.subscribe(events.append)

        outcome = _job(store, settings, site, task, channel=channel).run()

        assert outcome.status == TaskStatus.COMPLETED
        assert outcome.pages_fetched == 2
        assert outcome.items_scraped == 6
        assert outcome.stop_reason == StopReason.MAX_PAGES
        # The classification probe doubles as page 1.
        assert site.urls() == [BASE, f"{BASE}?page=2"]

        stored = store.get_task(task.id)
        assert stored.status == TaskStatus.COMPLETED
        assert stored.progress == 100
        assert stored.scraped_items == stored.total_items == 6
        assert stored.strategy == "static rendering, low complexity"
        assert stored.selectors["primary"] == '[class*="product"]'
        assert stored.started_at is not None and stored.completed_at is not None

        titles = [record.data["title"] for record in store.list_records(task.id)]
        assert titles == ["Lamp", "Desk", "Chair", "Rug", "Sofa", "Shelf"]

        progress = [event.progress for event in events]
        assert progress == sorted(progress)
        assert events[-1].status == TaskStatus.COMPLETED
        assert events[-1].progress == 100
        assert "task_completed" in _log_events(store, task.id)
        assert all(fetcher.closed for fetcher in site.opened)

    def test_supplied_selectors_skip_analysis(self, store, settings, make_site) -> None:
        html = '<ul><li class="row"><b class="name">One</b></li><li class="row"><b class="name">Two</b></li></ul>'
        site = make_site(static={BASE: html})
        task = _create(store, selectors={"primary": ".row"}, max_pages=1)

        outcome = _job(store, settings, site, task).run()

        assert outcome.status == TaskStatus.COMPLETED
        assert [record.data["title"] for record in store.list_records(task.id)] == ["One", "Two"]
        stored = store.get_task(task.id)
        assert stored.selectors["primary"] == ".row"
        assert "title" in stored.selectors["fields"]
        assert "analysis_completed" not in _log_events(store, task.id)

    def test_anti_bot_probe_switches_to_stealth(self, store, settings, make_site, page_html) -> None:
        blocked = HTTPStatusError(url=BASE, render_mode="static", status_code=403, body=CHALLENGE)
        site = make_site(
            static={BASE: blocked},
            stealth={BASE: page_html("Lamp", "Desk")},
        )
        task = _create(store, max_pages=1)

        outcome = _job(store, settings, site, task).run()

        assert outcome.status == TaskStatus.COMPLETED
        assert outcome.items_scraped == 2
        assert site.calls == [("static", BASE), ("stealth", BASE)]
        assert store.get_task(task.id).strategy == "stealth rendering, extreme complexity"

    def test_render_mode_override(self, store, settings, make_site, page_html) -> None:
        site = make_site(
            static={BASE: page_html("Lamp")},
            dynamic={BASE: page_html("Lamp", "Desk")},
        )
        task = _create(store, max_pages=1, render_mode="dynamic")

        outcome = _job(store, settings, site, task).run()

        assert outcome.items_scraped == 2
        assert site.calls == [("static", BASE), ("dynamic", BASE)]
        assert "override" in store.get_task(task.id).strategy

    def test_three_full_pages(self, store, settings, make_site, page_html) -> None:
        titles = [[f"P{page}-{index}" for index in range(5)] for page in range(1, 4)]
        site = make_site(
            static={
                BASE: page_html(*titles[0], next_href="?page=2"),
                f"{BASE}?page=2": page_html(*titles[1], next_href="?page=3"),
                f"{BASE}?page=3": page_html(*titles[2], next_href="?page=4"),
            }
        )
        task = _create(store, max_pages=3)
        channel = EventChannel()
        page_events: list[ProgressEvent] = []
        channel.subscribe(lambda event: page_events.append(event) if event.current_page else None)

        outcome = _job(store, settings, site, task, channel=channel).run()

        assert outcome.status == TaskStatus.COMPLETED
        assert store.get_task(task.id).scraped_items == 15
        assert store.count_records(task.id) == 15
        running = [event for event in page_events if event.status == TaskStatus.RUNNING]
        assert [event.total_scraped for event in running] == [5, 10, 15]
        assert [event.items_on_page for event in running] == [5, 5, 5]

    def test_empty_second_page_keeps_first_page_items(self, store, settings, make_site, page_html) -> None:
        site = make_site(
            static={
                BASE: page_html("Lamp", "Desk", next_href="?page=2"),
                f"{BASE}?page=2": page_html(),
                f"{BASE}?page=3": page_html("Never"),
            }
        )
        task = _create(store, max_pages=3)

        outcome = _job(store, settings, site, task).run()

        assert outcome.status == TaskStatus.COMPLETED
        assert outcome.stop_reason == StopReason.EMPTY_PAGE
        assert site.urls() == [BASE, f"{BASE}?page=2"]
        assert [record.data["title"] for record in store.list_records(task.id)] == ["Lamp", "Desk"]

    def test_analysis_failure_falls_back_to_heuristics(self, store, settings, make_site, page_html) -> None:
        site = make_site(static={BASE: page_html("Lamp", "Desk")})
        task = _create(store, max_pages=1)
        job = ExtractionJob(
            task_id=task.id,
            store=store,
            settings=settings,
            fetcher_factory=site.fetcher_factory,
            analyzer=SiteAnalyzer(provider=_FailingProvider(), fallback=HeuristicAnalysisProvider()),
            channel=EventChannel(),
            sleep=lambda seconds: False,
        )

        outcome = job.run()

        assert outcome.status == TaskStatus.COMPLETED
        assert outcome.items_scraped == 2
        fallback_logs = [
            entry for entry in store.list_logs(task.id) if entry.metadata.get("event") == "analysis_fallback"
        ]
        assert len(fallback_logs) == 1
        assert fallback_logs[0].level == "info"
        assert fallback_logs[0].metadata["source"] == "heuristic"

    def test_later_page_failure_still_completes(self, store, settings, make_site, page_html) -> None:
        site = make_site(static={BASE: page_html("Lamp", "Desk", next_href="?page=2")})
        task = _create(store, max_pages=3)

        outcome = _job(store, settings, site, task).run()

        assert outcome.status == TaskStatus.COMPLETED
        assert outcome.stop_reason == StopReason.FETCH_FAILED
        assert outcome.items_scraped == 2
        assert "page_fetch_failed" in _log_events(store, task.id)

    def test_single_page_listing_is_fetched_once(self, store, settings, make_site, page_html) -> None:
        # A site that ignores ?page=N would serve the same listing again.
        listing = page_html("Lamp", "Desk")
        site = make_site(
            static={BASE: listing, f"{BASE}?page=2": listing, f"{BASE}?page=3": listing}
        )
        task = _create(store, max_pages=3)

        outcome = _job(store, settings, site, task).run()

        assert outcome.status == TaskStatus.COMPLETED
        assert outcome.stop_reason == StopReason.NO_NEXT_PAGE
        assert site.urls() == [BASE]
        assert store.get_task(task.id).scraped_items == 2
        assert store.count_records(task.id) == 2

    def test_cards_inside_product_wrapper(self, store, settings, make_site) -> None:
        cards = "".join(
            f'<div class="product"><h2>T{index}</h2><span class="price">${index + 1}</span></div>'
            for index in range(4)
        )
        html = f'<html><body><div class="products-list">{cards}</div></body></html>'
        site = make_site(static={BASE: html})
        task = _create(store, max_pages=1)

        outcome = _job(store, settings, site, task).run()

        assert outcome.status == TaskStatus.COMPLETED
        records = [record.data for record in store.list_records(task.id)]
        assert [record["title"] for record in records] == ["T0", "T1", "T2", "T3"]
        assert records[3]["price"] == "$4"

    def test_analyzing_events_precede_extraction(self, store, settings, make_site, page_html) -> None:
        site = make_site(static={BASE: page_html("Lamp")})
        task = _create(store, max_pages=1)
        channel = EventChannel()
        events: list[ProgressEvent] = []
        channel.subscribe(events.append)

        _job(store, settings, site, task, channel=channel).run()

        statuses = [event.status for event in events]
        assert statuses[0] == ProgressStatus.ANALYZING
        assert statuses[-1] == TaskStatus.COMPLETED
        assert statuses.index(TaskStatus.RUNNING) > statuses.index(ProgressStatus.ANALYZING)


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailedRuns:
    def test_first_page_fetch_failure(self, store, settings, make_site) -> None:
        site = make_site(static={})
        task = _create(store)

        outcome = _job(store, settings, site, task).run()

        assert outcome.status == TaskStatus.FAILED
        stored = store.get_task(task.id)
        assert stored.status == TaskStatus.FAILED
        assert "no scripted page" in stored.error_message
        events = _log_events(store, task.id)
        assert events.count("page_fetch_failed") == 1
        assert all(fetcher.closed for fetcher in site.opened)

    def test_http_error_in_probe_mode_fails(self, store, settings, make_site) -> None:
        blocked = HTTPStatusError(url=BASE, render_mode="static", status_code=500, body="<p>oops</p>")
        site = make_site(static={BASE: blocked})
        task = _create(store)

        outcome = _job(store, settings, site, task).run()

        assert outcome.status == TaskStatus.FAILED
        assert "HTTP 500" in outcome.error_message

    def test_no_containers_on_first_page(self, store, settings, make_site) -> None:
        site = make_site(static={BASE: "<html><body><p>Nothing to see</p></body></html>"})
        task = _create(store)

        outcome = _job(store, settings, site, task).run()

        assert outcome.status == TaskStatus.FAILED
        assert "No items matched" in outcome.error_message
        warnings = [entry for entry in store.list_logs(task.id) if entry.level == "warning"]
        assert [entry.metadata["event"] for entry in warnings] == ["no_items_found"]
        assert store.count_records(task.id) == 0


# ---------------------------------------------------------------------------
# Pause / stop
# ---------------------------------------------------------------------------


class TestInterruptedRuns:
    def test_stop_before_start(self, store, settings, make_site) -> None:
        site = make_site(static={})
        task = _create(store)
        control = JobControl()
        control.request_stop()

        outcome = _job(store, settings, site, task, control=control).run()

        assert outcome.status == TaskStatus.CANCELLED
        assert site.calls == []
        assert store.get_task(task.id).error_message == "stopped by user"

    def test_stop_after_first_page(self, store, settings, make_site, page_html) -> None:
        site = make_site(
            static={
                BASE: page_html("Lamp", "Desk", next_href="?page=2"),
                f"{BASE}?page=2": page_html("Rug"),
            }
        )
        task = _create(store, max_pages=5)
        control = JobControl()
        channel = EventChannel()

        def stop_on_first_page(event: ProgressEvent) -> None:
            if event.current_page == 1:
                control.request_stop()

        channel.subscribe(stop_on_first_page)

        outcome = _job(store, settings, site, task, control=control, channel=channel).run()

        assert outcome.status == TaskStatus.CANCELLED
        assert outcome.pages_fetched == 1
        assert outcome.items_scraped == 2
        assert site.urls() == [BASE]
        stored = store.get_task(task.id)
        assert stored.status == TaskStatus.CANCELLED
        assert stored.completed_at is not None
        assert store.count_records(task.id) == 2

    def test_pause_after_first_page(self, store, settings, make_site, page_html) -> None:
        site = make_site(
            static={
                BASE: page_html("Lamp", next_href="?page=2"),
                f"{BASE}?page=2": page_html("Rug"),
            }
        )
        task = _create(store, max_pages=5)
        control = JobControl()
        channel = EventChannel()
        channel.subscribe(lambda event: control.request_pause() if event.current_page == 1 else None)

        outcome = _job(store, settings, site, task, control=control, channel=channel).run()

        assert outcome.status == TaskStatus.PAUSED
        assert outcome.stop_reason == StopReason.PAUSED
        assert store.get_task(task.id).error_message == "paused by user"

    def test_non_pending_task_is_skipped(self, store, settings, make_site) -> None:
        site = make_site(static={})
        task = _create(store)
        store.transition_task(task.id, TaskStatus.CANCELLED, error_message="stopped by user")

        outcome = _job(store, settings, site, task).run()

        assert outcome.status == TaskStatus.CANCELLED
        assert site.calls == []
        assert store.list_logs(task.id) == []
