"""
tests/test_memory_store.py

In-memory task, record, log and analysis storage.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from app.domain.extraction import TaskStatus
from app.extraction.errors import InvalidTaskTransitionError, TaskNotFoundError
from app.extraction.storage import InMemoryExtractionStore


def _task(store: InMemoryExtractionStore):
    return store.create_task(
        name="catalog",
        url="https://shop.test/catalog",
        selectors={"primary": ".product"},
        options={"max_pages": 2},
    )


class TestTasks:
    def test_create_starts_pending(self, store) -> None:
        task = _task(store)
        assert task.status == TaskStatus.PENDING
        assert task.progress == 0
        assert task.scraped_items == 0
        assert task.started_at is None

    def test_get_returns_copies(self, store) -> None:
        task = _task(store)
        fetched = store.get_task(task.id)
        fetched.options["max_pages"] = 99
        assert store.get_task(task.id).options == {"max_pages": 2}

    def test_unknown_task(self, store) -> None:
        with pytest.raises(TaskNotFoundError):
            store.get_task(uuid4())

    def test_list_newest_first_with_limit(self, store) -> None:
        first = _task(store)
        second = _task(store)
        listed = store.list_tasks(limit=10)
        assert {task.id for task in listed} == {first.id, second.id}
        assert listed[0].created_at >= listed[1].created_at
        assert len(store.list_tasks(limit=1)) == 1

    def test_update_rejects_store_owned_fields(self, store) -> None:
        task = _task(store)
        with pytest.raises(ValueError):
            store.update_task(task.id, scraped_items=10)
        with pytest.raises(ValueError):
            store.update_task(task.id, status=TaskStatus.COMPLETED)

    def test_transition_sets_timestamps(self, store) -> None:
        task = _task(store)
        running = store.transition_task(task.id, TaskStatus.RUNNING)
        assert running.started_at is not None
        assert running.completed_at is None

        done = store.transition_task(task.id, TaskStatus.COMPLETED, progress=100)
        assert done.status == TaskStatus.COMPLETED
        assert done.progress == 100
        assert done.completed_at is not None
        assert done.started_at == running.started_at

    def test_invalid_transition(self, store) -> None:
        task = _task(store)
        with pytest.raises(InvalidTaskTransitionError):
            store.transition_task(task.id, TaskStatus.COMPLETED)
        assert store.get_task(task.id).status == TaskStatus.PENDING

    def test_expected_status_guard(self, store) -> None:
        task = _task(store)
        store.transition_task(task.id, TaskStatus.RUNNING)
        with pytest.raises(InvalidTaskTransitionError):
            store.transition_task(task.id, TaskStatus.PAUSED, expected_status=TaskStatus.PENDING)
        assert store.get_task(task.id).status == TaskStatus.RUNNING


class TestRecordsAndLogs:
    def test_records_increment_scraped_items(self, store) -> None:
        task = _task(store)
        for index in range(3):
            store.create_record(task.id, data={"title": f"Item {index}"}, url=task.url)

        assert store.get_task(task.id).scraped_items == 3
        assert store.count_records(task.id) == 3

    def test_record_pagination(self, store) -> None:
        task = _task(store)
        for index in range(5):
            store.create_record(task.id, data={"title": f"Item {index}"}, url=task.url)

        page = store.list_records(task.id, limit=2, offset=1)
        assert [record.data["title"] for record in page] == ["Item 1", "Item 2"]
        assert len(store.list_records(task.id)) == 5

    def test_record_for_unknown_task(self, store) -> None:
        with pytest.raises(TaskNotFoundError):
            store.create_record(uuid4(), data={"title": "x"}, url="https://shop.test")

    def test_logs_keep_order_and_metadata(self, store) -> None:
        task = _task(store)
        store.append_log(task.id, level="info", message="first", metadata={"event": "a"})
        store.append_log(task.id, level="error", message="second")

        logs = store.list_logs(task.id)
        assert [entry.message for entry in logs] == ["first", "second"]
        assert logs[0].metadata == {"event": "a"}
        assert logs[1].metadata == {}


class TestAnalyses:
    def _save(self, store: InMemoryExtractionStore, url: str, strategy: str = "s"):
        return store.save_analysis(
            url=url,
            selectors={"primary": ".card", "fallback": [], "fields": {}},
            strategy=strategy,
            confidence=0.8,
            source="openai",
            structure={"js_framework": "react"},
            recommendations=["use a browser"],
        )

    def test_recent_analysis_returns_latest_for_url(self, store) -> None:
        self._save(store, "https://a.test", strategy="old")
        self._save(store, "https://b.test")
        self._save(store, "https://a.test", strategy="new")

        found = store.get_recent_analysis("https://a.test", max_age=timedelta(hours=1))
        assert found is not None
        assert found.strategy == "new"

    def test_expired_analysis_is_ignored(self, store) -> None:
        self._save(store, "https://a.test")
        assert store.get_recent_analysis("https://a.test", max_age=timedelta(seconds=-1)) is None

    def test_saving_drops_entries_outside_the_cache_window(self) -> None:
        now = [datetime(2026, 1, 1, tzinfo=timezone.utc)]
        store = InMemoryExtractionStore(analysis_max_age=timedelta(hours=1), clock=lambda: now[0])
        self._save(store, "https://a.test", strategy="old")
        self._save(store, "https://b.test")

        now[0] += timedelta(hours=2)
        self._save(store, "https://a.test", strategy="new")

        assert store.get_recent_analysis("https://b.test", max_age=timedelta(days=30)) is None
        found = store.get_recent_analysis("https://a.test", max_age=timedelta(days=30))
        assert found is not None
        assert found.strategy == "new"
        assert len(store._analyses) == 1

    def test_saving_replaces_older_entry_for_same_url(self) -> None:
        store = InMemoryExtractionStore()
        self._save(store, "https://a.test", strategy="old")
        self._save(store, "https://b.test")
        self._save(store, "https://a.test", strategy="new")

        assert sorted((record.url, record.strategy) for record in store._analyses) == [
            ("https://a.test", "new"),
            ("https://b.test", "s"),
        ]

    def test_unknown_url(self, store) -> None:
        assert store.get_recent_analysis("https://nope.test", max_age=timedelta(hours=1)) is None
