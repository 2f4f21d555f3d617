"""
tests/test_config.py

Per-task options, environment settings and database URL resolution.
"""

from __future__ import annotations

import os

import pytest

from app.extraction.config import ExtractionOptions, get_extraction_settings
from db.config import load_env_files, normalize_postgres_url, resolve_database_url


class TestExtractionOptions:
    def test_defaults_come_from_settings(self, settings) -> None:
        options = ExtractionOptions.from_dict(None, settings=settings)
        assert options.max_pages == settings.default_max_pages
        assert options.delay_seconds == settings.default_delay_seconds
        assert options.pagination_mode == "query"
        assert options.render_mode is None

    def test_values_are_normalised(self, settings) -> None:
        options = ExtractionOptions.from_dict(
            {
                "max_pages": 0,
                "delay_seconds": -3,
                "render_mode": " Stealth ",
                "page_param": "  ",
                "wait_for_selector": "  ",
                "unknown": "ignored",
            },
            settings=settings,
        )
        assert options.max_pages == 1
        assert options.delay_seconds == 0.0
        assert options.render_mode == "stealth"
        assert options.page_param == "page"
        assert options.wait_for_selector is None

    @pytest.mark.parametrize(
        "payload",
        [
            {"pagination_mode": "infinite"},
            {"render_mode": "quantum"},
            {"browser_type": "netscape"},
        ],
    )
    def test_invalid_choices(self, settings, payload) -> None:
        with pytest.raises(ValueError):
            ExtractionOptions.from_dict(payload, settings=settings)

    def test_round_trip_through_dict(self, settings) -> None:
        options = ExtractionOptions.from_dict({"max_pages": 4, "scroll_to_bottom": True}, settings=settings)
        assert ExtractionOptions.from_dict(options.to_dict(), settings=settings) == options


class TestExtractionSettings:
    @pytest.fixture(autouse=True)
    def _fresh_cache(self):
        get_extraction_settings.cache_clear()
        yield
        get_extraction_settings.cache_clear()

    def test_environment_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("EXTRACTION_DEFAULT_MAX_PAGES", "9")
        monkeypatch.setenv("EXTRACTION_PROBE_RENDER_MODE", "dynamic")
        monkeypatch.setenv("EXTRACTION_STEALTH_MIN_DELAY_SECONDS", "4")
        monkeypatch.setenv("EXTRACTION_STEALTH_MAX_DELAY_SECONDS", "1")

        settings = get_extraction_settings()

        assert settings.default_max_pages == 9
        assert settings.probe_render_mode == "dynamic"
        assert settings.stealth_min_delay_seconds == 4.0
        assert settings.stealth_max_delay_seconds == 4.0

    def test_invalid_values_fall_back_to_defaults(self, monkeypatch) -> None:
        monkeypatch.setenv("EXTRACTION_DEFAULT_MAX_PAGES", "many")
        monkeypatch.setenv("EXTRACTION_BROWSER_TYPE", "netscape")

        settings = get_extraction_settings()

        assert settings.default_max_pages == 5
        assert settings.browser_type == "chromium"


class TestDatabaseConfig:
    def test_normalize_postgres_url(self) -> None:
        assert normalize_postgres_url("postgres://u:p@db/x") == "postgresql+psycopg://u:p@db/x"
        assert normalize_postgres_url("postgresql://u@db/x") == "postgresql+psycopg://u@db/x"
        assert normalize_postgres_url("sqlite:///x.db") == "sqlite:///x.db"

    def test_resolve_prefers_extraction_url(self, monkeypatch) -> None:
        monkeypatch.setenv("EXTRACTION_DATABASE_URL", "postgres://a@db/one")
        monkeypatch.setenv("DATABASE_URL", "postgres://b@db/two")
        assert resolve_database_url() == "postgresql+psycopg://a@db/one"

    def test_load_env_files_does_not_override(self, tmp_path, monkeypatch) -> None:
        (tmp_path / ".env").write_text(
            "# comment\nexport EXTRACTION_TEST_A='from-file'\nEXTRACTION_TEST_B=\"kept\"\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("EXTRACTION_TEST_A", "from-env")
        monkeypatch.delenv("EXTRACTION_TEST_B", raising=False)

        load_env_files(tmp_path)

        assert os.environ["EXTRACTION_TEST_A"] == "from-env"
        assert os.environ["EXTRACTION_TEST_B"] == "kept"
        os.environ.pop("EXTRACTION_TEST_B", None)
