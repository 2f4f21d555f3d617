"""
Environment-driven database configuration.
"""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILENAMES = (".env", ".env.local")
DATABASE_URL_VARIABLES = ("EXTRACTION_DATABASE_URL", "DATABASE_URL")


def load_env_files(root: Path | None = None) -> None:
    """
    Copy KEY=VALUE lines from `.env` then `.env.local` into os.environ.

    Variables already set in the process win over file values.
    """

    project_root = root or Path(__file__).resolve().parents[1]
    for filename in ENV_FILENAMES:
        env_path = project_root / filename
        if not env_path.is_file():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if line.startswith("export "):
                line = line[len("export "):].lstrip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            if key and key not in os.environ:
                os.environ[key] = value.strip().strip('"').strip("'")


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite bare postgres URLs to the psycopg (v3) SQLAlchemy driver.
    """

    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix):]
    return url


def resolve_database_url() -> str:
    """
    Return the first configured URL of EXTRACTION_DATABASE_URL, DATABASE_URL.
    """

    load_env_files()
    for name in DATABASE_URL_VARIABLES:
        value = os.getenv(name, "").strip()
        if value:
            return normalize_postgres_url(value)

    raise RuntimeError(
        "No database URL configured. Set EXTRACTION_DATABASE_URL or DATABASE_URL "
        "when EXTRACTION_STORAGE_BACKEND=sqlalchemy."
    )
