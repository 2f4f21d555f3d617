from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI

from app.config import get_app_settings


def _validate_env() -> None:
    """
    Validate extraction environment variables at startup.

    Raises RuntimeError listing every problem so the operator can fix them
    in one restart cycle.

    Rules:
    - EXTRACTION_STORAGE_BACKEND must be memory or sqlalchemy.
    - The sqlalchemy backend needs EXTRACTION_DATABASE_URL or DATABASE_URL.
    - EXTRACTION_ANALYSIS_PROVIDER must be heuristic or openai.
    - The openai provider needs OPENAI_API_KEY.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    backend = os.getenv("EXTRACTION_STORAGE_BACKEND", "memory").strip().lower()
    if backend not in {"memory", "sqlalchemy"}:
        errors.append(
            f"EXTRACTION_STORAGE_BACKEND='{backend}' is not valid. Allowed values: ['memory', 'sqlalchemy']."
        )
    elif backend == "sqlalchemy":
        database_url = os.getenv("EXTRACTION_DATABASE_URL", "").strip() or os.getenv("DATABASE_URL", "").strip()
        if not database_url:
            errors.append(
                "EXTRACTION_STORAGE_BACKEND=sqlalchemy but no database URL is configured. "
                "Set EXTRACTION_DATABASE_URL or DATABASE_URL."
            )

    provider = os.getenv("EXTRACTION_ANALYSIS_PROVIDER", "heuristic").strip().lower()
    if provider not in {"heuristic", "openai"}:
        errors.append(
            f"EXTRACTION_ANALYSIS_PROVIDER='{provider}' is not valid. Allowed values: ['heuristic', 'openai']."
        )
    elif provider == "openai" and not os.getenv("OPENAI_API_KEY", "").strip():
        errors.append("EXTRACTION_ANALYSIS_PROVIDER=openai but OPENAI_API_KEY is not set.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    logging.basicConfig(
        level=getattr(logging, get_app_settings().log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Start the extraction worker on boot; stop it on exit."""
    from app.services.extraction_service import get_extraction_service

    settings = get_app_settings()
    service = get_extraction_service()
    if settings.start_worker:
        service.start()
        logging.getLogger(__name__).info("Extraction worker started")
    try:
        yield
    finally:
        service.shutdown(timeout=settings.worker_shutdown_timeout_seconds)
        logging.getLogger(__name__).info("Extraction worker shut down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title=get_app_settings().title,
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import extraction_router

    application.include_router(extraction_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()
