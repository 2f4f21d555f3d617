"""
Schemas for extraction task lifecycle, records, logs and analysis endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SelectorSetModel(BaseModel):
    primary: str = ""
    fallback: list[str] = Field(default_factory=list)
    fields: dict[str, list[str]] = Field(default_factory=dict)


class ExtractionOptionsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_pages: int | None = Field(default=None, ge=1, le=500)
    delay_seconds: float | None = Field(default=None, ge=0.0, le=300.0)
    pagination_mode: Literal["query", "path", "next_link"] = "query"
    page_param: str = "page"
    render_mode: Literal["static", "dynamic", "stealth"] | None = None
    browser_type: Literal["chromium", "firefox", "webkit"] | None = None
    wait_for_selector: str | None = None
    wait_for_network_idle: bool = True
    scroll_to_bottom: bool = False
    require_next_page: bool = True
    analysis_hint: str | None = None


class CreateExtractionTaskRequest(BaseModel):
    url: str = Field(min_length=1)
    name: str | None = None
    selectors: SelectorSetModel | None = None
    options: ExtractionOptionsModel = Field(default_factory=ExtractionOptionsModel)


class ExtractionTaskResponse(BaseModel):
    id: UUID
    name: str
    url: str
    status: str
    progress: int
    total_items: int
    scraped_items: int
    selectors: dict[str, Any] | None = None
    strategy: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class ExtractionTaskListResponse(BaseModel):
    tasks: list[ExtractionTaskResponse] = Field(default_factory=list)


class ScrapedRecordResponse(BaseModel):
    id: UUID
    task_id: UUID
    data: dict[str, Any]
    url: str
    scraped_at: datetime


class ScrapedRecordPageResponse(BaseModel):
    task_id: UUID
    total: int
    limit: int
    offset: int
    records: list[ScrapedRecordResponse] = Field(default_factory=list)


class TaskLogResponse(BaseModel):
    id: UUID
    task_id: UUID
    level: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class TaskLogListResponse(BaseModel):
    task_id: UUID
    logs: list[TaskLogResponse] = Field(default_factory=list)


class AnalyzeRequest(BaseModel):
    url: str = Field(min_length=1)
    hint: str | None = None


class AnalyzeResponse(BaseModel):
    url: str
    source: str
    fallback: bool
    fallback_reason: str | None = None
    cached: bool = False
    selectors: SelectorSetModel
    strategy: str
    render_mode: str
    complexity: str
    confidence: float
    structure: dict[str, Any] = Field(default_factory=dict)
    recommendations: list[str] = Field(default_factory=list)
