"""
app/api/routers/extraction.py

Extraction task lifecycle, records, logs, CSV export, analysis and the
progress WebSocket.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
from collections.abc import Iterator
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from fastapi.responses import StreamingResponse

from app.domain.extraction import ExtractionTask
from app.extraction.errors import FetchError, InvalidTaskTransitionError, TaskNotFoundError
from app.extraction.logging_utils import log_event
from app.extraction.types import ProgressEvent
from app.schemas.extraction import (
    AnalyzeRequest,
    AnalyzeResponse,
    CreateExtractionTaskRequest,
    ExtractionTaskListResponse,
    ExtractionTaskResponse,
    ScrapedRecordPageResponse,
    ScrapedRecordResponse,
    SelectorSetModel,
    TaskLogListResponse,
    TaskLogResponse,
)
from app.services.extraction_service import ExtractionService, RecordExport, get_extraction_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/extraction", tags=["extraction"])


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, TaskNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidTaskTransitionError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, FetchError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _task_response(task: ExtractionTask) -> ExtractionTaskResponse:
    return ExtractionTaskResponse(
        id=task.id,
        name=task.name,
        url=task.url,
        status=task.status,
        progress=task.progress,
        total_items=task.total_items,
        scraped_items=task.scraped_items,
        selectors=task.selectors,
        strategy=task.strategy,
        options=task.options,
        error_message=task.error_message,
        created_at=task.created_at,
        updated_at=task.updated_at,
        started_at=task.started_at,
        completed_at=task.completed_at,
    )


def _to_csv_streaming(export: RecordExport, filename: str) -> StreamingResponse:
    def _generate() -> Iterator[str]:
        buf = io.StringIO()
        writer = csv.DictWriter(
            buf,
            fieldnames=export.fields,
            extrasaction="ignore",
            restval="",
            lineterminator="\r\n",
        )
        writer.writeheader()
        yield buf.getvalue()

        for row in export.rows:
            buf.seek(0)
            buf.truncate(0)
            writer.writerow({key: ("" if value is None else value) for key, value in row.items()})
            yield buf.getvalue()

    return StreamingResponse(
        content=_generate(),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "X-Row-Count": str(len(export.rows)),
        },
    )


@router.post(
    "/tasks",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ExtractionTaskResponse,
)
def submit_extraction_task(
    payload: CreateExtractionTaskRequest,
    service: ExtractionService = Depends(get_extraction_service),
) -> ExtractionTaskResponse:
    """
    Persist a pending task and queue it for the background worker.
    """

    try:
        task = service.submit_task(
            url=payload.url,
            name=payload.name,
            selectors=payload.selectors.model_dump() if payload.selectors else None,
            options=payload.options.model_dump(exclude_none=True),
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _task_response(task)


@router.get("/tasks", response_model=ExtractionTaskListResponse)
def list_extraction_tasks(
    limit: int = Query(default=50, ge=1, le=500),
    service: ExtractionService = Depends(get_extraction_service),
) -> ExtractionTaskListResponse:
    return ExtractionTaskListResponse(tasks=[_task_response(task) for task in service.list_tasks(limit=limit)])


@router.get("/tasks/{task_id}", response_model=ExtractionTaskResponse)
def get_extraction_task(
    task_id: UUID,
    service: ExtractionService = Depends(get_extraction_service),
) -> ExtractionTaskResponse:
    try:
        return _task_response(service.get_task(task_id))
    except TaskNotFoundError as exc:
        raise _http_error(exc) from exc


@router.post("/tasks/{task_id}/pause", response_model=ExtractionTaskResponse)
def pause_extraction_task(
    task_id: UUID,
    service: ExtractionService = Depends(get_extraction_service),
) -> ExtractionTaskResponse:
    """
    Pause a queued task at once, or a running one at its next page boundary.
    """

    try:
        return _task_response(service.pause_task(task_id))
    except (TaskNotFoundError, InvalidTaskTransitionError) as exc:
        raise _http_error(exc) from exc


@router.post("/tasks/{task_id}/stop", response_model=ExtractionTaskResponse)
def stop_extraction_task(
    task_id: UUID,
    service: ExtractionService = Depends(get_extraction_service),
) -> ExtractionTaskResponse:
    try:
        return _task_response(service.stop_task(task_id))
    except (TaskNotFoundError, InvalidTaskTransitionError) as exc:
        raise _http_error(exc) from exc


@router.get("/tasks/{task_id}/records", response_model=ScrapedRecordPageResponse)
def list_extraction_records(
    task_id: UUID,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    service: ExtractionService = Depends(get_extraction_service),
) -> ScrapedRecordPageResponse:
    try:
        records, total = service.list_records(task_id, limit=limit, offset=offset)
    except TaskNotFoundError as exc:
        raise _http_error(exc) from exc

    return ScrapedRecordPageResponse(
        task_id=task_id,
        total=total,
        limit=limit,
        offset=offset,
        records=[
            ScrapedRecordResponse(
                id=record.id,
                task_id=record.task_id,
                data=record.data,
                url=record.url,
                scraped_at=record.scraped_at,
            )
            for record in records
        ],
    )


@router.get("/tasks/{task_id}/logs", response_model=TaskLogListResponse)
def list_extraction_logs(
    task_id: UUID,
    service: ExtractionService = Depends(get_extraction_service),
) -> TaskLogListResponse:
    try:
        entries = service.list_logs(task_id)
    except TaskNotFoundError as exc:
        raise _http_error(exc) from exc

    return TaskLogListResponse(
        task_id=task_id,
        logs=[
            TaskLogResponse(
                id=entry.id,
                task_id=entry.task_id,
                level=entry.level,
                message=entry.message,
                metadata=entry.metadata,
                created_at=entry.created_at,
            )
            for entry in entries
        ],
    )


@router.get("/tasks/{task_id}/export")
def export_extraction_records(
    task_id: UUID,
    service: ExtractionService = Depends(get_extraction_service),
) -> StreamingResponse:
    """
    Download every record of a task as CSV.
    """

    try:
        export = service.export_records(task_id)
    except TaskNotFoundError as exc:
        raise _http_error(exc) from exc

    if not export.rows:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Task {task_id} has no records to export.",
        )
    return _to_csv_streaming(export, f"extraction_{task_id}.csv")


@router.post("/analyze", response_model=AnalyzeResponse)
def analyze_page(
    payload: AnalyzeRequest,
    service: ExtractionService = Depends(get_extraction_service),
) -> AnalyzeResponse:
    try:
        outcome = service.analyze(url=payload.url, hint=payload.hint)
    except (ValueError, FetchError) as exc:
        raise _http_error(exc) from exc

    result = outcome.result
    return AnalyzeResponse(
        url=payload.url.strip(),
        source=result.source,
        fallback=outcome.is_fallback,
        fallback_reason=getattr(outcome, "reason", None),
        cached=getattr(outcome, "cached", False),
        selectors=SelectorSetModel(**result.selectors.to_dict()),
        strategy=result.strategy,
        render_mode=result.render_mode,
        complexity=result.complexity,
        confidence=result.confidence,
        structure=result.structure.to_dict(),
        recommendations=list(result.recommendations),
    )


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws")
async def extraction_progress_stream(
    websocket: WebSocket,
    task_id: UUID | None = None,
    service: ExtractionService = Depends(get_extraction_service),
) -> None:
    """
    Push progress events as JSON; `?task_id=` narrows the stream to one task.
    """

    await websocket.accept()
    loop = asyncio.get_running_loop()
    events: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    wanted = str(task_id) if task_id else None

    def _listener(event: ProgressEvent) -> None:
        if wanted is None or event.task_id == wanted:
            loop.call_soon_threadsafe(events.put_nowait, event.to_payload())

    unsubscribe = service.channel.subscribe(_listener)
    disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
    log_event(logger, logging.INFO, "progress_stream_opened", task_id=wanted)
    try:
        while True:
            next_event = asyncio.create_task(events.get())
            done, _ = await asyncio.wait(
                {next_event, disconnected},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if disconnected in done:
                next_event.cancel()
                break
            await websocket.send_json(next_event.result())
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        disconnected.cancel()
        log_event(logger, logging.INFO, "progress_stream_closed", task_id=wanted)
