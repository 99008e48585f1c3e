from __future__ import annotations

"""
API surface for the salesdesk service.

Design intent:
- Keep transport handling thin: WebSocket frames go straight to the
  session tracker, batch queries straight to the report builder.
- Resolve collaborators lazily from app.state so tests can swap them.
- Map client input errors to 400; never let log problems fail a request.
"""

import logging
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

from salesdesk.corrections.store import CorrectionStore
from salesdesk.internal_core.config import ServiceConfig, load_config
from salesdesk.internal_core.event_log import EventLog, tail_entries, validate_day
from salesdesk.report.builder import ReportBuilder
from salesdesk.report.export import render_report
from salesdesk.sessions.tracker import SessionRegistry, SessionTracker


class SessionListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    unrecognized_only: bool = Field(alias="unrecognizedOnly")
    count: int
    sessions: list[dict[str, Any]] = Field(default_factory=list)


class CorrectionRequest(BaseModel):
    day: str = Field(min_length=1, max_length=32)
    session_id: str = Field(max_length=128)
    customer_name: str = Field(max_length=64)
    corrected_by: str | None = Field(default=None, max_length=64)


class CorrectionResponse(BaseModel):
    ok: bool
    correction: dict[str, Any]


class CustomerListResponse(BaseModel):
    date: str
    count: int
    customers: list[dict[str, Any]] = Field(default_factory=list)


class DailyReportResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    date: str
    unrecognized_only: bool = Field(alias="unrecognizedOnly")
    count: int
    reports: list[dict[str, Any]] = Field(default_factory=list)


class LogFilesResponse(BaseModel):
    mode: Literal["fixed_file", "daily_rollover"]
    files: list[str] = Field(default_factory=list)


class LogEntriesResponse(BaseModel):
    date: str | None = None
    file: str | None = None
    count: int
    entries: list[dict[str, Any]] = Field(default_factory=list)


app = FastAPI(title="salesdesk service")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_EXPORT_MEDIA_TYPES = {
    "markdown": "text/markdown; charset=utf-8",
    "csv": "text/csv; charset=utf-8",
}


def _get_config() -> ServiceConfig:
    existing = getattr(app.state, "config", None)
    if isinstance(existing, ServiceConfig):
        return existing
    created = load_config()
    setattr(app.state, "config", created)
    return created


def _get_event_log() -> EventLog:
    existing = getattr(app.state, "event_log", None)
    if isinstance(existing, EventLog):
        return existing
    created = EventLog.from_config(_get_config())
    setattr(app.state, "event_log", created)
    return created


def _get_session_registry() -> SessionRegistry:
    existing = getattr(app.state, "session_registry", None)
    if isinstance(existing, SessionRegistry):
        return existing
    created = SessionRegistry()
    setattr(app.state, "session_registry", created)
    return created


def _get_session_tracker() -> SessionTracker:
    return SessionTracker(
        _get_event_log(),
        intro_phrase=_get_config().SALESDESK_INTRO_PHRASE,
    )


def _get_correction_store() -> CorrectionStore:
    return CorrectionStore(_get_event_log())


def _get_report_builder() -> ReportBuilder:
    return ReportBuilder(
        _get_event_log(),
        correction_store=_get_correction_store(),
        intro_phrase=_get_config().SALESDESK_INTRO_PHRASE,
    )


def _require_day(day: str) -> str:
    try:
        return validate_day(day)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _resolve_limit(raw: str | None, fallback: int) -> int:
    max_limit = _get_config().SALESDESK_MAX_API_LIMIT
    try:
        parsed = int(str(raw)) if raw is not None else fallback
    except ValueError:
        return min(fallback, max_limit)
    if parsed < 1:
        return min(fallback, max_limit)
    return min(parsed, max_limit)


def _frame_text(message: dict[str, Any]) -> str:
    # Binary frames are decoded as UTF-8 text.
    data = message.get("bytes")
    if data is not None:
        return data.decode("utf-8")
    return message.get("text") or ""


def _client_label(websocket: WebSocket) -> str:
    client = websocket.client
    if client is None:
        return "unknown"
    return f"{client.host}:{client.port}"


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok", "service": "salesdesk"}


@app.websocket("/ws")
async def transcript_ws(websocket: WebSocket) -> None:
    await websocket.accept()
    registry = _get_session_registry()
    tracker = _get_session_tracker()
    handle = registry.open(_client_label(websocket))
    logger.info("connected: client=%s connection_id=%s", handle.client, handle.connection_id)

    await websocket.send_json(
        {
            "type": "welcome",
            "message": "Connected to salesdesk transcript server",
            "connectedAt": handle.connected_at,
        }
    )
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            try:
                text = _frame_text(message)
            except UnicodeDecodeError:
                await websocket.send_json({"type": "error", "detail": "invalid_encoding"})
                continue
            if not text.strip():
                await websocket.send_json({"type": "error", "detail": "empty_payload"})
                continue
            logger.debug("message from %s: %s", handle.client, text)
            result = tracker.accept(handle, text)
            try:
                await websocket.send_json(result.ack)
            finally:
                await run_in_threadpool(tracker.persist, result)
    except WebSocketDisconnect:
        pass
    finally:
        registry.close(handle)
        logger.info("disconnected: client=%s connection_id=%s", handle.client, handle.connection_id)


@app.get("/logs", response_model=LogFilesResponse)
async def log_files() -> LogFilesResponse:
    event_log = _get_event_log()
    return LogFilesResponse(mode=event_log.mode, files=event_log.list_files("messages"))


@app.get("/logs/latest", response_model=LogEntriesResponse)
async def log_latest(limit: str | None = Query(default=None)) -> LogEntriesResponse:
    path = _get_event_log().latest_message_file()
    entries = tail_entries(path, _resolve_limit(limit, 100))
    return LogEntriesResponse(
        file=str(path) if path is not None else None,
        count=len(entries),
        entries=entries,
    )


@app.get("/logs/{day}", response_model=LogEntriesResponse)
async def log_day(day: str, limit: str | None = Query(default=None)) -> LogEntriesResponse:
    resolved_day = _require_day(day)
    path = _get_event_log().path_for("messages", resolved_day)
    entries = tail_entries(path, _resolve_limit(limit, 200))
    return LogEntriesResponse(
        date=resolved_day,
        file=str(path),
        count=len(entries),
        entries=entries,
    )


@app.get("/sessions/{day}", response_model=SessionListResponse)
async def sessions_for_day(day: str, unrecognized_only: bool = False) -> SessionListResponse:
    resolved_day = _require_day(day)
    sessions = _get_report_builder().list_sessions(resolved_day, unrecognized_only=unrecognized_only)
    return SessionListResponse(
        date=resolved_day,
        unrecognized_only=unrecognized_only,
        count=len(sessions),
        sessions=[item.to_dict() for item in sessions],
    )


@app.post("/sessions/corrections", response_model=CorrectionResponse)
async def apply_session_correction(payload: CorrectionRequest) -> CorrectionResponse:
    store = _get_correction_store()
    try:
        record = store.apply(
            payload.day,
            payload.session_id,
            payload.customer_name,
            payload.corrected_by,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return CorrectionResponse(ok=True, correction=record.to_log_dict())


@app.get("/customers/{day}", response_model=CustomerListResponse)
async def customers_for_day(day: str) -> CustomerListResponse:
    resolved_day = _require_day(day)
    customers = _get_report_builder().list_customers(resolved_day)
    return CustomerListResponse(
        date=resolved_day,
        count=len(customers),
        customers=[item.to_dict() for item in customers],
    )


@app.get("/reports/daily/{day}", response_model=DailyReportResponse)
async def daily_report(day: str, unrecognized_only: bool = False) -> DailyReportResponse:
    resolved_day = _require_day(day)
    report = _get_report_builder().build_daily_report(
        resolved_day,
        unrecognized_only=unrecognized_only,
    )
    return DailyReportResponse.model_validate(report.to_dict())


@app.get("/reports/daily/{day}/export")
async def daily_report_export(
    day: str,
    export_format: str = Query(default="markdown", alias="format"),
    unrecognized_only: bool = False,
) -> PlainTextResponse:
    resolved_day = _require_day(day)
    normalized = export_format.strip().lower()
    if normalized == "md":
        normalized = "markdown"
    if normalized not in _EXPORT_MEDIA_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported export format: {export_format!r}. Use markdown or csv.",
        )
    report = _get_report_builder().build_daily_report(
        resolved_day,
        unrecognized_only=unrecognized_only,
    )
    body = render_report(report, normalized)
    extension = "md" if normalized == "markdown" else "csv"
    return PlainTextResponse(
        content=body,
        media_type=_EXPORT_MEDIA_TYPES[normalized],
        headers={
            "content-disposition": f'attachment; filename="sales-report-{resolved_day}.{extension}"'
        },
    )
