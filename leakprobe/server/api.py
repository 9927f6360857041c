"""
leakprobe/server/api.py
Reference append-only log receiver for probe reports.

POST /log {"logContent": "..."} appends one timestamped entry to the
configured log file. Served with uvicorn:

    uvicorn leakprobe.server.api:app --port 9999
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ValidationError

from leakprobe import __version__
from leakprobe.base.config import LeakProbeConfig, get_config
from leakprobe.errors import ErrorCode, LeakProbeError
from leakprobe.reporting.types import iso_now

logger = logging.getLogger(__name__)


class LogEntry(BaseModel):
    logContent: Optional[str] = None


async def _read_entry(request: Request) -> Optional[LogEntry]:
    try:
        payload = await request.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    try:
        return LogEntry.model_validate(payload)
    except ValidationError:
        return None


class LogFileWriter:
    """Serializes appends so concurrent requests never interleave entries."""

    def __init__(self, path: Path):
        self.path = path
        self._lock: Optional[asyncio.Lock] = None

    def _append(self, entry: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(entry)

    async def append(self, content: str) -> None:
        if self._lock is None:
            self._lock = asyncio.Lock()
        entry = f"--- Received: {iso_now()} ---\n{content}\n\n"
        async with self._lock:
            try:
                await asyncio.to_thread(self._append, entry)
            except OSError as e:
                raise LeakProbeError(
                    ErrorCode.SINK_DELIVERY_FAILED,
                    f"Failed to write to log file: {e}",
                    details={"path": str(self.path)},
                    http_status=500,
                ) from e


def create_app(config: Optional[LeakProbeConfig] = None) -> FastAPI:
    cfg = config or get_config()
    writer = LogFileWriter(cfg.sink_log_path)
    max_body = cfg.sink.max_body_mb * 1024 * 1024

    app = FastAPI(
        title="leakprobe log receiver",
        description="Append-only sink for WebRTC leak reports",
        version=__version__,
    )
    app.state.writer = writer

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(LeakProbeError)
    async def leakprobe_error_handler(request: Request, exc: LeakProbeError):
        logger.error(f"[Receiver] {exc.code.value}: {exc.message}")
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.middleware("http")
    async def limit_body_size(request: Request, call_next):
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > max_body:
            logger.warning(f"[Receiver] Rejected {length}-byte body")
            return PlainTextResponse("Payload too large.", status_code=413)
        return await call_next(request)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/log")
    async def receive_log(request: Request):
        # Parsed by hand: a missing, empty or mistyped body is a 400, not a 422
        entry = await _read_entry(request)
        if entry is None or not entry.logContent:
            logger.error("[Receiver] Received request with no log content.")
            return PlainTextResponse("No log content received.", status_code=400)

        await writer.append(entry.logContent)
        logger.info("[Receiver] Successfully logged new client entry.")
        return PlainTextResponse("Log received.", status_code=200)

    return app


app = create_app()
