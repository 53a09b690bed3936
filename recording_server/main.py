"""
FastAPI app: WebSocket endpoint for multi-speaker recording and transcription.

Framer sends MessagePack envelopes (init / audio / stop) or raw PCM 16-bit LE.
Server answers once per recording with JSON:
{ "type": "done", "recordingId": "...", "vttPath": "/path/audio.vtt" | null }

HTTP: GET /health, GET /sessions (active recordings, for operators).
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, WebSocket

from recording_server.asr import TranscriptionEngine, create_transcription_engine
from recording_server.config import Settings, get_settings
from recording_server.schemas.envelope import SessionInfo
from recording_server.session_manager import SessionManager
from recording_server.websocket_manager import ConnectionHandler

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    """Console logging at LOG_LEVEL; also to LOG_FILE when set."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE:
        os.makedirs(os.path.dirname(settings.LOG_FILE) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(settings.LOG_FILE, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def create_app(engine: TranscriptionEngine | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the app. engine/settings are injectable for tests; defaults come from env."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        asr = engine or create_transcription_engine(cfg)
        if cfg.CHECK_ASR_ON_STARTUP:
            # Refuse to start without a working transcriber
            await asr.ensure_available()
        app.state.settings = cfg
        app.state.session_manager = SessionManager.from_settings(asr, cfg)
        logger.info("Recording server ready (backend=%s, chunk=%ss)", cfg.ASR_BACKEND, cfg.CHUNK_SECONDS)
        yield
        # Shutdown: close open recordings so their WAV headers get fixed
        await app.state.session_manager.shutdown()
        close = getattr(asr, "close", None)
        if close is not None:
            close()

    app = FastAPI(
        title="Multi-speaker recording server",
        description="WebSocket PCM ingestion, chunked Whisper transcription, stitched WebVTT",
        lifespan=lifespan,
    )

    @app.websocket("/ws/record")
    async def websocket_record(websocket: WebSocket) -> None:
        """Framer connection: envelopes or raw PCM in, done notifications out."""
        await websocket.accept()
        handler = ConnectionHandler(websocket, websocket.app.state.session_manager, websocket.app.state.settings)
        await handler.run()

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.get("/sessions", response_model=list[SessionInfo])
    async def sessions() -> list[SessionInfo]:
        return app.state.session_manager.describe()

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve on HOST:PORT (8766 dev / 8765 production by default)."""
    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(app, host=settings.HOST, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
