"""ASR: swappable file-based Whisper transcribers."""
from recording_server.config import Settings, get_settings

from .base import TranscriptionEngine, TranscriptionError
from .whisper_cli import WhisperCliEngine
from .whisper_server import WhisperServerEngine

__all__ = [
    "TranscriptionEngine",
    "TranscriptionError",
    "WhisperCliEngine",
    "WhisperServerEngine",
    "create_transcription_engine",
]


def create_transcription_engine(settings: Settings | None = None) -> TranscriptionEngine:
    """Return the transcriber selected by ASR_BACKEND."""
    settings = settings or get_settings()
    timeout = settings.TRANSCRIBE_TIMEOUT_SECONDS or None
    if settings.ASR_BACKEND == "server":
        return WhisperServerEngine(settings.WHISPER_SERVER_URL, timeout=timeout)
    return WhisperCliEngine(settings.WHISPER_CLI, timeout=timeout)
