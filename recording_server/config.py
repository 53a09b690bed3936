"""Application configuration. Loads from env vars."""
import os
import tempfile
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Server: PORT unset → 8766 in development, 8765 in production
    HOST: str = "0.0.0.0"
    PORT: Optional[int] = None
    ENV: Literal["development", "production"] = "development"

    # Audio defaults when the framer omits format fields: PCM 16-bit, 48kHz stereo
    DEFAULT_SAMPLE_RATE: int = 48000
    DEFAULT_CHANNELS: int = 2
    DEFAULT_SPEAKER_ID: str = "unknown"

    # Fixed chunk duration fed to the transcriber (the tail at stop may be shorter)
    CHUNK_SECONDS: float = 10.0

    # Per-recording output: <RECORDING_DIR>/<recording_id>/{audio.vtt, <speaker>.wav}
    RECORDING_DIR: str = os.path.join(".", ".tmp", "recordings")
    # Scratch WAV/VTT files per chunk; removed after each chunk
    TMP_DIR: str = os.path.join(tempfile.gettempdir(), "rec-chunks")

    # Per-speaker WAV persistence when the client sends no includeAudio preference
    DEFAULT_INCLUDE_AUDIO: bool = False

    # Transcription backend: "cli" runs whisper-cli, "server" posts to a whisper.cpp server
    ASR_BACKEND: Literal["cli", "server"] = "cli"
    WHISPER_CLI: str = "whisper-cli"
    WHISPER_MODEL: str = os.path.join(os.path.expanduser("~"), "models", "ggml-base.en.bin")
    WHISPER_SERVER_URL: str = "http://127.0.0.1:8080"
    # 0 = no timeout; a hung transcription only stalls its own session
    TRANSCRIBE_TIMEOUT_SECONDS: float = 0.0
    CHECK_ASR_ON_STARTUP: bool = True

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path (empty = console only)
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def port(self) -> int:
        if self.PORT:
            return self.PORT
        return 8765 if self.ENV == "production" else 8766


def get_settings() -> Settings:
    return Settings()
