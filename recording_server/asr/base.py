"""
TranscriptionEngine: abstract interface for file-based speech-to-text.

Implementations: WhisperCliEngine (whisper-cli subprocess), WhisperServerEngine
(whisper.cpp HTTP server). Input is a WAV file, output is a WebVTT caption file.
All implementations must not block the event loop.
"""
from __future__ import annotations

from abc import ABC, abstractmethod


class TranscriptionError(RuntimeError):
    """Transcriber failed: nonzero exit, HTTP error, timeout, or no caption file produced."""


class TranscriptionEngine(ABC):
    """Abstract transcriber. transcribe() writes output_path or raises TranscriptionError."""

    @abstractmethod
    async def transcribe(self, model: str, input_path: str, output_path: str) -> None:
        """
        Transcribe input_path (WAV) into output_path (VTT) with the given model reference.
        Raises TranscriptionError on failure.
        """
        ...

    @abstractmethod
    async def ensure_available(self) -> None:
        """Raise TranscriptionError if the backend cannot be used. Called at startup."""
        ...
