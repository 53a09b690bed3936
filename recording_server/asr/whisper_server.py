"""
WhisperServerEngine: transcription via a whisper.cpp HTTP server.

Posts the chunk WAV to {url}/inference with response_format=vtt and writes the
returned captions to output_path. The model is whichever one the server has
loaded; the model reference is only logged. Runs HTTP in executor to avoid
blocking the event loop.
"""
from __future__ import annotations

import asyncio
import logging
import os

import httpx

from recording_server.asr.base import TranscriptionEngine, TranscriptionError

logger = logging.getLogger(__name__)


def _sync_transcribe_server(
    client: httpx.Client, url: str, input_path: str, output_path: str
) -> None:
    """Blocking HTTP call; run in executor."""
    with open(input_path, "rb") as f:
        files = {"file": (os.path.basename(input_path), f, "audio/wav")}
        data = {"response_format": "vtt", "temperature": "0.0"}
        try:
            resp = client.post(f"{url}/inference", files=files, data=data)
        except httpx.HTTPError as e:
            raise TranscriptionError(f"whisper server request failed: {e}") from e
    if resp.status_code != 200:
        raise TranscriptionError(f"whisper server returned {resp.status_code}: {resp.text[:500]}")
    text = resp.text
    if not text.strip():
        raise TranscriptionError("whisper server returned an empty transcript")
    with open(output_path, "w", encoding="utf-8") as out:
        out.write(text)


class WhisperServerEngine(TranscriptionEngine):
    """
    Remote whisper.cpp server. async transcribe() runs HTTP in executor.
    transport is injectable for tests (httpx.MockTransport).
    """

    def __init__(
        self,
        url: str,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._client = httpx.Client(timeout=timeout or None, transport=transport)

    async def ensure_available(self) -> None:
        loop = asyncio.get_event_loop()
        try:
            resp = await loop.run_in_executor(None, self._client.get, self._url)
        except httpx.HTTPError as e:
            raise TranscriptionError(f"whisper server not reachable at {self._url}: {e}") from e
        if resp.status_code >= 500:
            raise TranscriptionError(f"whisper server unhealthy at {self._url}: {resp.status_code}")

    async def transcribe(self, model: str, input_path: str, output_path: str) -> None:
        logger.debug("whisper server %s transcribing %s (model %s is server-side)", self._url, input_path, model)
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(
            None,
            _sync_transcribe_server,
            self._client,
            self._url,
            input_path,
            output_path,
        )

    def close(self) -> None:
        self._client.close()
