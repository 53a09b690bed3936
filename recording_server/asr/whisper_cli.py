"""
WhisperCliEngine: transcription via the whisper.cpp command line tool.

- One subprocess per chunk: whisper-cli -m MODEL -f IN.wav -ovtt -of OUT_BASE
- whisper-cli appends ".vtt" to the -of base, so OUT_BASE is output_path minus extension.
- Arguments are passed as a list (no shell), so paths need no quoting.
"""
from __future__ import annotations

import asyncio
import logging
import os

from recording_server.asr.base import TranscriptionEngine, TranscriptionError

logger = logging.getLogger(__name__)

# Keep the tail of stderr in error messages
_STDERR_TAIL = 2000


class WhisperCliEngine(TranscriptionEngine):
    """Runs whisper-cli in a subprocess; the event loop stays free while it runs."""

    def __init__(self, executable: str = "whisper-cli", timeout: float | None = None) -> None:
        self._executable = executable
        # None or 0: wait forever
        self._timeout = timeout or None

    async def _run(self, *args: str) -> tuple[int, bytes]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._executable,
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscriptionError(f"{self._executable} could not be started: {e}") from e
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise TranscriptionError(f"{self._executable} timed out after {self._timeout}s")
        return proc.returncode, stderr or b""

    async def ensure_available(self) -> None:
        code, _ = await self._run("--help")
        if code != 0:
            raise TranscriptionError(f"{self._executable} not available on PATH")

    async def transcribe(self, model: str, input_path: str, output_path: str) -> None:
        out_base, ext = os.path.splitext(output_path)
        fmt_flag = "-ovtt" if ext == ".vtt" else "-otxt"
        code, stderr = await self._run("-m", model, "-f", input_path, fmt_flag, "-of", out_base)
        if code != 0:
            tail = stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL:]
            raise TranscriptionError(f"{self._executable} exited with {code}: {tail}")
        if not os.path.exists(output_path):
            raise TranscriptionError(f"{self._executable} did not produce transcript at {output_path}")
        logger.debug("whisper-cli transcribed %s -> %s", input_path, output_path)
