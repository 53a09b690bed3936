"""
SpeakerChunker: accumulates one speaker's PCM and slices fixed-size chunks.

- Chunk size is fixed (bytes_per_chunk, e.g. 10 seconds of audio).
- push() returns every complete chunk now available; the remainder stays buffered.
- flush() returns the (shorter) tail on session stop.

No overlap and no silence detection: chunk boundaries follow the speaker's
own audio, so consecutive chunks of one speaker tile its timeline exactly.
"""
from __future__ import annotations


class SpeakerChunker:
    """Per-speaker byte buffer that emits exact bytes_per_chunk slices."""

    def __init__(self, bytes_per_chunk: int) -> None:
        if bytes_per_chunk <= 0:
            raise ValueError(f"bytes_per_chunk must be positive, got {bytes_per_chunk}")
        self._bytes_per_chunk = bytes_per_chunk
        self._buffer = bytearray()

    def push(self, pcm: bytes) -> list[bytes]:
        """Append PCM. Returns complete chunks in order (possibly empty list)."""
        self._buffer.extend(pcm)
        out: list[bytes] = []
        while len(self._buffer) >= self._bytes_per_chunk:
            out.append(bytes(self._buffer[: self._bytes_per_chunk]))
            del self._buffer[: self._bytes_per_chunk]
        return out

    def flush(self) -> bytes | None:
        """Return the buffered tail and clear it, or None if nothing is pending."""
        if not self._buffer:
            return None
        tail = bytes(self._buffer)
        self._buffer.clear()
        return tail

    def __len__(self) -> int:
        return len(self._buffer)
