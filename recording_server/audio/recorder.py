"""
SpeakerRecorder: optional per-speaker WAV persistence for one recording.

- When persistence is disabled: no-op (append/finalize do nothing).
- When enabled: the file is created on the first write with a header whose
  data size is 0, PCM is streamed to disk as it arrives, and the sizes are
  patched in place at finalize().
- Gap filling: before each write the file is padded with silence up to the
  wall-clock sample position, so every speaker's file in a recording has the
  same timeline regardless of when that speaker talked.
- WavStreamRecorder does blocking file I/O in every method. The session
  manager calls it from one writer thread per recording, never on the event loop.
"""
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from recording_server.audio.wav import SAMPLE_WIDTH, build_wav, rewrite_wav_sizes

logger = logging.getLogger(__name__)

# Silence is written in blocks of at most 1 MiB
SILENCE_BLOCK_BYTES = 1024 * 1024


class SpeakerRecorderBase(ABC):
    """Base for speaker recorder. Counters are in bytes / sample frames of PCM data (header excluded)."""

    bytes_written: int = 0
    samples_written: int = 0

    @abstractmethod
    def append(self, pcm: bytes, target_samples: int) -> None:
        """Pad silence up to target_samples, then append pcm."""
        ...

    @abstractmethod
    def finalize(self, end_samples: int) -> Optional[str]:
        """Pad trailing silence to end_samples, close, fix header. Returns path or None."""
        ...


class NoOpSpeakerRecorder(SpeakerRecorderBase):
    """Recorder when persistence is disabled. No file I/O."""

    def append(self, pcm: bytes, target_samples: int) -> None:
        pass

    def finalize(self, end_samples: int) -> Optional[str]:
        return None


class WavStreamRecorder(SpeakerRecorderBase):
    """One continuous WAV file per speaker, written incrementally."""

    def __init__(self, path: str, rate: int, channels: int) -> None:
        self._path = path
        self._rate = rate
        self._channels = channels
        self._frame_bytes = channels * SAMPLE_WIDTH
        self.bytes_written = 0
        self.samples_written = 0
        self._opened = False
        self._finalized = False
        self._file = None

    def _open(self) -> None:
        """Create the file with a header-only WAV. Failure leaves the recorder inert."""
        self._opened = True
        try:
            os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
            self._file = open(self._path, "wb")
            self._file.write(build_wav(b"", self._rate, self._channels))
        except OSError as e:
            logger.warning("Recording: cannot open %s: %s", self._path, e)
            if self._file is not None:
                self._file.close()
            self._file = None

    def _write_silence(self, samples: int) -> None:
        remaining = samples * self._frame_bytes
        block = np.zeros(min(remaining, SILENCE_BLOCK_BYTES) // 2, dtype=np.int16).tobytes()
        while remaining > 0:
            n = min(remaining, len(block))
            self._file.write(block[:n])
            self.bytes_written += n
            remaining -= n
        self.samples_written += samples

    def pad_to(self, target_samples: int) -> None:
        """Write exactly the silence needed to reach target_samples (nothing if ahead)."""
        if self._file is None:
            return
        gap = target_samples - self.samples_written
        if gap > 0:
            self._write_silence(gap)

    def append(self, pcm: bytes, target_samples: int) -> None:
        if self._finalized:
            return
        if not self._opened:
            self._open()
        if self._file is None:
            return
        self.pad_to(target_samples)
        self._file.write(pcm)
        self.bytes_written += len(pcm)
        self.samples_written += len(pcm) // self._frame_bytes

    def finalize(self, end_samples: int) -> Optional[str]:
        if self._finalized:
            return None
        self._finalized = True
        if not self._opened:
            self._open()
        if self._file is None:
            return None
        try:
            self.pad_to(end_samples)
        except OSError as e:
            logger.warning("Recording: trailing silence failed for %s: %s", self._path, e)
        try:
            self._file.close()
        except OSError as e:
            logger.warning("Recording: close failed for %s: %s", self._path, e)
        finally:
            self._file = None
        try:
            rewrite_wav_sizes(self._path, self.bytes_written)
        except OSError as e:
            logger.warning("Recording: header rewrite failed for %s: %s", self._path, e)
            return None
        return self._path


def create_speaker_recorder(
    include_audio: bool, path: str, rate: int, channels: int
) -> SpeakerRecorderBase:
    """Create a streaming WAV recorder when the recording persists audio; else no-op."""
    if include_audio:
        return WavStreamRecorder(path, rate, channels)
    return NoOpSpeakerRecorder()
