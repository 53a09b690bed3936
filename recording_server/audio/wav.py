"""
WAV encoding for 16-bit PCM.

- build_wav(): canonical 44-byte RIFF header + payload. Used for per-chunk
  transcription input and, with an empty payload, to seed a streaming file.
- rewrite_wav_sizes(): patch the two size fields once the final length is known.
  A streaming file is written with a speculative header (data size 0); the
  RIFF chunk size lives at offset 4 and the data chunk size at offset 40.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass

HEADER_SIZE = 44
BITS_PER_SAMPLE = 16
SAMPLE_WIDTH = BITS_PER_SAMPLE // 8

RIFF_SIZE_OFFSET = 4
DATA_SIZE_OFFSET = 40

# RIFF, size, WAVE, "fmt ", 16, format, channels, rate, byte rate, block align, bits, "data", size
_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass
class WavHeader:
    """Decoded canonical WAV header fields."""

    riff_size: int
    audio_format: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_size: int


def build_wav(pcm: bytes, rate: int, channels: int) -> bytes:
    """Return a RIFF/WAV byte buffer wrapping raw 16-bit little-endian PCM."""
    if rate <= 0:
        raise ValueError(f"sample rate must be positive, got {rate}")
    if channels <= 0:
        raise ValueError(f"channel count must be positive, got {channels}")
    data_size = len(pcm)
    header = _HEADER.pack(
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        1,  # PCM
        channels,
        rate,
        rate * channels * SAMPLE_WIDTH,
        channels * SAMPLE_WIDTH,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )
    return header + bytes(pcm)


def read_wav_header(data: bytes) -> WavHeader:
    """Decode the first 44 bytes of a canonical WAV file."""
    if len(data) < HEADER_SIZE:
        raise ValueError(f"WAV header needs {HEADER_SIZE} bytes, got {len(data)}")
    (
        riff,
        riff_size,
        wave,
        fmt,
        _fmt_size,
        audio_format,
        channels,
        rate,
        byte_rate,
        block_align,
        bits,
        data_tag,
        data_size,
    ) = _HEADER.unpack(data[:HEADER_SIZE])
    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_tag != b"data":
        raise ValueError("not a canonical PCM WAV header")
    return WavHeader(
        riff_size=riff_size,
        audio_format=audio_format,
        channels=channels,
        sample_rate=rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_size=data_size,
    )


def rewrite_wav_sizes(path: str, data_size: int) -> None:
    """Patch RIFF chunk size and data chunk size in place. Blocking; run in executor."""
    with open(path, "r+b") as f:
        f.seek(RIFF_SIZE_OFFSET)
        f.write(struct.pack("<I", 36 + data_size))
        f.seek(DATA_SIZE_OFFSET)
        f.write(struct.pack("<I", data_size))
