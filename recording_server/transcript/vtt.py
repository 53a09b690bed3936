"""
Caption stitching: merge per-chunk WebVTT files into one cumulative session file.

Each chunk is transcribed on its own, so its cue times start at 0. Stitching
shifts every timing line by the speaker's elapsed offset, optionally tags the
first text line of each cue with the speaker (<v Name>), and appends to the
session file. The session file owns exactly one WEBVTT banner.

Append-only: chunks must be stitched in non-decreasing offset order per
speaker. The session drain loop guarantees that (FIFO, single consumer).
"""
from __future__ import annotations

import logging
import os
import re
from typing import Optional

from recording_server.transcript.timestamps import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

VTT_BANNER = "WEBVTT"
CUE_ARROW = "-->"

_UNSAFE_NAME_CHARS = re.compile(r"[<>\r\n]")


def _is_banner(line: str) -> bool:
    s = line.strip()
    return s == VTT_BANNER or s.startswith(VTT_BANNER + " ") or s.startswith(VTT_BANNER + "\t")


def _shift_timing_line(line: str, offset_sec: float) -> str:
    """Shift both ends of "start --> end [settings]" by offset_sec. Cue settings are kept."""
    start, _, rest = line.partition(CUE_ARROW)
    rest = rest.strip()
    end, _, settings = rest.partition(" ")
    shifted = (
        f"{format_timestamp(parse_timestamp(start) + offset_sec)} {CUE_ARROW} "
        f"{format_timestamp(parse_timestamp(end) + offset_sec)}"
    )
    settings = settings.strip()
    return f"{shifted} {settings}" if settings else shifted


def voice_tag(name: Optional[str]) -> Optional[str]:
    """Return "<v Name>" for a display name, or None if the name is empty after cleaning."""
    if not name:
        return None
    safe = _UNSAFE_NAME_CHARS.sub("", str(name)).strip()
    if not safe:
        return None
    return f"<v {safe}>"


def shift_vtt(text: str, offset_sec: float, speaker_name: Optional[str] = None) -> tuple[list[str], int]:
    """
    Rewrite one chunk's VTT text. Returns (output lines without banner, cue count).
    Leading and trailing blank lines are dropped.
    """
    tag = voice_tag(speaker_name)
    out: list[str] = []
    cues = 0
    expect_text = False
    for line in text.splitlines():
        if CUE_ARROW in line:
            out.append(_shift_timing_line(line, offset_sec))
            cues += 1
            expect_text = True
        elif _is_banner(line):
            continue
        elif expect_text and line.strip():
            out.append(f"{tag} {line}" if tag else line)
            expect_text = False
        else:
            out.append(line)
            if not line.strip():
                expect_text = False
    while out and not out[0].strip():
        out.pop(0)
    while out and not out[-1].strip():
        out.pop()
    return out, cues


def append_vtt_with_offset(
    dest_path: str,
    chunk_path: str,
    offset_sec: float,
    speaker_name: Optional[str] = None,
) -> int:
    """
    Append chunk_path's cues to dest_path shifted by offset_sec. Blocking; run in executor.

    The destination banner is written once when the file is created. Chunks
    without cues write nothing. Returns the number of cues appended.
    """
    with open(chunk_path, "r", encoding="utf-8") as f:
        raw = f.read()
    lines, cues = shift_vtt(raw, offset_sec, speaker_name)
    if cues == 0:
        logger.debug("Stitch: no cues in %s", chunk_path)
        return 0
    os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)
    is_new = not os.path.exists(dest_path)
    with open(dest_path, "a", encoding="utf-8") as f:
        if is_new:
            f.write(f"{VTT_BANNER}\n\n")
        f.write("\n".join(lines) + "\n\n")
    return cues
