"""WebVTT timecodes <-> seconds."""
from __future__ import annotations

import re

# HH:MM:SS.mmm; the hours field is optional in WebVTT (MM:SS.mmm)
_TIMESTAMP_RE = re.compile(r"^(?:(\d+):)?(\d{2}):(\d{2})\.(\d{3})")


def parse_timestamp(ts: str) -> float:
    """
    Parse "HH:MM:SS.mmm" into seconds.

    Lenient: malformed input returns 0.0 instead of raising, so a bad timing
    line in one transcriber output cannot abort stitching.
    """
    m = _TIMESTAMP_RE.match((ts or "").strip())
    if not m:
        return 0.0
    hours = int(m.group(1) or 0)
    minutes, seconds, millis = int(m.group(2)), int(m.group(3)), int(m.group(4))
    return hours * 3600 + minutes * 60 + seconds + millis / 1000


def format_timestamp(seconds: float) -> str:
    """Format seconds as zero-padded "HH:MM:SS.mmm", milliseconds rounded to nearest."""
    # Work in whole milliseconds so 59.9996 carries into the next second
    total_ms = max(0, int(round(seconds * 1000)))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, millis = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"
