"""Transcript handling: VTT timecodes and cumulative caption stitching."""
from .timestamps import format_timestamp, parse_timestamp
from .vtt import append_vtt_with_offset, shift_vtt

__all__ = ["append_vtt_with_offset", "shift_vtt", "format_timestamp", "parse_timestamp"]
