"""
Wire schemas for the recording WebSocket.

Inbound: one envelope per message, MessagePack (binary frame) or JSON (text frame).
The framer uses camelCase keys; fields are aliased so Python code uses snake_case.
Outbound: {"type": "done", "recordingId": ..., "vttPath": ... | null} on session completion.
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ENVELOPE_TYPES = frozenset({"init", "hello", "stop", "audio"})


class AudioEnvelope(BaseModel):
    """Control or audio message from the framer. Every field is optional on the wire."""

    type: str | None = Field(None, description="init | hello | stop | audio")
    recording_id: str | None = Field(None, alias="recordingId")
    rate: int | None = Field(None, gt=0, description="Sample rate (Hz)")
    channels: int | None = Field(None, gt=0, description="Channel count (1 or 2)")
    user_id: str | None = Field(None, alias="userId", description="Speaker identity")
    user_name: str | None = Field(None, alias="userName", description="Speaker display name for captions")
    payload: bytes | None = Field(None, description="Raw PCM 16-bit LE (base64 text when encoding=base64)")
    include_audio: bool | None = Field(None, alias="includeAudio", description="Persist per-speaker WAV")
    encoding: str | None = Field(None, description="Payload encoding on text frames: base64")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("recording_id", "user_id", "user_name", mode="before")
    @classmethod
    def _to_str(cls, v):
        # Discord snowflakes may arrive as integers
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @property
    def is_recognized(self) -> bool:
        """True for a known control kind or any envelope carrying audio; anything else is raw PCM."""
        return (self.type or "").lower() in ENVELOPE_TYPES or self.payload is not None


class DoneMessage(BaseModel):
    """Completion signal sent to every subscriber of a recording."""

    type: Literal["done"] = "done"
    recording_id: str = Field(..., alias="recordingId")
    vtt_path: str | None = Field(None, alias="vttPath")

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SessionInfo(BaseModel):
    """Operator view of one active recording (GET /sessions)."""

    recording_id: str
    rate: int
    channels: int
    speakers: list[str]
    queued_chunks: int
    processing: bool
    closed: bool
    include_audio: bool
    vtt_path: str
