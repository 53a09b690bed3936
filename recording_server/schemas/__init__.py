"""Pydantic schemas for the recording WebSocket and operator API."""
from recording_server.schemas.envelope import (
    AudioEnvelope,
    DoneMessage,
    SessionInfo,
)

__all__ = [
    "AudioEnvelope",
    "DoneMessage",
    "SessionInfo",
]
