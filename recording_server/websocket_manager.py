"""
ConnectionHandler: one WebSocket from an audio framer, routed into the SessionManager.

Each inbound message is either an envelope or raw PCM:
- Binary frame: MessagePack map, else raw 16-bit PCM for the connection's current recording.
- Text frame: JSON map (payload base64 when encoding="base64").

Envelope kinds:
- init / hello: remember recording id + format for this connection, store the
  includeAudio preference, subscribe to the completion message.
- stop: close the recording (falls back to the connection's recording id).
- audio (or any envelope with a payload): subscribe, ingest, attach userName.

A binary frame that is not one of these (unknown type, out-of-range rate or
channels, stop/audio with no recording to target) is raw PCM, like any other
undecodable binary frame.

A bad message is logged and dropped; the connection stays open. On disconnect
the connection leaves every subscriber set.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import msgpack
from fastapi import WebSocket
from pydantic import ValidationError

from recording_server.config import Settings, get_settings
from recording_server.schemas.envelope import AudioEnvelope
from recording_server.session_manager import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class ConnectionContext:
    """Defaults for raw PCM frames that carry no metadata."""

    recording_id: Optional[str]
    rate: int
    channels: int


def decode_envelope(data: bytes | str) -> Optional[AudioEnvelope]:
    """Decode an envelope, or None if the message is not one (raw PCM, garbage, unknown shape)."""
    try:
        if isinstance(data, str):
            raw: Any = json.loads(data)
        else:
            raw = msgpack.unpackb(data, raw=False)
    except (ValueError, TypeError, msgpack.exceptions.UnpackException):
        return None
    if not isinstance(raw, dict):
        return None
    try:
        envelope = AudioEnvelope.model_validate(raw)
    except ValidationError:
        return None
    return envelope if envelope.is_recognized else None


def envelope_pcm(envelope: AudioEnvelope) -> bytes:
    """Payload bytes; base64-decoded when the envelope says so."""
    payload = envelope.payload or b""
    if payload and (envelope.encoding or "").lower() == "base64":
        return base64.b64decode(payload, validate=True)
    return payload


class ConnectionHandler:
    """
    One WebSocket = one framer connection. A connection may feed several
    recordings; the context only supplies defaults for raw PCM frames.
    """

    def __init__(self, websocket: WebSocket, manager: SessionManager, settings: Settings | None = None) -> None:
        self._ws = websocket
        self._manager = manager
        settings = settings or get_settings()
        self._default_speaker = settings.DEFAULT_SPEAKER_ID
        self.context = ConnectionContext(
            recording_id=None,
            rate=settings.DEFAULT_SAMPLE_RATE,
            channels=settings.DEFAULT_CHANNELS,
        )

    def _update_context(self, envelope: AudioEnvelope) -> None:
        if envelope.recording_id:
            self.context.recording_id = envelope.recording_id
        if envelope.rate:
            self.context.rate = envelope.rate
        if envelope.channels:
            self.context.channels = envelope.channels

    async def _handle_envelope(self, envelope: AudioEnvelope) -> bool:
        """Apply a recognized envelope. False means it had no target and falls through to raw PCM."""
        kind = (envelope.type or "").lower()
        if kind in ("init", "hello"):
            self._update_context(envelope)
            if envelope.recording_id and envelope.include_audio is not None:
                self._manager.set_preferences(envelope.recording_id, envelope.include_audio)
            if self.context.recording_id:
                self._manager.subscribe(self.context.recording_id, self._ws)
            return True
        if kind == "stop":
            recording_id = envelope.recording_id or self.context.recording_id
            if not recording_id:
                return False
            await self._manager.stop_session(recording_id)
            return True
        self._update_context(envelope)
        recording_id = envelope.recording_id or self.context.recording_id
        if not recording_id:
            return False
        self._manager.subscribe(recording_id, self._ws)
        speaker_id = envelope.user_id or self._default_speaker
        self._manager.ingest_audio(
            recording_id,
            self.context.rate,
            self.context.channels,
            envelope_pcm(envelope),
            speaker_id,
        )
        if envelope.user_name:
            self._manager.set_display_name(recording_id, speaker_id, envelope.user_name)
        return True

    def _ingest_raw(self, data: bytes) -> None:
        """Raw PCM for the recording announced by an earlier init."""
        if not self.context.recording_id:
            logger.debug("Raw frame before init dropped (%d bytes)", len(data))
            return
        self._manager.subscribe(self.context.recording_id, self._ws)
        self._manager.ingest_audio(
            self.context.recording_id,
            self.context.rate,
            self.context.channels,
            data,
            self._default_speaker,
        )

    async def handle_message(self, data: bytes | str) -> None:
        """Route one inbound message. Never raises."""
        try:
            envelope = decode_envelope(data)
            if envelope is not None and await self._handle_envelope(envelope):
                return
            if isinstance(data, str):
                logger.debug("Unhandled text frame dropped (%d chars)", len(data))
                return
            self._ingest_raw(data)
        except (binascii.Error, ValueError) as e:
            logger.warning("Malformed message dropped: %s", e)
        except Exception:
            logger.exception("Message handling failed")

    async def run(self) -> None:
        """Receive until disconnect; always unsubscribe on the way out."""
        try:
            while True:
                msg = await self._ws.receive()
                if msg.get("type") == "websocket.disconnect":
                    break
                data = msg.get("bytes")
                if data is None:
                    data = msg.get("text")
                if data is None:
                    continue
                await self.handle_message(data)
        finally:
            self._manager.unsubscribe_all(self._ws)
