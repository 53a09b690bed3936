"""
SessionManager: per-recording state, chunk queue and transcription drain loop.

One RecordingSession per recording id, one SpeakerState per speaker in it.
Audio from every speaker is buffered per speaker and cut into fixed-size chunks
(e.g. 10s). Chunks go onto the session's FIFO queue; a single drain task per
session transcribes them one at a time and stitches the captions into the
session's cumulative audio.vtt, shifted by that speaker's elapsed audio time.

Concurrency: everything runs on one event loop. The only guard needed is the
per-session `processing` flag, which keeps a second drain task from
interleaving writes to the same caption file. Chunk file I/O runs in the
default executor; per-speaker WAV writes go to the session's single writer
thread so they stay ordered; the transcriber call is awaited.

Ordering: chunks are stitched in enqueue (receipt) order. Each speaker's cues
are non-decreasing, but cues of simultaneous speakers are not merged by
absolute time.

Lifecycle: created on the first audio frame for an unseen id; stop_session()
queues every speaker's tail and marks the session closed; the drain task then
finalizes (pads + closes per-speaker WAVs, fixes headers), sends
{"type": "done"} to subscribers and drops all bookkeeping for the id.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import time
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from recording_server.asr.base import TranscriptionEngine, TranscriptionError
from recording_server.audio import SpeakerChunker, SpeakerRecorderBase, build_wav, create_speaker_recorder
from recording_server.audio.wav import SAMPLE_WIDTH
from recording_server.config import Settings
from recording_server.schemas.envelope import DoneMessage, SessionInfo
from recording_server.transcript.vtt import append_vtt_with_offset

logger = logging.getLogger(__name__)

VTT_FILENAME = "audio.vtt"
NS_PER_SEC = 1_000_000_000

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _safe_name(value: str) -> str:
    """Make an id usable as a single path component."""
    cleaned = _UNSAFE_PATH_CHARS.sub("_", value).strip(".")
    return cleaned or "_"


class Subscriber(Protocol):
    """Anything that can receive the completion message (a WebSocket)."""

    async def send_text(self, data: str) -> None:
        ...


@dataclass
class WorkItem:
    """One chunk ready for transcription."""

    speaker_id: str
    pcm: bytes


@dataclass
class SpeakerState:
    """Per-speaker state inside one recording."""

    speaker_id: str
    chunker: SpeakerChunker
    recorder: SpeakerRecorderBase
    wav_path: str
    elapsed_sec: float = 0.0  # audio already chunked and sent to transcription
    chunk_index: int = 0
    display_name: Optional[str] = None  # set when the framer reports it; may arrive late

    @property
    def bytes_written(self) -> int:
        return self.recorder.bytes_written

    @property
    def samples_written(self) -> int:
        return self.recorder.samples_written

    @property
    def pending_bytes(self) -> int:
        return len(self.chunker)


@dataclass
class RecordingSession:
    """All state for one recording id. Owned by SessionManager."""

    id: str
    rate: int
    channels: int
    bytes_per_chunk: int
    directory: str
    vtt_path: str
    include_audio: bool
    start_ns: int
    speakers: dict[str, SpeakerState] = field(default_factory=dict)
    queue: deque[WorkItem] = field(default_factory=deque)
    processing: bool = False
    closed: bool = False
    end_ns: Optional[int] = None
    task: Optional[asyncio.Task] = None
    writer: Optional[ThreadPoolExecutor] = None  # per-speaker WAV writes, in arrival order

    @property
    def bytes_per_sec(self) -> int:
        return self.rate * self.channels * SAMPLE_WIDTH

    def samples_at(self, now_ns: int) -> int:
        """Sample frames that should exist at now_ns according to the wall clock."""
        return max(0, (now_ns - self.start_ns) * self.rate // NS_PER_SEC)


class SessionManager:
    """
    Owns the session, subscriber and preference registries. One instance per
    server; handed to each WebSocket connection handler.
    """

    def __init__(
        self,
        engine: TranscriptionEngine,
        model: str,
        recording_dir: str,
        tmp_dir: str,
        chunk_seconds: float = 10.0,
        default_include_audio: bool = False,
        clock: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self._engine = engine
        self._model = model
        self._recording_dir = recording_dir
        self._tmp_dir = tmp_dir
        self._chunk_seconds = chunk_seconds
        self._default_include_audio = default_include_audio
        self._clock = clock
        self._sessions: dict[str, RecordingSession] = {}
        self._subscribers: dict[str, set[Subscriber]] = {}
        self._preferences: dict[str, bool] = {}

    @classmethod
    def from_settings(cls, engine: TranscriptionEngine, settings: Settings) -> "SessionManager":
        return cls(
            engine=engine,
            model=settings.WHISPER_MODEL,
            recording_dir=settings.RECORDING_DIR,
            tmp_dir=settings.TMP_DIR,
            chunk_seconds=settings.CHUNK_SECONDS,
            default_include_audio=settings.DEFAULT_INCLUDE_AUDIO,
        )

    # --- registries ---

    def get_session(self, recording_id: str) -> Optional[RecordingSession]:
        return self._sessions.get(recording_id)

    def describe(self) -> list[SessionInfo]:
        """Snapshot of active recordings for operators."""
        return [
            SessionInfo(
                recording_id=s.id,
                rate=s.rate,
                channels=s.channels,
                speakers=sorted(s.speakers),
                queued_chunks=len(s.queue),
                processing=s.processing,
                closed=s.closed,
                include_audio=s.include_audio,
                vtt_path=s.vtt_path,
            )
            for s in self._sessions.values()
        ]

    def set_preferences(self, recording_id: str, include_audio: bool) -> None:
        """Sticky per-recording preference; read once when the session is created."""
        if recording_id:
            self._preferences[recording_id] = include_audio

    def subscribe(self, recording_id: str, subscriber: Subscriber) -> None:
        if recording_id:
            self._subscribers.setdefault(recording_id, set()).add(subscriber)

    def subscribers(self, recording_id: str) -> set[Subscriber]:
        return set(self._subscribers.get(recording_id, ()))

    def unsubscribe_all(self, subscriber: Subscriber) -> None:
        """Remove a disconnected subscriber from every recording it listened to."""
        for recording_id in list(self._subscribers):
            subs = self._subscribers[recording_id]
            subs.discard(subscriber)
            if not subs:
                del self._subscribers[recording_id]

    def set_display_name(self, recording_id: str, speaker_id: str, name: str) -> bool:
        """Attach a caption label to an existing speaker. Returns False if the speaker is unknown."""
        session = self._sessions.get(recording_id)
        if session is None:
            return False
        speaker = session.speakers.get(speaker_id)
        if speaker is None:
            return False
        speaker.display_name = name
        return True

    # --- ingestion ---

    def _create_session(self, recording_id: str, rate: int, channels: int) -> RecordingSession:
        directory = os.path.join(self._recording_dir, _safe_name(recording_id))
        os.makedirs(directory, exist_ok=True)
        include_audio = self._preferences.get(recording_id, self._default_include_audio)
        frame_bytes = channels * SAMPLE_WIDTH
        bytes_per_chunk = max(1, int(rate * self._chunk_seconds)) * frame_bytes
        session = RecordingSession(
            id=recording_id,
            rate=rate,
            channels=channels,
            bytes_per_chunk=bytes_per_chunk,
            directory=directory,
            vtt_path=os.path.join(directory, VTT_FILENAME),
            include_audio=include_audio,
            start_ns=self._clock(),
        )
        if include_audio:
            # One worker: appends land in the file in the order they arrived
            session.writer = ThreadPoolExecutor(max_workers=1, thread_name_prefix="wav-writer")
        self._sessions[recording_id] = session
        logger.info(
            "Session %s started: %d Hz, %d ch, include_audio=%s", recording_id, rate, channels, include_audio
        )
        return session

    def _create_speaker(self, session: RecordingSession, speaker_id: str) -> SpeakerState:
        wav_path = os.path.join(session.directory, f"{_safe_name(speaker_id)}.wav")
        speaker = SpeakerState(
            speaker_id=speaker_id,
            chunker=SpeakerChunker(session.bytes_per_chunk),
            recorder=create_speaker_recorder(session.include_audio, wav_path, session.rate, session.channels),
            wav_path=wav_path,
        )
        session.speakers[speaker_id] = speaker
        logger.debug("Session %s: new speaker %s", session.id, speaker_id)
        return speaker

    def ingest_audio(
        self, recording_id: str, rate: int, channels: int, pcm: bytes, speaker_id: str
    ) -> int:
        """
        Buffer one frame of a speaker's PCM. Returns the number of chunks queued.

        Empty recording id or empty PCM is a no-op, as is a non-positive rate or
        channel count. The session keeps the format of its first frame. With
        persistence on, the write (silence up to the wall-clock position, then
        the PCM) is handed to the session's writer thread.
        """
        if not recording_id or not pcm:
            return 0
        if rate <= 0 or channels <= 0:
            logger.warning("Dropping audio for %s: invalid format %s Hz, %s ch", recording_id, rate, channels)
            return 0
        session = self._sessions.get(recording_id)
        if session is None:
            session = self._create_session(recording_id, rate, channels)
        if session.closed:
            logger.debug("Session %s is closed; dropping %d bytes from %s", recording_id, len(pcm), speaker_id)
            return 0
        speaker = session.speakers.get(speaker_id)
        if speaker is None:
            speaker = self._create_speaker(session, speaker_id)

        if session.writer is not None:
            session.writer.submit(
                _append_recording, recording_id, speaker, pcm, session.samples_at(self._clock())
            )

        chunks = speaker.chunker.push(pcm)
        for chunk in chunks:
            session.queue.append(WorkItem(speaker_id=speaker_id, pcm=chunk))
        if session.queue:
            self._ensure_draining(session)
        return len(chunks)

    # --- stop ---

    async def stop_session(self, recording_id: str) -> int:
        """
        Close a recording. Returns the number of tail chunks queued.

        Unknown id (e.g. stop with no audio ever received) completes at once
        with vttPath null. Otherwise the end time is fixed now, each speaker's
        partial buffer is queued as a final short chunk, and the drain task
        finalizes once the queue is empty.
        """
        session = self._sessions.get(recording_id)
        if session is None:
            logger.info("Stop for %s with no session; completing empty", recording_id)
            subscribers = self._subscribers.pop(recording_id, set())
            self._preferences.pop(recording_id, None)
            await self._notify_done(recording_id, None, subscribers)
            return 0
        if session.closed:
            return 0
        session.end_ns = self._clock()
        tails = 0
        for speaker_id, speaker in session.speakers.items():
            tail = speaker.chunker.flush()
            if tail:
                session.queue.append(WorkItem(speaker_id=speaker_id, pcm=tail))
                tails += 1
        session.closed = True
        logger.info("Session %s stopping: %d chunk(s) queued", recording_id, len(session.queue))
        self._ensure_draining(session)
        return tails

    async def join(self, recording_id: str) -> None:
        """Wait until the session's drain task (and finalization, if closed) has finished."""
        session = self._sessions.get(recording_id)
        while session is not None and session.processing and session.task is not None:
            await session.task

    async def shutdown(self) -> None:
        """Stop every open session and wait for them to finalize."""
        for recording_id in list(self._sessions):
            await self.stop_session(recording_id)
        for recording_id in list(self._sessions):
            await self.join(recording_id)

    # --- drain loop ---

    def _ensure_draining(self, session: RecordingSession) -> None:
        """Start the session's drain task unless one is already running."""
        if session.processing:
            return
        session.processing = True
        session.task = asyncio.get_running_loop().create_task(self._drain(session))

    async def _drain(self, session: RecordingSession) -> None:
        try:
            while session.queue:
                item = session.queue.popleft()
                try:
                    await self._process_chunk(session, item)
                except TranscriptionError as e:
                    logger.warning("Session %s: chunk from %s failed: %s", session.id, item.speaker_id, e)
                except Exception:
                    logger.exception("Session %s: chunk from %s failed", session.id, item.speaker_id)
            if session.closed:
                await self._finalize(session)
        finally:
            session.processing = False

    async def _process_chunk(self, session: RecordingSession, item: WorkItem) -> None:
        speaker = session.speakers[item.speaker_id]
        base = f"{_safe_name(session.id)}-{_safe_name(item.speaker_id)}-{speaker.chunk_index:04d}"
        wav_tmp = os.path.join(self._tmp_dir, f"{base}.wav")
        vtt_tmp = os.path.join(self._tmp_dir, f"{base}.vtt")
        loop = asyncio.get_running_loop()
        try:
            os.makedirs(self._tmp_dir, exist_ok=True)
            wav = build_wav(item.pcm, session.rate, session.channels)
            await loop.run_in_executor(None, _write_bytes, wav_tmp, wav)
            await self._engine.transcribe(self._model, wav_tmp, vtt_tmp)
            cues = await loop.run_in_executor(
                None,
                append_vtt_with_offset,
                session.vtt_path,
                vtt_tmp,
                speaker.elapsed_sec,
                speaker.display_name,
            )
            logger.debug(
                "Session %s: %s chunk %d at %.3fs -> %d cue(s)",
                session.id,
                item.speaker_id,
                speaker.chunk_index,
                speaker.elapsed_sec,
                cues,
            )
        finally:
            # Advance even on failure so later chunks keep their true offset
            speaker.elapsed_sec += len(item.pcm) / session.bytes_per_sec
            speaker.chunk_index += 1
            for path in (wav_tmp, vtt_tmp):
                try:
                    os.remove(path)
                except OSError:
                    pass

    async def _finalize(self, session: RecordingSession) -> None:
        loop = asyncio.get_running_loop()
        try:
            end_ns = session.end_ns if session.end_ns is not None else self._clock()
            end_samples = session.samples_at(end_ns)
            if session.writer is not None:
                for speaker in session.speakers.values():
                    try:
                        # Queued behind any pending appends for this session
                        path = await loop.run_in_executor(session.writer, speaker.recorder.finalize, end_samples)
                        if path:
                            logger.info(
                                "Session %s: wrote %s (%d bytes)", session.id, path, speaker.bytes_written
                            )
                    except Exception:
                        logger.exception("Session %s: finalizing %s failed", session.id, speaker.speaker_id)
        finally:
            if session.writer is not None:
                session.writer.shutdown(wait=False)
            session.speakers.clear()
            subscribers = self._subscribers.pop(session.id, set())
            self._preferences.pop(session.id, None)
            if self._sessions.get(session.id) is session:
                del self._sessions[session.id]
        vtt_path = session.vtt_path if os.path.exists(session.vtt_path) else None
        logger.info("Session %s finished: captions=%s", session.id, vtt_path)
        await self._notify_done(session.id, vtt_path, subscribers)

    async def _notify_done(
        self, recording_id: str, vtt_path: Optional[str], subscribers: set[Subscriber]
    ) -> None:
        message = DoneMessage(recording_id=recording_id, vtt_path=vtt_path).to_json()
        for subscriber in subscribers:
            try:
                await subscriber.send_text(message)
            except Exception as e:
                logger.debug("Done notification for %s not delivered: %s", recording_id, e)


def _append_recording(recording_id: str, speaker: SpeakerState, pcm: bytes, target_samples: int) -> None:
    """Runs on the session's writer thread."""
    try:
        speaker.recorder.append(pcm, target_samples)
    except OSError as e:
        logger.warning("Recording write failed for %s/%s: %s", recording_id, speaker.speaker_id, e)
    except Exception:
        logger.exception("Recording write failed for %s/%s", recording_id, speaker.speaker_id)


def _write_bytes(path: str, data: bytes) -> None:
    with open(path, "wb") as f:
        f.write(data)
