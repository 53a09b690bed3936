"""
Pytest configuration and shared fixtures.

The transcriber is replaced by FakeEngine (no whisper-cli needed) and the
monotonic clock by FakeClock so silence padding is deterministic.
"""

import asyncio
from collections.abc import Callable

import pytest

from recording_server.asr.base import TranscriptionEngine, TranscriptionError
from recording_server.audio.wav import read_wav_header
from recording_server.session_manager import SessionManager

NS = 1_000_000_000


# ============================================================================
# Fakes
# ============================================================================


class FakeEngine(TranscriptionEngine):
    """Writes one cue per chunk. Call indices in fail_on raise TranscriptionError."""

    def __init__(self, fail_on=(), produce_cues=True, cue_text="hello"):
        self.fail_on = set(fail_on)
        self.produce_cues = produce_cues
        self.cue_text = cue_text
        self.calls = []  # (model, data_size)
        self.active = 0
        self.max_active = 0
        self.checked = False

    async def ensure_available(self):
        self.checked = True

    async def transcribe(self, model, input_path, output_path):
        index = len(self.calls)
        with open(input_path, "rb") as f:
            header = read_wav_header(f.read(44))
        self.calls.append((model, header.data_size))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            if index in self.fail_on:
                raise TranscriptionError(f"chunk {index} failed")
            with open(output_path, "w", encoding="utf-8") as f:
                f.write("WEBVTT\n\n")
                if self.produce_cues:
                    f.write(f"00:00:00.000 --> 00:00:02.500\n {self.cue_text} {index}\n\n")
        finally:
            self.active -= 1


class FakeClock:
    """Manually advanced monotonic clock (nanoseconds)."""

    def __init__(self):
        self.now = 0

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * NS)

    def __call__(self) -> int:
        return self.now


class FakeSubscriber:
    """Collects text frames sent to it."""

    def __init__(self):
        self.sent = []

    async def send_text(self, data: str) -> None:
        self.sent.append(data)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def make_engine() -> Callable[..., FakeEngine]:
    return FakeEngine


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def subscriber() -> FakeSubscriber:
    return FakeSubscriber()


@pytest.fixture
def make_manager(tmp_path, clock) -> Callable[..., SessionManager]:
    """Build a SessionManager writing under tmp_path; 16 kHz mono chunks of 1s by default."""

    def _make(engine, chunk_seconds=1.0, default_include_audio=False):
        return SessionManager(
            engine=engine,
            model="test-model.bin",
            recording_dir=str(tmp_path / "recordings"),
            tmp_dir=str(tmp_path / "chunks"),
            chunk_seconds=chunk_seconds,
            default_include_audio=default_include_audio,
            clock=clock,
        )

    return _make


@pytest.fixture
def manager(make_manager, fake_engine) -> SessionManager:
    return make_manager(fake_engine)
