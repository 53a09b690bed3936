"""Audio pipeline: WAV encoding, per-speaker chunking, optional per-speaker recording."""
from .chunker import SpeakerChunker
from .recorder import SpeakerRecorderBase, create_speaker_recorder
from .wav import build_wav, read_wav_header, rewrite_wav_sizes

__all__ = [
    "SpeakerChunker",
    "SpeakerRecorderBase",
    "create_speaker_recorder",
    "build_wav",
    "read_wav_header",
    "rewrite_wav_sizes",
]
