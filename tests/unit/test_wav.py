"""Unit tests for WAV encoding and in-place header rewrite."""

import pytest

from recording_server.audio.wav import HEADER_SIZE, build_wav, read_wav_header, rewrite_wav_sizes


@pytest.mark.unit
class TestBuildWav:
    """Canonical 44-byte header + payload."""

    @pytest.mark.parametrize("rate,channels", [(48000, 2), (16000, 1), (44100, 2)])
    def test_header_fields_match_format(self, rate, channels):
        pcm = b"\x01\x00" * channels * 100
        wav = build_wav(pcm, rate, channels)

        assert len(wav) == HEADER_SIZE + len(pcm)
        header = read_wav_header(wav)
        assert header.audio_format == 1
        assert header.sample_rate == rate
        assert header.channels == channels
        assert header.byte_rate == rate * channels * 2
        assert header.block_align == channels * 2
        assert header.bits_per_sample == 16
        assert header.data_size == len(pcm)
        assert header.riff_size == 36 + len(pcm)
        assert wav[HEADER_SIZE:] == pcm

    def test_empty_payload_is_header_only(self):
        wav = build_wav(b"", 48000, 2)

        assert len(wav) == HEADER_SIZE
        assert wav[:4] == b"RIFF"
        assert wav[8:16] == b"WAVEfmt "
        assert wav[36:40] == b"data"
        assert read_wav_header(wav).data_size == 0

    @pytest.mark.parametrize("rate,channels", [(0, 1), (-1, 1), (16000, 0)])
    def test_invalid_format_rejected(self, rate, channels):
        with pytest.raises(ValueError):
            build_wav(b"", rate, channels)

    def test_read_rejects_non_wav(self):
        with pytest.raises(ValueError):
            read_wav_header(b"x" * HEADER_SIZE)
        with pytest.raises(ValueError):
            read_wav_header(b"RIFF")


@pytest.mark.unit
def test_rewrite_sizes_patches_both_fields(tmp_path):
    path = tmp_path / "speaker.wav"
    pcm = b"\x00\x01" * 500
    path.write_bytes(build_wav(b"", 16000, 1) + pcm)

    rewrite_wav_sizes(str(path), len(pcm))

    data = path.read_bytes()
    header = read_wav_header(data)
    assert header.data_size == len(pcm)
    assert header.riff_size == 36 + len(pcm)
    assert len(data) == HEADER_SIZE + header.data_size
    # Payload untouched
    assert data[HEADER_SIZE:] == pcm
