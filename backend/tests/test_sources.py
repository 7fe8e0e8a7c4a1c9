"""Tests for oscillator and decoded-file input sources."""

import wave
from pathlib import Path

import numpy as np
import pytest

from quantscope.sources import (
    DecodedBuffer,
    Oscillator,
    SourceDecodeError,
    load_wav,
    pcm16le_bytes,
    write_wav,
)


def _write_raw_wav(path: Path, frames: bytes, width: int, channels: int, rate: int = 8000) -> None:
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(width)
        wf.setframerate(rate)
        wf.writeframes(frames)


class TestOscillator:
    def test_renders_hardware_rate_instants(self):
        osc = Oscillator(1000.0)
        out = osc.render(48, 4, 48_000)
        t = (48 + np.arange(4)) / 48_000
        np.testing.assert_allclose(out, np.sin(2 * np.pi * 1000.0 * t), atol=1e-12)

    def test_continuous_across_calls(self):
        osc = Oscillator(440.0, "triangle")
        whole = osc.render(0, 200, 48_000)
        parts = np.concatenate([osc.render(0, 73, 48_000), osc.render(73, 127, 48_000)])
        np.testing.assert_array_equal(parts, whole)

    def test_rejects_bad_arguments(self):
        with pytest.raises(ValueError):
            Oscillator(440.0, "noise")  # type: ignore[arg-type]
        with pytest.raises(ValueError):
            Oscillator(0.0)


class TestDecodedBuffer:
    def test_nearest_below_lookup_and_looping(self):
        buf = DecodedBuffer(np.array([0.0, 0.25, 0.5, 0.75]), 4.0)
        t = np.array([0.0, 0.24, 0.25, 0.99, 1.0, 1.6])
        np.testing.assert_array_equal(buf.value_at(t), [0.0, 0.0, 0.25, 0.75, 0.0, 0.5])
        assert buf.duration_s == pytest.approx(1.0)

    def test_render_upsamples_by_repetition(self):
        buf = DecodedBuffer(np.array([0.1, -0.1]), 2.0)
        np.testing.assert_array_equal(buf.render(0, 6, 4.0), [0.1, 0.1, -0.1, -0.1, 0.1, 0.1])

    def test_copies_and_freezes_samples(self):
        data = np.array([0.0, 0.5])
        buf = DecodedBuffer(data, 8000.0)
        data[0] = 0.9
        assert buf.channel_samples[0] == 0.0
        with pytest.raises(ValueError):
            buf.channel_samples[0] = 0.3

    @pytest.mark.parametrize(
        "samples, rate",
        [
            (np.zeros(0), 8000.0),
            (np.zeros((2, 2)), 8000.0),
            (np.array([0.0, np.nan]), 8000.0),
            (np.array([0.0, 1.5]), 8000.0),
            (np.array([0.0]), 0.0),
        ],
    )
    def test_rejects_invalid_buffers(self, samples, rate):
        with pytest.raises(ValueError):
            DecodedBuffer(samples, rate)


class TestWavFiles:
    def test_load_wav(self, wav_file: Path):
        buf = load_wav(wav_file)
        assert buf.native_sample_rate == 22_050.0
        assert buf.channel_samples.size == 2205
        assert buf.label == "tone.wav"
        assert np.max(np.abs(buf.channel_samples)) == pytest.approx(0.5, abs=1e-3)

    def test_write_then_load_keeps_16_bit_precision(self, tmp_path: Path):
        audio = np.linspace(-1.0, 1.0, 101)
        path = tmp_path / "nested" / "ramp.wav"
        write_wav(path, audio, 8000)
        buf = load_wav(path)
        np.testing.assert_allclose(buf.channel_samples, audio, atol=1.0 / 32767)

    def test_first_channel_of_stereo(self, tmp_path: Path):
        frames = np.array([[16384, -16384], [-8192, 8192]], dtype="<i2").tobytes()
        path = tmp_path / "stereo.wav"
        _write_raw_wav(path, frames, width=2, channels=2)
        np.testing.assert_allclose(load_wav(path).channel_samples, [0.5, -0.25])

    def test_8_bit_unsigned(self, tmp_path: Path):
        path = tmp_path / "u8.wav"
        _write_raw_wav(path, bytes([128, 192, 64]), width=1, channels=1)
        np.testing.assert_allclose(load_wav(path).channel_samples, [0.0, 0.5, -0.5])

    def test_24_bit(self, tmp_path: Path):
        # 0x400000 = +0.5, 0xC00000 = -0.5
        path = tmp_path / "s24.wav"
        _write_raw_wav(path, bytes([0, 0, 0x40, 0, 0, 0xC0]), width=3, channels=1)
        np.testing.assert_allclose(load_wav(path).channel_samples, [0.5, -0.5])

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(SourceDecodeError):
            load_wav(tmp_path / "absent.wav")

    def test_not_a_wav(self, tmp_path: Path):
        path = tmp_path / "text.wav"
        path.write_text("definitely not RIFF data", encoding="utf-8")
        with pytest.raises(SourceDecodeError):
            load_wav(path)

    def test_empty_wav(self, tmp_path: Path):
        path = tmp_path / "empty.wav"
        _write_raw_wav(path, b"", width=2, channels=1)
        with pytest.raises(SourceDecodeError):
            load_wav(path)

    def test_pcm16le_bytes_clips(self):
        data = np.frombuffer(pcm16le_bytes(np.array([2.0, -2.0, 0.0])), dtype="<i2")
        np.testing.assert_array_equal(data, [32767, -32767, 0])
