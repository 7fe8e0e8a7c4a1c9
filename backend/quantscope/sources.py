"""Input sources feeding the block processor at the hardware rate.

Exactly one source is active per pipeline session:
- Oscillator: the analog reference waveform sampled at hardware-rate instants
- DecodedBuffer: one channel of decoded audio, looped, sampled by nearest-below
  index at its native rate
"""

from __future__ import annotations

import logging
import math
import wave
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, cast

import numpy as np

from quantscope.dsp.waveform import generate_block
from quantscope.settings import WAVEFORM_TYPES, WaveformType
from quantscope.typing import NDArrayFloat
from quantscope.validation import validate_audio_samples

logger = logging.getLogger(__name__)


class SourceDecodeError(Exception):
    """Raised when an audio file cannot be decoded into a sample buffer."""


class Source(Protocol):
    def render(self, start_index: int, num_samples: int, hardware_rate: float) -> NDArrayFloat:
        """Samples at timestamps (start_index + i) / hardware_rate."""
        ...


@dataclass(frozen=True)
class Oscillator:
    frequency: float
    waveform_type: WaveformType = "sine"

    def __post_init__(self) -> None:
        if self.waveform_type not in WAVEFORM_TYPES:
            raise ValueError(f"Unknown waveform type: {self.waveform_type!r}")
        if not (math.isfinite(self.frequency) and self.frequency > 0):
            raise ValueError(f"frequency must be positive (got {self.frequency})")

    def value_at(self, t: NDArrayFloat) -> NDArrayFloat:
        return generate_block(t, self.frequency, self.waveform_type)

    def render(self, start_index: int, num_samples: int, hardware_rate: float) -> NDArrayFloat:
        t = (start_index + np.arange(num_samples, dtype=np.float64)) / hardware_rate
        return self.value_at(t)


@dataclass(frozen=True, eq=False)
class DecodedBuffer:
    channel_samples: NDArrayFloat = field(repr=False)
    native_sample_rate: float
    label: str = ""

    def __post_init__(self) -> None:
        samples = np.array(self.channel_samples, dtype=np.float64)
        if samples.ndim != 1 or samples.size == 0:
            raise ValueError("channel_samples must be a non-empty 1-D array")
        if not (math.isfinite(self.native_sample_rate) and self.native_sample_rate > 0):
            raise ValueError(f"native_sample_rate must be positive (got {self.native_sample_rate})")
        ok, msg = validate_audio_samples(samples)
        if not ok:
            raise ValueError(msg)
        samples.flags.writeable = False
        object.__setattr__(self, "channel_samples", samples)

    @property
    def duration_s(self) -> float:
        return len(self.channel_samples) / self.native_sample_rate

    def value_at(self, t: NDArrayFloat) -> NDArrayFloat:
        samples = self.channel_samples
        idx = np.floor(np.asarray(t, dtype=np.float64) * self.native_sample_rate).astype(np.int64)
        return cast(NDArrayFloat, samples[np.mod(idx, samples.size)])

    def render(self, start_index: int, num_samples: int, hardware_rate: float) -> NDArrayFloat:
        t = (start_index + np.arange(num_samples, dtype=np.float64)) / hardware_rate
        return self.value_at(t)


_PCM_DTYPES = {1: np.uint8, 2: np.int16, 4: np.int32}


def _decode_pcm(raw: bytes, width: int, channels: int) -> NDArrayFloat:
    if channels < 1 or width < 1:
        raise SourceDecodeError(f"invalid format: {channels} channels, {width}-byte samples")
    if len(raw) % (width * channels):
        raise SourceDecodeError("truncated frame data")
    if width == 3:
        b = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        ints = b[:, 0] | (b[:, 1] << 8) | (b[:, 2] << 16)
        ints = np.where(ints >= 1 << 23, ints - (1 << 24), ints)
        data = ints.astype(np.float64) / float(1 << 23)
    elif width in _PCM_DTYPES:
        ints = np.frombuffer(raw, dtype=_PCM_DTYPES[width])
        if width == 1:
            data = (ints.astype(np.float64) - 128.0) / 128.0
        else:
            data = ints.astype(np.float64) / float(1 << (8 * width - 1))
    else:
        raise SourceDecodeError(f"unsupported sample width: {width} bytes")
    return cast(NDArrayFloat, data.reshape(-1, channels))


def load_wav(path: str | Path) -> DecodedBuffer:
    """Decode a PCM WAV file into a looping buffer of its first channel.

    Raises:
        SourceDecodeError: the file is missing, malformed, empty or not PCM
    """
    path = Path(path)
    try:
        with wave.open(str(path), "rb") as wf:
            channels = wf.getnchannels()
            width = wf.getsampwidth()
            rate = wf.getframerate()
            n_frames = wf.getnframes()
            raw = wf.readframes(n_frames)
    except (OSError, EOFError, wave.Error) as e:
        raise SourceDecodeError(f"cannot decode {path}: {e}") from e

    frames = _decode_pcm(raw, width, channels)
    if frames.shape[0] == 0:
        raise SourceDecodeError(f"{path} contains no audio frames")
    channel = np.clip(frames[:, 0], -1.0, 1.0)
    try:
        buf = DecodedBuffer(channel, float(rate), label=path.name)
    except ValueError as e:
        raise SourceDecodeError(f"cannot decode {path}: {e}") from e
    logger.info(
        f"Loaded {path.name}: {channels} ch, {rate} Hz, {8 * width}-bit, "
        f"{frames.shape[0]} frames ({buf.duration_s:.2f} s)"
    )
    return buf


def pcm16le_bytes(audio: np.ndarray) -> bytes:
    """Convert float PCM [-1,1] to 16-bit little endian bytes."""
    clipped = np.clip(audio, -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def write_wav(path: Path, audio: np.ndarray, sample_rate: int) -> None:
    """Write PCM audio to a mono 16-bit WAV file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(int(sample_rate))
        wf.writeframes(pcm16le_bytes(audio))
