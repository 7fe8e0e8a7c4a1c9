"""Numbers behind the waveform, binary and spectrum views.

Drawing is left to the client; these functions compute what it draws so any
frontend shows the same samples, bit patterns and Nyquist markers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from scipy.fft import rfft, rfftfreq
from scipy.signal import get_window

from .dsp.quantizer import dequantize, quantize_indices, to_binary_string
from .settings import AudioSettings, QuantizationInfo
from .sources import Oscillator, Source
from .typing import NDArrayBool, NDArrayFloat, NDArrayInt

MAX_DISPLAY_SAMPLES = 500
MIN_DISPLAY_DURATION_S = 0.5
MAX_DISPLAY_DURATION_S = 5.0
# Spectrum view spans at least the audible band
MIN_DISPLAY_FREQUENCY_HZ = 20_000.0


@dataclass(frozen=True)
class DisplayPlan:
    duration_s: float
    total_samples: int
    samples_in_view: int
    stride: int

    def timestamps(self, time_offset: float = 0.0) -> NDArrayFloat:
        """Capture instants of the displayed samples."""
        k = np.arange(self.samples_in_view, dtype=np.float64) * self.stride
        return k / self.total_samples * self.duration_s + time_offset


def display_plan(sample_rate: float) -> DisplayPlan:
    duration = min(MAX_DISPLAY_DURATION_S, max(MIN_DISPLAY_DURATION_S, 1000.0 / sample_rate))
    total = max(2, math.floor(sample_rate * duration))
    return DisplayPlan(
        duration_s=duration,
        total_samples=total,
        samples_in_view=min(total, MAX_DISPLAY_SAMPLES),
        stride=max(1, total // MAX_DISPLAY_SAMPLES),
    )


@dataclass(frozen=True)
class SamplePoints:
    plan: DisplayPlan
    t: NDArrayFloat
    analog: NDArrayFloat
    quantized: NDArrayFloat
    indices: NDArrayInt


def _source_for(settings: AudioSettings, source: Source | None) -> Source:
    return source if source is not None else Oscillator(settings.frequency, settings.waveform_type)


def _values_at(source: Source, t: NDArrayFloat) -> NDArrayFloat:
    value_at = getattr(source, "value_at", None)
    if value_at is None:
        raise TypeError(f"{type(source).__name__} cannot be sampled at arbitrary instants")
    return value_at(t)


def sample_points(
    settings: AudioSettings,
    time_offset: float = 0.0,
    source: Source | None = None,
) -> SamplePoints:
    """Analog and quantized value of every sample in the waveform view."""
    plan = display_plan(settings.sample_rate)
    t = plan.timestamps(time_offset)
    analog = _values_at(_source_for(settings, source), t)
    levels = settings.levels
    indices = quantize_indices(analog, levels)
    quantized = indices / (levels - 1) * 2.0 - 1.0
    return SamplePoints(plan=plan, t=t, analog=analog, quantized=quantized, indices=indices)


@dataclass(frozen=True)
class BinarySample:
    sample_index: int
    t: float
    level: int
    value: float
    bits: str


def binary_stream(
    settings: AudioSettings,
    start_index: int,
    count: int,
    source: Source | None = None,
) -> list[BinarySample]:
    """Bit patterns of samples ``start_index`` .. ``start_index + count - 1``.

    Sample ``k`` is taken at ``t = k / sample_rate``.
    """
    if start_index < 0 or count < 0:
        raise ValueError("start_index and count must be >= 0")
    k = start_index + np.arange(count, dtype=np.int64)
    t = k / settings.sample_rate
    analog = _values_at(_source_for(settings, source), t)
    levels = settings.levels
    indices = quantize_indices(analog, levels)
    return [
        BinarySample(
            sample_index=int(k[i]),
            t=float(t[i]),
            level=int(indices[i]),
            value=dequantize(int(indices[i]), levels),
            bits=to_binary_string(int(indices[i]), settings.bit_depth),
        )
        for i in range(count)
    ]


@dataclass(frozen=True)
class Spectrum:
    freqs: NDArrayFloat
    magnitude_db: NDArrayFloat
    aliased: NDArrayBool  # bins above the capture Nyquist
    nyquist_frequency: float
    max_display_frequency: float

    def peak(self) -> tuple[float, float]:
        """(frequency, dB) of the strongest non-DC bin."""
        i = int(np.argmax(self.magnitude_db[1:])) + 1
        return float(self.freqs[i]), float(self.magnitude_db[i])


def spectrum(
    block: NDArrayFloat,
    hardware_rate: float,
    sample_rate: float,
    fft_size: int = 4096,
) -> Spectrum:
    """Hann-windowed magnitude spectrum of hardware-rate output.

    Args:
        block: Output samples at ``hardware_rate``; zero padded to ``fft_size``
        hardware_rate: Rate of ``block``
        sample_rate: Capture rate whose Nyquist frequency is marked
        fft_size: Transform length
    """
    if fft_size < 2:
        raise ValueError(f"fft_size must be >= 2 (got {fft_size})")
    x = np.zeros(fft_size, dtype=np.float64)
    chunk = np.asarray(block, dtype=np.float64)[-fft_size:]
    x[: chunk.size] = chunk
    window = get_window("hann", fft_size)
    # Normalize so a full-scale sine reads about 0 dB
    mag = np.abs(rfft(x * window)) * (2.0 / window.sum())
    magnitude_db = 20.0 * np.log10(mag + 1e-10)
    freqs = rfftfreq(fft_size, 1.0 / hardware_rate)
    nyquist = sample_rate / 2.0
    return Spectrum(
        freqs=freqs,
        magnitude_db=magnitude_db,
        aliased=freqs > nyquist,
        nyquist_frequency=nyquist,
        max_display_frequency=max(sample_rate, MIN_DISPLAY_FREQUENCY_HZ),
    )


def alias_frequency(frequency: float, sample_rate: float) -> float:
    """Frequency a tone appears at after sampling at ``sample_rate``."""
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be positive (got {sample_rate})")
    return abs(frequency - sample_rate * round(frequency / sample_rate))


def format_sample_rate(rate: float) -> str:
    if rate >= 1000:
        return f"{rate / 1000:.1f} kHz"
    return f"{rate:.1f} Hz"


def format_data_rate(info: QuantizationInfo) -> str:
    bytes_per_second = info.estimated_size
    if bytes_per_second >= 1024:
        return f"{bytes_per_second / 1024:.1f} KB/s"
    return f"{bytes_per_second:g} B/s"
