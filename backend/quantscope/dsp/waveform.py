"""Analog reference waveforms.

Pure functions of time, used both as the oscillator source feeding the block
processor and as the analog trace for visualization read-outs.
"""

from __future__ import annotations

import math
from typing import cast

import numpy as np

from quantscope.settings import WaveformType
from quantscope.typing import NDArrayFloat

_TWO_PI = 2.0 * math.pi


def generate(t: float, frequency: float, waveform_type: WaveformType) -> float:
    """Return the waveform value in [-1, 1] at time ``t`` seconds."""
    phase = _TWO_PI * frequency * t
    if waveform_type == "sine":
        return math.sin(phase)
    if waveform_type == "square":
        return 1.0 if math.sin(phase) >= 0.0 else -1.0
    if waveform_type == "triangle":
        return (2.0 / math.pi) * math.asin(math.sin(phase))
    if waveform_type == "sawtooth":
        x = frequency * t
        return 2.0 * (x - math.floor(x)) - 1.0
    raise ValueError(f"Unknown waveform type: {waveform_type!r}")


def generate_block(
    t: NDArrayFloat, frequency: float, waveform_type: WaveformType
) -> NDArrayFloat:
    """Vectorized :func:`generate` over an array of timestamps."""
    t = np.asarray(t, dtype=np.float64)
    phase = _TWO_PI * frequency * t
    if waveform_type == "sine":
        return cast(NDArrayFloat, np.sin(phase))
    if waveform_type == "square":
        return cast(NDArrayFloat, np.where(np.sin(phase) >= 0.0, 1.0, -1.0))
    if waveform_type == "triangle":
        # clip guards asin against |sin| creeping past 1.0 by an ulp
        return cast(NDArrayFloat, (2.0 / np.pi) * np.arcsin(np.clip(np.sin(phase), -1.0, 1.0)))
    if waveform_type == "sawtooth":
        x = frequency * t
        return cast(NDArrayFloat, 2.0 * (x - np.floor(x)) - 1.0)
    raise ValueError(f"Unknown waveform type: {waveform_type!r}")
