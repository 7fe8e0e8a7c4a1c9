"""Streaming lowpass filters for anti-aliasing and reconstruction.

This module provides the filters placed around the decimator:
- Biquad lowpass sections (RBJ/bilinear form, Butterworth Q by default)
- Cascaded biquads for 4th-order Butterworth
- Kaiser-windowed FIR lowpass with order scaled to the target rate
- Blackman-Harris windowed-sinc polyphase banks for fractional interpolation

Every filter keeps its history across calls, so a stream can be fed in blocks
of any size (or one sample at a time with ``tick``) and produce the same output.
Coefficient designs are cached and returned read-only; they are never mutated
after construction.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal, Protocol, cast

import numpy as np
from scipy import signal

from quantscope.dsp.history import SampleHistory
from quantscope.dsp.windows import blackman_harris, kaiser_window, lanczos_kernel
from quantscope.typing import NDArrayFloat

logger = logging.getLogger(__name__)

FilterKind = Literal["none", "biquad", "butterworth4", "kaiser"]
FILTER_KINDS: tuple[str, ...] = ("none", "biquad", "butterworth4", "kaiser")

BUTTERWORTH_Q = 1.0 / math.sqrt(2.0)

DEFAULT_KAISER_BETA = 8.5  # ~100 dB stopband
DEFAULT_KAISER_BASE_ORDER = 128
DEFAULT_KAISER_REFERENCE_RATE = 48_000.0
KAISER_MIN_ORDER = 32
KAISER_MAX_ORDER = 1024


class StreamingFilter(Protocol):
    def tick(self, x: float) -> float: ...

    def process(self, block: NDArrayFloat) -> NDArrayFloat: ...

    def reset(self) -> None: ...

    def transfer_function(self) -> tuple[NDArrayFloat, NDArrayFloat]: ...


def _readonly(arr: NDArrayFloat) -> NDArrayFloat:
    arr.flags.writeable = False
    return arr


def _check_cutoff(cutoff_hz: float, sample_rate: float) -> None:
    if not 0.0 < cutoff_hz < sample_rate / 2.0:
        raise ValueError(
            f"cutoff {cutoff_hz:.3f} Hz must be inside (0, {sample_rate / 2.0:.1f}) Hz"
        )


# =============================================================================
# Biquads
# =============================================================================


@dataclass(frozen=True)
class BiquadCoefficients:
    """Normalized biquad coefficients (a0 == 1)."""

    b0: float
    b1: float
    b2: float
    a1: float
    a2: float

    @property
    def b(self) -> NDArrayFloat:
        return np.array([self.b0, self.b1, self.b2], dtype=np.float64)

    @property
    def a(self) -> NDArrayFloat:
        return np.array([1.0, self.a1, self.a2], dtype=np.float64)


@lru_cache(maxsize=128)
def design_lowpass_biquad(
    cutoff_hz: float, sample_rate: float, q: float = BUTTERWORTH_Q
) -> BiquadCoefficients:
    """Design a 2nd-order lowpass section.

    Bilinear transform of 1 / (s^2 + s/Q + 1) prewarped at the cutoff, in the
    RBJ cookbook form. With Q = 1/sqrt(2) this is the 2nd-order Butterworth
    response that ``scipy.signal.butter(2, ...)`` produces.

    Args:
        cutoff_hz: -3 dB frequency (for Butterworth Q) in Hz
        sample_rate: Rate the filter runs at in Hz
        q: Quality factor of the section

    Returns:
        Normalized coefficients
    """
    _check_cutoff(cutoff_hz, sample_rate)
    if q <= 0:
        raise ValueError(f"q must be positive (got {q})")
    w0 = 2.0 * math.pi * cutoff_hz / sample_rate
    cos_w0 = math.cos(w0)
    alpha = math.sin(w0) / (2.0 * q)
    a0 = 1.0 + alpha
    return BiquadCoefficients(
        b0=(1.0 - cos_w0) / 2.0 / a0,
        b1=(1.0 - cos_w0) / a0,
        b2=(1.0 - cos_w0) / 2.0 / a0,
        a1=-2.0 * cos_w0 / a0,
        a2=(1.0 - alpha) / a0,
    )


def butterworth_q_factors(order: int) -> tuple[float, ...]:
    """Q of each 2nd-order section of an even-order Butterworth filter.

    Order 4 gives (0.5412, 1.3066).
    """
    if order < 2 or order % 2:
        raise ValueError(f"order must be even and >= 2 (got {order})")
    return tuple(
        1.0 / (2.0 * math.cos((2 * k + 1) * math.pi / (2 * order)))
        for k in range(order // 2)
    )


class Biquad:
    """Direct-form-I biquad with two feedforward and two feedback history values."""

    def __init__(self, coeffs: BiquadCoefficients):
        self.coeffs = coeffs
        self._b = _readonly(coeffs.b)
        self._a = _readonly(coeffs.a)
        self.x1 = 0.0
        self.x2 = 0.0
        self.y1 = 0.0
        self.y2 = 0.0

    def tick(self, x: float) -> float:
        c = self.coeffs
        y = c.b0 * x + c.b1 * self.x1 + c.b2 * self.x2 - c.a1 * self.y1 - c.a2 * self.y2
        self.x2 = self.x1
        self.x1 = x
        self.y2 = self.y1
        self.y1 = y
        return y

    def process(self, block: NDArrayFloat) -> NDArrayFloat:
        x = np.asarray(block, dtype=np.float64)
        if x.size == 0:
            return x.copy()
        zi = signal.lfiltic(self._b, self._a, y=[self.y1, self.y2], x=[self.x1, self.x2])
        y, _ = signal.lfilter(self._b, self._a, x, zi=zi)
        if x.size >= 2:
            self.x1, self.x2 = float(x[-1]), float(x[-2])
            self.y1, self.y2 = float(y[-1]), float(y[-2])
        else:
            self.x2, self.x1 = self.x1, float(x[0])
            self.y2, self.y1 = self.y1, float(y[0])
        return cast(NDArrayFloat, y)

    def reset(self) -> None:
        self.x1 = self.x2 = self.y1 = self.y2 = 0.0

    def transfer_function(self) -> tuple[NDArrayFloat, NDArrayFloat]:
        return self._b, self._a


class BiquadCascade:
    """Series connection of biquad sections."""

    def __init__(self, sections: list[Biquad]):
        if not sections:
            raise ValueError("cascade needs at least one section")
        self.sections = sections

    def tick(self, x: float) -> float:
        for section in self.sections:
            x = section.tick(x)
        return x

    def process(self, block: NDArrayFloat) -> NDArrayFloat:
        y = np.asarray(block, dtype=np.float64)
        for section in self.sections:
            y = section.process(y)
        return y

    def reset(self) -> None:
        for section in self.sections:
            section.reset()

    def transfer_function(self) -> tuple[NDArrayFloat, NDArrayFloat]:
        b = np.ones(1, dtype=np.float64)
        a = np.ones(1, dtype=np.float64)
        for section in self.sections:
            sb, sa = section.transfer_function()
            b = np.convolve(b, sb)
            a = np.convolve(a, sa)
        return b, a


def butterworth_lowpass(cutoff_hz: float, sample_rate: float, order: int = 4) -> BiquadCascade:
    """Even-order Butterworth lowpass as cascaded biquads."""
    sections = [
        Biquad(design_lowpass_biquad(cutoff_hz, sample_rate, q))
        for q in butterworth_q_factors(order)
    ]
    return BiquadCascade(sections)


# =============================================================================
# Kaiser-windowed FIR
# =============================================================================


def kaiser_fir_order(
    sample_rate: float,
    base_order: int = DEFAULT_KAISER_BASE_ORDER,
    reference_rate: float = DEFAULT_KAISER_REFERENCE_RATE,
    min_order: int = KAISER_MIN_ORDER,
    max_order: int = KAISER_MAX_ORDER,
) -> int:
    """Filter order scaled linearly with the target sample rate.

    ``max(min_order, floor(base_order * sample_rate / reference_rate))``, capped
    at ``max_order`` so the per-block convolution stays within the deadline.
    """
    order = max(min_order, math.floor(base_order * sample_rate / reference_rate))
    return int(min(order, max_order))


@lru_cache(maxsize=64)
def design_kaiser_lowpass(
    num_taps: int,
    cutoff_hz: float,
    sample_rate: float,
    beta: float = DEFAULT_KAISER_BETA,
) -> NDArrayFloat:
    """Kaiser-windowed sinc lowpass.

    Taps are a centered sinc at the normalized cutoff times a Kaiser window,
    scaled to unity DC gain and then corrected to unity passband gain by
    evaluating the response at half the cutoff with a single-bin DFT.

    Args:
        num_taps: Number of taps (the filter order used for the history buffer)
        cutoff_hz: Cutoff frequency in Hz
        sample_rate: Rate the filter runs at in Hz
        beta: Kaiser shape parameter (8.5 gives roughly 100 dB stopband)

    Returns:
        Read-only tap array
    """
    _check_cutoff(cutoff_hz, sample_rate)
    if num_taps < 1:
        raise ValueError(f"num_taps must be >= 1 (got {num_taps})")
    fc = cutoff_hz / sample_rate  # cycles per sample
    n = np.arange(num_taps, dtype=np.float64) - (num_taps - 1) / 2.0
    taps = 2.0 * fc * np.sinc(2.0 * fc * n) * kaiser_window(num_taps, beta)
    taps /= np.sum(taps)

    f_check = fc / 2.0
    k = np.arange(num_taps, dtype=np.float64)
    gain = abs(np.sum(taps * np.exp(-2j * np.pi * f_check * k)))
    if gain > 0.0:
        taps /= gain

    logger.debug(
        f"Kaiser FIR: taps={num_taps} cutoff={cutoff_hz:.2f} Hz fs={sample_rate:.0f} "
        f"beta={beta:.2f} passband_gain={gain:.6f}"
    )
    return _readonly(taps)


class FIRFilter:
    """Streaming FIR with a circular history of ``len(taps)`` samples."""

    def __init__(self, taps: NDArrayFloat):
        taps = np.asarray(taps, dtype=np.float64)
        if taps.ndim != 1 or taps.size == 0:
            raise ValueError("taps must be a non-empty 1-D array")
        self.taps = taps
        self._reversed = _readonly(taps[::-1].copy())
        self._history = SampleHistory(taps.size)

    @property
    def num_taps(self) -> int:
        return int(self.taps.size)

    def tick(self, x: float) -> float:
        self._history.push(x)
        return float(np.dot(self._reversed, self._history.window(self.num_taps)))

    def process(self, block: NDArrayFloat) -> NDArrayFloat:
        x = np.asarray(block, dtype=np.float64)
        if x.size == 0:
            return x.copy()
        n = self.num_taps
        if n == 1:
            y = x * self.taps[0]
        else:
            prev = self._history.window(n)[1:]
            y = np.convolve(np.concatenate((prev, x)), self.taps, mode="valid")
        self._history.extend(x)
        return cast(NDArrayFloat, y)

    def reset(self) -> None:
        self._history.clear()

    def transfer_function(self) -> tuple[NDArrayFloat, NDArrayFloat]:
        return self.taps, np.ones(1, dtype=np.float64)


def kaiser_lowpass(
    cutoff_hz: float,
    sample_rate: float,
    target_rate: float,
    base_order: int = DEFAULT_KAISER_BASE_ORDER,
    reference_rate: float = DEFAULT_KAISER_REFERENCE_RATE,
    beta: float = DEFAULT_KAISER_BETA,
) -> FIRFilter:
    num_taps = kaiser_fir_order(target_rate, base_order, reference_rate)
    return FIRFilter(design_kaiser_lowpass(num_taps, float(cutoff_hz), float(sample_rate), beta))


# =============================================================================
# Polyphase interpolation bank
# =============================================================================


@lru_cache(maxsize=16)
def design_lanczos_bank(radius: int = 32, num_phases: int = 256) -> NDArrayFloat:
    """Lanczos fractional-delay bank.

    Row ``p`` holds the weights for window slots ``center - radius`` ..
    ``center + radius`` at offset ``p / num_phases`` past the center of a
    window of ``2 * radius + 1`` samples.
    """
    if radius < 1 or num_phases < 1:
        raise ValueError(f"need radius >= 1 and num_phases >= 1 (got {radius}, {num_phases})")
    offsets = np.arange(-radius, radius + 1, dtype=np.float64)
    mu = np.arange(num_phases, dtype=np.float64)[:, None] / num_phases
    bank = lanczos_kernel(offsets[None, :] - mu, radius)
    logger.debug(f"Lanczos bank: phases={num_phases} radius={radius}")
    return _readonly(np.ascontiguousarray(bank))


@lru_cache(maxsize=16)
def design_polyphase_bank(
    num_phases: int = 256, filter_length: int = 64, cutoff: float = 1.0
) -> NDArrayFloat:
    """Blackman-Harris windowed-sinc fractional-delay bank.

    Row ``p`` interpolates at offset ``p / num_phases`` past sample
    ``filter_length // 2 - 1`` of an oldest-first window of ``filter_length``
    samples. Each row sums to one (unity DC gain per phase).

    Args:
        num_phases: Number of sub-sample branches
        filter_length: Taps per branch
        cutoff: Sinc cutoff relative to the capture Nyquist (1.0 = full band)

    Returns:
        Read-only array of shape (num_phases, filter_length)
    """
    if num_phases < 1 or filter_length < 2:
        raise ValueError(
            f"need num_phases >= 1 and filter_length >= 2 (got {num_phases}, {filter_length})"
        )
    if not 0.0 < cutoff <= 1.0:
        raise ValueError(f"cutoff must be in (0, 1] (got {cutoff})")
    center = filter_length // 2 - 1
    k = np.arange(filter_length, dtype=np.float64)
    mu = np.arange(num_phases, dtype=np.float64)[:, None] / num_phases
    t = (k[None, :] - center) - mu
    bank = cutoff * np.sinc(cutoff * t) * blackman_harris(t / filter_length + 0.5)
    bank /= np.sum(bank, axis=1, keepdims=True)
    logger.debug(f"Polyphase bank: phases={num_phases} length={filter_length} cutoff={cutoff}")
    return _readonly(bank)


# =============================================================================
# Construction helpers
# =============================================================================


def build_lowpass(
    kind: FilterKind,
    cutoff_hz: float,
    sample_rate: float,
    target_rate: float | None = None,
    kaiser_base_order: int = DEFAULT_KAISER_BASE_ORDER,
    kaiser_reference_rate: float = DEFAULT_KAISER_REFERENCE_RATE,
    kaiser_beta: float = DEFAULT_KAISER_BETA,
) -> StreamingFilter | None:
    """Build a streaming lowpass of the given kind, or None for "none"."""
    if kind == "none":
        return None
    if kind == "biquad":
        return Biquad(design_lowpass_biquad(float(cutoff_hz), float(sample_rate), BUTTERWORTH_Q))
    if kind == "butterworth4":
        return butterworth_lowpass(float(cutoff_hz), float(sample_rate), order=4)
    if kind == "kaiser":
        return kaiser_lowpass(
            cutoff_hz,
            sample_rate,
            target_rate if target_rate is not None else sample_rate,
            base_order=kaiser_base_order,
            reference_rate=kaiser_reference_rate,
            beta=kaiser_beta,
        )
    raise ValueError(f"Unknown filter kind: {kind!r}")


def frequency_response(
    filt: StreamingFilter, freqs_hz: NDArrayFloat, sample_rate: float
) -> NDArrayFloat:
    """Complex response of ``filt`` at ``freqs_hz``."""
    b, a = filt.transfer_function()
    _, h = signal.freqz(b, a, worN=np.asarray(freqs_hz, dtype=np.float64), fs=sample_rate)
    return cast(NDArrayFloat, h)


def clear_coefficient_cache() -> None:
    """Drop cached coefficient designs."""
    design_lowpass_biquad.cache_clear()
    design_kaiser_lowpass.cache_clear()
    design_lanczos_bank.cache_clear()
    design_polyphase_bank.cache_clear()
