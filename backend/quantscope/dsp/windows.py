"""Kernel and window functions used for filter and interpolator design.

All functions accept scalars or numpy arrays. Window functions are evaluated
on continuous arguments so they can be sampled at sub-sample offsets for
polyphase and fractional-delay designs.
"""

from __future__ import annotations

import math
from typing import cast

import numpy as np

from quantscope.typing import NDArrayFloat

# 4-term Blackman-Harris (Harris 1978, -92 dB sidelobes)
BLACKMAN_HARRIS_COEFFS = (0.35875, 0.48829, 0.14128, 0.01168)

BESSEL_I0_TOLERANCE = 1e-12


def sinc(x: NDArrayFloat | float) -> NDArrayFloat:
    """Normalized sinc: sin(pi x) / (pi x), 1 at x = 0."""
    return cast(NDArrayFloat, np.sinc(x))


def lanczos_window(x: NDArrayFloat | float, a: float) -> NDArrayFloat:
    """Lanczos window sinc(x / a) for |x| <= a, zero outside."""
    x = np.asarray(x, dtype=np.float64)
    return cast(NDArrayFloat, np.where(np.abs(x) <= a, np.sinc(x / a), 0.0))


def lanczos_kernel(x: NDArrayFloat | float, a: float) -> NDArrayFloat:
    """sinc(x) * lanczos_window(x, a)."""
    x = np.asarray(x, dtype=np.float64)
    return cast(NDArrayFloat, np.sinc(x) * lanczos_window(x, a))


def blackman_harris(x: NDArrayFloat | float) -> NDArrayFloat:
    """Continuous 4-term Blackman-Harris window over x in [0, 1], zero outside."""
    x = np.asarray(x, dtype=np.float64)
    a0, a1, a2, a3 = BLACKMAN_HARRIS_COEFFS
    w = (
        a0
        - a1 * np.cos(2.0 * np.pi * x)
        + a2 * np.cos(4.0 * np.pi * x)
        - a3 * np.cos(6.0 * np.pi * x)
    )
    return cast(NDArrayFloat, np.where((x >= 0.0) & (x <= 1.0), w, 0.0))


def bessel_i0(x: float) -> float:
    """Zeroth-order modified Bessel function of the first kind.

    Power series sum_k ((x/2)^k / k!)^2, stopped once a term falls below
    ``BESSEL_I0_TOLERANCE`` relative to the running sum.
    """
    half = x / 2.0
    total = 1.0
    term = 1.0
    k = 1
    while True:
        term *= (half / k) ** 2
        total += term
        if term < BESSEL_I0_TOLERANCE * total:
            return total
        k += 1


def kaiser_window(num_taps: int, beta: float) -> NDArrayFloat:
    """Symmetric Kaiser window of ``num_taps`` points.

    Same definition as ``scipy.signal.windows.kaiser(num_taps, beta, sym=True)``.
    """
    if num_taps < 1:
        raise ValueError(f"num_taps must be >= 1 (got {num_taps})")
    if num_taps == 1:
        return np.ones(1, dtype=np.float64)
    denom = bessel_i0(beta)
    m = num_taps - 1
    w = np.empty(num_taps, dtype=np.float64)
    for n in range(num_taps):
        r = 2.0 * n / m - 1.0
        w[n] = bessel_i0(beta * math.sqrt(max(0.0, 1.0 - r * r))) / denom
    return w
