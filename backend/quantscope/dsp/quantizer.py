"""Uniform mid-rise quantizer over [-1, 1].

A value is mapped to one of ``levels`` indices with
``floor((value + 1) / 2 * levels)`` (clamped), and an index is mapped back to
an evenly spaced level with ``index / (levels - 1) * 2 - 1``. Level counts
below two have no representable spacing and are rejected.
"""

from __future__ import annotations

import math
from typing import cast

import numpy as np

from quantscope.typing import NDArrayFloat, NDArrayInt
from quantscope.validation import BIT_DEPTH_MAX, BIT_DEPTH_MIN

# Values within this many ulps (scaled by the level count) of an exact level
# resolve to that level, so re-quantizing a quantized value is a fixed point
# even at 32 bits where float64 rounding exceeds the level spacing residue.
_LEVEL_SNAP_ULPS = 8.0
_EPS = float(np.finfo(np.float64).eps)


def quantization_levels(bit_depth: int) -> int:
    """Number of quantization levels for ``bit_depth`` bits."""
    if isinstance(bit_depth, bool) or not BIT_DEPTH_MIN <= int(bit_depth) <= BIT_DEPTH_MAX:
        raise ValueError(
            f"bit_depth must be in {BIT_DEPTH_MIN}-{BIT_DEPTH_MAX} (got {bit_depth})"
        )
    return 1 << int(bit_depth)


def _check_levels(levels: int) -> None:
    if levels < 2:
        raise ValueError(f"levels must be >= 2 (got {levels})")


def quantize_to_index(value: float, levels: int) -> int:
    """Map ``value`` in [-1, 1] to an index in ``[0, levels - 1]``."""
    _check_levels(levels)
    normalized = (value + 1.0) / 2.0
    scaled = normalized * (levels - 1)
    nearest = round(scaled)
    # Band: |normalized * (levels - 1) - k| <= levels * 8 * eps resolves to k.
    # Plain floor(normalized * levels) agrees except for levels k below about
    # 8 * eps * levels**2, which exist only past 24 bits.
    if abs(scaled - nearest) <= levels * _LEVEL_SNAP_ULPS * _EPS:
        index = int(nearest)
    else:
        index = math.floor(normalized * levels)
    return max(0, min(levels - 1, index))


def dequantize(index: int, levels: int) -> float:
    """Map a quantization index back to its level in [-1, 1]."""
    _check_levels(levels)
    return (index / (levels - 1)) * 2.0 - 1.0


def quantize(value: float, levels: int) -> float:
    """Quantize ``value`` to the nearest-below of ``levels`` evenly spaced levels."""
    return dequantize(quantize_to_index(value, levels), levels)


def quantize_indices(values: NDArrayFloat, levels: int) -> NDArrayInt:
    """Vectorized :func:`quantize_to_index`."""
    _check_levels(levels)
    normalized = (np.asarray(values, dtype=np.float64) + 1.0) / 2.0
    scaled = normalized * (levels - 1)
    nearest = np.rint(scaled)
    on_level = np.abs(scaled - nearest) <= levels * _LEVEL_SNAP_ULPS * _EPS
    index = np.where(on_level, nearest, np.floor(normalized * levels))
    return cast(NDArrayInt, np.clip(index, 0, levels - 1).astype(np.int64))


def quantize_block(values: NDArrayFloat, levels: int) -> NDArrayFloat:
    """Vectorized :func:`quantize`."""
    index = quantize_indices(values, levels)
    return cast(NDArrayFloat, (index / (levels - 1)) * 2.0 - 1.0)


def to_binary_string(index: int, bit_depth: int) -> str:
    """Zero-padded binary representation of ``index`` with ``bit_depth`` digits."""
    if index < 0:
        raise ValueError(f"index must be non-negative (got {index})")
    return format(int(index), "b").zfill(int(bit_depth))
