from __future__ import annotations

import math
from typing import Any

import numpy as np

AUDIO_MAX_ABS = 1.0

SAMPLE_RATE_MIN_HZ = 0.1
SAMPLE_RATE_MAX_HZ = 88_200.0

BIT_DEPTH_MIN = 1
BIT_DEPTH_MAX = 32

TONE_FREQ_MIN_HZ = 20.0
TONE_FREQ_MAX_HZ = 20_000.0

HARDWARE_RATE_MIN_HZ = 3_000
HARDWARE_RATE_MAX_HZ = 768_000

BLOCK_SIZE_MIN = 1
BLOCK_SIZE_MAX = 1 << 16


def validate_finite_array(values: np.ndarray) -> bool:
    return bool(np.isfinite(values).all())


def validate_audio_samples(
    audio: np.ndarray,
    max_abs: float = AUDIO_MAX_ABS,
) -> tuple[bool, str]:
    if audio.size == 0:
        return True, ""
    if not validate_finite_array(audio):
        return False, "non-finite audio samples"
    max_val = float(np.max(np.abs(audio)))
    if max_val > max_abs:
        return False, f"audio max abs {max_val:.3f} exceeds {max_abs:.3f}"
    return True, ""


def validate_int_range(
    value: Any,
    min_value: int,
    max_value: int,
    label: str,
) -> tuple[bool, str]:
    if isinstance(value, bool):
        return False, f"{label} is not an int"
    if isinstance(value, float):
        if not value.is_integer():
            return False, f"{label} is not an int"
    try:
        int_value = int(value)
    except (TypeError, ValueError, OverflowError):
        return False, f"{label} is not an int"
    if int_value < min_value or int_value > max_value:
        return (
            False,
            f"{label} out of range {min_value}-{max_value} (got {int_value})",
        )
    return True, ""


def validate_float_range(
    value: Any,
    min_value: float,
    max_value: float,
    label: str,
) -> tuple[bool, str]:
    if isinstance(value, bool):
        return False, f"{label} is not a float"
    try:
        float_value = float(value)
    except (TypeError, ValueError):
        return False, f"{label} is not a float"
    if not math.isfinite(float_value):
        return False, f"{label} is not finite"
    if float_value < min_value or float_value > max_value:
        return (
            False,
            f"{label} out of range {min_value}-{max_value} (got {float_value})",
        )
    return True, ""
