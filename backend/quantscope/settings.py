"""User-facing audio settings and the values derived from them.

Settings are validated at the configuration boundary. Out-of-range values are
rejected with :class:`SettingsError`, never clamped, so nothing invalid can
reach the real-time block callback.
"""

from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import Any, Literal, get_args

from .validation import (
    BIT_DEPTH_MAX,
    BIT_DEPTH_MIN,
    SAMPLE_RATE_MAX_HZ,
    SAMPLE_RATE_MIN_HZ,
    TONE_FREQ_MAX_HZ,
    TONE_FREQ_MIN_HZ,
    validate_float_range,
    validate_int_range,
)

WaveformType = Literal["sine", "square", "triangle", "sawtooth"]
WAVEFORM_TYPES: tuple[str, ...] = get_args(WaveformType)


class SettingsError(ValueError):
    """Raised when audio settings fall outside their allowed bounds."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


@dataclass(frozen=True)
class AudioSettings:
    sample_rate: float = 8000.0
    bit_depth: int = 8
    frequency: float = 440.0
    waveform_type: WaveformType = "sine"
    is_playing: bool = False

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        problems: list[str] = []
        ok, msg = validate_float_range(
            self.sample_rate, SAMPLE_RATE_MIN_HZ, SAMPLE_RATE_MAX_HZ, "sample_rate"
        )
        if not ok:
            problems.append(msg)
        ok, msg = validate_int_range(self.bit_depth, BIT_DEPTH_MIN, BIT_DEPTH_MAX, "bit_depth")
        if not ok:
            problems.append(msg)
        ok, msg = validate_float_range(
            self.frequency, TONE_FREQ_MIN_HZ, TONE_FREQ_MAX_HZ, "frequency"
        )
        if not ok:
            problems.append(msg)
        if self.waveform_type not in WAVEFORM_TYPES:
            problems.append(
                f"waveform_type must be one of {', '.join(WAVEFORM_TYPES)} "
                f"(got {self.waveform_type!r})"
            )
        if not isinstance(self.is_playing, bool):
            problems.append("is_playing is not a bool")
        if problems:
            raise SettingsError(problems)

    @property
    def levels(self) -> int:
        return 1 << int(self.bit_depth)

    def replace(self, **changes: Any) -> AudioSettings:
        """Return a validated copy with the given fields changed."""
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass(frozen=True)
class QuantizationInfo:
    levels: int
    nyquist_frequency: float
    estimated_size: float  # bytes per second

    @staticmethod
    def from_settings(settings: AudioSettings) -> QuantizationInfo:
        bytes_per_sample = math.ceil(settings.bit_depth / 8)
        return QuantizationInfo(
            levels=settings.levels,
            nyquist_frequency=settings.sample_rate / 2.0,
            estimated_size=settings.sample_rate * bytes_per_sample,
        )


@dataclass(frozen=True)
class RateInfo:
    """Requested versus effective capture rate for one pipeline instance."""

    requested_rate: float
    effective_rate: float
    hardware_rate: int

    @property
    def above_hardware_limit(self) -> bool:
        return self.requested_rate > self.hardware_rate

    @property
    def bypass(self) -> bool:
        return self.effective_rate >= self.hardware_rate

    @property
    def downsample_ratio(self) -> float:
        return self.hardware_rate / self.effective_rate
