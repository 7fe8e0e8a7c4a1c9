"""Phase-accumulator decimation from the hardware rate to a target rate.

Each hardware-rate tick advances the accumulator by one sample. When it reaches
the downsample ratio (hardware_rate / target_rate) the ratio is subtracted and
the tick is a capture instant. Non-integer ratios are handled exactly by
carrying the fractional remainder, so captures occur on average every
``ratio`` ticks.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class DecimatorState(enum.Enum):
    ACCUMULATING = "accumulating"
    SAMPLE_READY = "sample_ready"


@dataclass
class PhaseState:
    phase_accumulator: float = 0.0
    downsample_ratio: float = 1.0


class Decimator:
    """Decides, tick by tick, which hardware-rate samples are captured.

    Example usage:
        dec = Decimator(hardware_rate=48_000, target_rate=8_000)
        for x in block:
            if dec.tick() is DecimatorState.SAMPLE_READY:
                capture(x)
            frac = dec.frac_pos
    """

    def __init__(self, hardware_rate: float, target_rate: float):
        if hardware_rate <= 0 or target_rate <= 0:
            raise ValueError(
                f"rates must be positive (hardware={hardware_rate}, target={target_rate})"
            )
        self.hardware_rate = float(hardware_rate)
        self.target_rate = float(target_rate)
        self.bypass = self.target_rate >= self.hardware_rate
        self.state = PhaseState(
            phase_accumulator=0.0,
            downsample_ratio=self.hardware_rate / self.target_rate,
        )
        logger.debug(
            f"Decimator: hw={self.hardware_rate:.1f} Hz target={self.target_rate:.3f} Hz "
            f"ratio={self.state.downsample_ratio:.6f} bypass={self.bypass}"
        )

    @property
    def downsample_ratio(self) -> float:
        return self.state.downsample_ratio

    @property
    def phase_accumulator(self) -> float:
        return self.state.phase_accumulator

    @property
    def frac_pos(self) -> float:
        """Fraction in [0, 1) of the way from the last capture to the next."""
        if self.bypass:
            return 0.0
        return self.state.phase_accumulator / self.state.downsample_ratio

    def tick(self) -> DecimatorState:
        """Advance one hardware-rate sample."""
        if self.bypass:
            return DecimatorState.SAMPLE_READY
        st = self.state
        st.phase_accumulator += 1.0
        if st.phase_accumulator >= st.downsample_ratio:
            st.phase_accumulator -= st.downsample_ratio
            return DecimatorState.SAMPLE_READY
        return DecimatorState.ACCUMULATING

    def reset(self) -> None:
        self.state.phase_accumulator = 0.0
