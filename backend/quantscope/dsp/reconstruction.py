"""Reconstruction of a hardware-rate signal from captured samples.

Each strategy implements ``reconstruct(history, frac_pos)``: given the ring
buffer of quantized captures and the decimator's fractional position between
captures, return one hardware-rate output sample. Strategies hold no mutable
state of their own; everything they read lives in the history, which the
block processor owns.

Support lengths (how many captures a strategy reads):
- SampleAndHold: 1
- LinearInterpolation: 2
- WindowedSinc: 2 * radius + 1
- PolyphaseFIR: filter_length

The kernel strategies center their kernel inside the history, so their output
trails the newest capture by about half the support.
"""

from __future__ import annotations

import logging
import math
from typing import Literal, Protocol, get_args

import numpy as np

from quantscope.dsp.filters import design_lanczos_bank, design_polyphase_bank
from quantscope.dsp.history import SampleHistory
from quantscope.settings import WaveformType
from quantscope.typing import NDArrayFloat

logger = logging.getLogger(__name__)

ReconstructionMode = Literal["auto", "hold", "linear", "sinc", "polyphase"]
RECONSTRUCTION_MODES: tuple[str, ...] = get_args(ReconstructionMode)

DEFAULT_SINC_RADIUS = 32
DEFAULT_NUM_PHASES = 256
DEFAULT_FILTER_LENGTH = 64


class ReconstructionStrategy(Protocol):
    name: str
    support: int

    def reconstruct(self, history: SampleHistory, frac_pos: float) -> float: ...

    def coefficient_tables(self) -> dict[str, NDArrayFloat]: ...


class SampleAndHold:
    """Zero-order hold: repeat the newest capture until the next one."""

    name = "hold"
    support = 1

    def reconstruct(self, history: SampleHistory, frac_pos: float) -> float:
        return history.latest(0.0)

    def coefficient_tables(self) -> dict[str, NDArrayFloat]:
        return {}


class LinearInterpolation:
    """Straight line from the previous capture to the newest one.

    The newest capture plays the role of the "next" sample, so the output runs
    one capture period behind. With a single capture, both ends are that sample.
    """

    name = "linear"
    support = 2

    def reconstruct(self, history: SampleHistory, frac_pos: float) -> float:
        n = len(history)
        if n == 0:
            return 0.0
        nxt = history[-1]
        last = history[-2] if n >= 2 else nxt
        return last + (nxt - last) * frac_pos

    def coefficient_tables(self) -> dict[str, NDArrayFloat]:
        return {}


class WindowedSinc:
    """Lanczos-windowed sinc interpolation over 2R + 1 captures.

    Weights come from a bank of ``num_phases`` precomputed kernels; the row for
    ``floor(frac_pos * num_phases)`` is used, so no kernel is evaluated per
    output sample.
    """

    name = "sinc"

    def __init__(self, radius: int = DEFAULT_SINC_RADIUS, num_phases: int = DEFAULT_NUM_PHASES):
        if radius < 1:
            raise ValueError(f"radius must be >= 1 (got {radius})")
        if num_phases < 1:
            raise ValueError(f"num_phases must be >= 1 (got {num_phases})")
        self.radius = int(radius)
        self.num_phases = int(num_phases)
        self.support = 2 * self.radius + 1
        self.bank = design_lanczos_bank(self.radius, self.num_phases)

    def branch_index(self, frac_pos: float) -> int:
        return math.floor(frac_pos * self.num_phases) % self.num_phases

    def weights(self, frac_pos: float) -> NDArrayFloat:
        """Kernel weights for window slots center-R .. center+R."""
        return self.bank[self.branch_index(frac_pos)]

    def reconstruct(self, history: SampleHistory, frac_pos: float) -> float:
        if len(history) < self.support:
            return history.latest(0.0)
        return float(np.dot(history.window(self.support), self.weights(frac_pos)))

    def coefficient_tables(self) -> dict[str, NDArrayFloat]:
        return {"sinc": self.bank}


class PolyphaseFIR:
    """Blackman-Harris windowed-sinc polyphase interpolator.

    Branch ``floor(frac_pos * num_phases) % num_phases`` of a precomputed bank
    is dotted with the newest ``filter_length`` captures.
    """

    name = "polyphase"

    def __init__(
        self,
        num_phases: int = DEFAULT_NUM_PHASES,
        filter_length: int = DEFAULT_FILTER_LENGTH,
        cutoff: float = 1.0,
    ):
        self.num_phases = int(num_phases)
        self.filter_length = int(filter_length)
        self.support = self.filter_length
        self.bank = design_polyphase_bank(self.num_phases, self.filter_length, cutoff)

    def branch_index(self, frac_pos: float) -> int:
        return math.floor(frac_pos * self.num_phases) % self.num_phases

    def reconstruct(self, history: SampleHistory, frac_pos: float) -> float:
        if len(history) < self.support:
            return history.latest(0.0)
        taps = self.bank[self.branch_index(frac_pos)]
        return float(np.dot(taps, history.window(self.support)))

    def coefficient_tables(self) -> dict[str, NDArrayFloat]:
        return {"polyphase": self.bank}


def resolve_mode(mode: ReconstructionMode, waveform_type: WaveformType) -> str:
    """Concrete strategy name for ``mode``.

    "auto" interpolates linearly for sine input and holds for the other
    waveforms, whose edges linear interpolation would smear.
    """
    if mode not in RECONSTRUCTION_MODES:
        raise ValueError(f"Unknown reconstruction mode: {mode!r}")
    if mode == "auto":
        return "linear" if waveform_type == "sine" else "hold"
    return mode


def select_strategy(
    mode: ReconstructionMode,
    waveform_type: WaveformType = "sine",
    sinc_radius: int = DEFAULT_SINC_RADIUS,
    num_phases: int = DEFAULT_NUM_PHASES,
    filter_length: int = DEFAULT_FILTER_LENGTH,
) -> ReconstructionStrategy:
    """Build the strategy for ``mode``; chosen once per processor."""
    name = resolve_mode(mode, waveform_type)
    strategy: ReconstructionStrategy
    if name == "hold":
        strategy = SampleAndHold()
    elif name == "linear":
        strategy = LinearInterpolation()
    elif name == "sinc":
        strategy = WindowedSinc(sinc_radius, num_phases)
    else:
        strategy = PolyphaseFIR(num_phases, filter_length)
    logger.debug(f"Reconstruction: mode={mode} waveform={waveform_type} -> {strategy.name}")
    return strategy
