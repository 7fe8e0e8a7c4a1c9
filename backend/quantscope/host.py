"""Offline stand-in for the real-time audio host.

A real host pulls fixed-size blocks from the pipeline on its own clock and
pushes them to an output device. ``OfflineHost`` does the same pulling in a
plain loop and collects the output, which is all the CLI, the HTTP render
endpoint and the tests need.
"""

from __future__ import annotations

import logging
from typing import Protocol

import numpy as np

from .config import HostConfig
from .typing import NDArrayFloat
from .validation import (
    BLOCK_SIZE_MAX,
    BLOCK_SIZE_MIN,
    HARDWARE_RATE_MAX_HZ,
    HARDWARE_RATE_MIN_HZ,
    validate_int_range,
)

logger = logging.getLogger(__name__)


class Host(Protocol):
    hardware_rate: int
    block_size: int

    def clamp_rate(self, requested: float) -> float: ...


class BlockRenderer(Protocol):
    def render_block(self) -> NDArrayFloat:
        """Produce the next output block of ``block_size`` samples."""
        ...


class OfflineHost:
    def __init__(self, hardware_rate: int = 48_000, block_size: int = 4096):
        ok, msg = validate_int_range(
            hardware_rate, HARDWARE_RATE_MIN_HZ, HARDWARE_RATE_MAX_HZ, "hardware_rate"
        )
        if not ok:
            raise ValueError(msg)
        ok, msg = validate_int_range(block_size, BLOCK_SIZE_MIN, BLOCK_SIZE_MAX, "block_size")
        if not ok:
            raise ValueError(msg)
        self.hardware_rate = int(hardware_rate)
        self.block_size = int(block_size)

    @classmethod
    def from_config(cls, cfg: HostConfig) -> OfflineHost:
        return cls(cfg.hardware_rate, cfg.block_size)

    @property
    def block_period_s(self) -> float:
        """Deadline for one callback."""
        return self.block_size / self.hardware_rate

    def clamp_rate(self, requested: float) -> float:
        """Capture rate the pipeline actually runs at for ``requested``."""
        effective = min(float(requested), float(self.hardware_rate))
        if effective < requested:
            logger.info(
                f"Requested rate {requested:.1f} Hz exceeds hardware rate "
                f"{self.hardware_rate} Hz, running at {effective:.1f} Hz"
            )
        return effective

    def run(self, target: BlockRenderer, num_blocks: int) -> NDArrayFloat:
        """Pull ``num_blocks`` blocks in order and return them concatenated."""
        if num_blocks < 0:
            raise ValueError(f"num_blocks must be >= 0 (got {num_blocks})")
        n = self.block_size
        out = np.empty(num_blocks * n, dtype=np.float64)
        for b in range(num_blocks):
            out[b * n : (b + 1) * n] = target.render_block()
        return out

    def __repr__(self) -> str:
        return f"OfflineHost(hardware_rate={self.hardware_rate}, block_size={self.block_size})"
