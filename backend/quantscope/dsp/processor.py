"""Per-callback block processor.

The processor owns every piece of per-stream state: the decimator's phase
accumulator, the ring buffer of quantized captures, the filter histories and
the output buffers. All of it is allocated at construction, so ``process_into``
does no resizing or coefficient design while the host's deadline is running.

Signal path for each hardware-rate sample, strictly in index order:

    input -> anti-alias lowpass -> decimator -> quantizer -> reconstruction
          -> reconstruction lowpass -> output

When the target rate is at or above the hardware rate the decimator is
bypassed and every sample is only quantized (no filtering, no reconstruction).

A processor is never reconfigured in place. A settings change builds a new
one, so no phase, history or filter state leaks between configurations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import cast

import numpy as np

from quantscope.dsp.decimator import Decimator, DecimatorState
from quantscope.dsp.filters import (
    DEFAULT_KAISER_BASE_ORDER,
    DEFAULT_KAISER_BETA,
    DEFAULT_KAISER_REFERENCE_RATE,
    FILTER_KINDS,
    FilterKind,
    StreamingFilter,
    build_lowpass,
)
from quantscope.dsp.history import SampleHistory
from quantscope.dsp.quantizer import (
    dequantize,
    quantization_levels,
    quantize_indices,
    quantize_to_index,
)
from quantscope.dsp.reconstruction import (
    DEFAULT_FILTER_LENGTH,
    DEFAULT_NUM_PHASES,
    DEFAULT_SINC_RADIUS,
    ReconstructionMode,
    ReconstructionStrategy,
    resolve_mode,
    select_strategy,
)
from quantscope.settings import WaveformType
from quantscope.typing import NDArrayFloat, NDArrayInt

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 4096
DEFAULT_PRE_CUTOFF_RATIO = 0.75
DEFAULT_POST_CUTOFF_RATIO = 0.9

_SAMPLE_READY = DecimatorState.SAMPLE_READY


@dataclass(frozen=True)
class ProcessorConfig:
    hardware_rate: int
    target_rate: float
    bit_depth: int
    waveform_type: WaveformType = "sine"
    reconstruction: ReconstructionMode = "auto"
    pre_filter: FilterKind = "butterworth4"
    post_filter: FilterKind = "biquad"
    # Cutoffs as a fraction of the target Nyquist frequency
    pre_cutoff_ratio: float = DEFAULT_PRE_CUTOFF_RATIO
    post_cutoff_ratio: float = DEFAULT_POST_CUTOFF_RATIO
    sinc_radius: int = DEFAULT_SINC_RADIUS
    num_phases: int = DEFAULT_NUM_PHASES
    filter_length: int = DEFAULT_FILTER_LENGTH
    kaiser_base_order: int = DEFAULT_KAISER_BASE_ORDER
    kaiser_reference_rate: float = DEFAULT_KAISER_REFERENCE_RATE
    kaiser_beta: float = DEFAULT_KAISER_BETA
    block_size: int = DEFAULT_BLOCK_SIZE

    def __post_init__(self) -> None:
        # Everything the callback could trip over is rejected here.
        if self.hardware_rate <= 0:
            raise ValueError(f"hardware_rate must be positive (got {self.hardware_rate})")
        if not self.target_rate > 0:
            raise ValueError(f"target_rate must be positive (got {self.target_rate})")
        quantization_levels(self.bit_depth)
        resolve_mode(self.reconstruction, self.waveform_type)
        for label, kind in (("pre_filter", self.pre_filter), ("post_filter", self.post_filter)):
            if kind not in FILTER_KINDS:
                raise ValueError(f"{label} must be one of {', '.join(FILTER_KINDS)} (got {kind!r})")
        for label, ratio in (
            ("pre_cutoff_ratio", self.pre_cutoff_ratio),
            ("post_cutoff_ratio", self.post_cutoff_ratio),
        ):
            if not 0.0 < ratio < 1.0:
                raise ValueError(f"{label} must be in (0, 1) (got {ratio})")
        if self.block_size < 1:
            raise ValueError(f"block_size must be >= 1 (got {self.block_size})")

    @property
    def bypass(self) -> bool:
        return self.target_rate >= self.hardware_rate


class BlockProcessor:
    """Stateful hardware-rate block processor.

    Example usage:
        proc = BlockProcessor(ProcessorConfig(48_000, 8_000, 8))
        out = proc.process(block)          # new array
        proc.process_into(block, out_buf)  # no allocation of the result
    """

    def __init__(self, config: ProcessorConfig):
        self.config = config
        self.levels = quantization_levels(config.bit_depth)
        self.decimator = Decimator(config.hardware_rate, config.target_rate)
        self.bypass = self.decimator.bypass

        self.strategy: ReconstructionStrategy = select_strategy(
            config.reconstruction,
            config.waveform_type,
            sinc_radius=config.sinc_radius,
            num_phases=config.num_phases,
            filter_length=config.filter_length,
        )
        self.history = SampleHistory(max(1, self.strategy.support))

        self.pre_filter: StreamingFilter | None = None
        self.post_filter: StreamingFilter | None = None
        if not self.bypass:
            nyquist = config.target_rate / 2.0
            self.pre_filter = self._build_filter(config.pre_filter, nyquist * config.pre_cutoff_ratio)
            self.post_filter = self._build_filter(config.post_filter, nyquist * config.post_cutoff_ratio)

        n = config.block_size
        self._output = np.zeros(n, dtype=np.float64)
        self._captured_values = np.zeros(n, dtype=np.float64)
        self._captured_indices = np.zeros(n, dtype=np.int64)
        self._capture_count = 0
        self.blocks_processed = 0
        self.nonfinite_blocks = 0
        self._disposed = False

        logger.info(
            f"BlockProcessor: hw={config.hardware_rate} Hz target={config.target_rate:.3f} Hz "
            f"bits={config.bit_depth} levels={self.levels} strategy={self.strategy.name} "
            f"pre={config.pre_filter if self.pre_filter else 'none'} "
            f"post={config.post_filter if self.post_filter else 'none'} "
            f"bypass={self.bypass} block={n}"
        )

    def _build_filter(self, kind: FilterKind, cutoff_hz: float) -> StreamingFilter | None:
        cfg = self.config
        return build_lowpass(
            kind,
            cutoff_hz,
            cfg.hardware_rate,
            target_rate=cfg.target_rate,
            kaiser_base_order=cfg.kaiser_base_order,
            kaiser_reference_rate=cfg.kaiser_reference_rate,
            kaiser_beta=cfg.kaiser_beta,
        )

    @property
    def block_size(self) -> int:
        return self.config.block_size

    @property
    def disposed(self) -> bool:
        return self._disposed

    def process(self, block: NDArrayFloat) -> NDArrayFloat:
        """Process one block and return the output as a new array."""
        x = np.asarray(block, dtype=np.float64)
        out = np.empty(x.shape[0] if x.ndim == 1 else 0, dtype=np.float64)
        self.process_into(x, out)
        return out

    def process_into(self, block: NDArrayFloat, out: NDArrayFloat) -> None:
        """Process one block, writing every index of ``out``.

        Args:
            block: Hardware-rate input samples, at most ``block_size`` long
            out: Output buffer of the same length
        """
        if self._disposed:
            raise RuntimeError("BlockProcessor used after dispose()")
        x = np.asarray(block, dtype=np.float64)
        if x.ndim != 1 or x.shape[0] > self.config.block_size or out.shape != x.shape:
            raise ValueError(
                f"block of shape {x.shape} does not fit block_size={self.config.block_size} "
                f"with output shape {out.shape}"
            )
        n = x.shape[0]
        if n == 0:
            return
        if not np.isfinite(x).all():
            self.nonfinite_blocks += 1
            x = np.nan_to_num(x, nan=0.0, posinf=1.0, neginf=-1.0)

        if self.bypass:
            self._process_bypass(x, out)
        else:
            self._process_decimating(x, out)
        self.blocks_processed += 1

    def _process_bypass(self, x: NDArrayFloat, out: NDArrayFloat) -> None:
        n = x.shape[0]
        levels = self.levels
        indices = quantize_indices(x, levels)
        self._captured_indices[:n] = indices
        values = self._captured_values[:n]
        np.divide(indices, levels - 1, out=values)
        values *= 2.0
        values -= 1.0
        self._capture_count = n
        out[:] = values

    def _process_decimating(self, x: NDArrayFloat, out: NDArrayFloat) -> None:
        n = x.shape[0]
        filtered = self.pre_filter.process(x) if self.pre_filter is not None else x

        dec = self.decimator
        hist = self.history
        reconstruct = self.strategy.reconstruct
        levels = self.levels
        values = self._captured_values
        indices = self._captured_indices
        buf = self._output
        count = 0
        for i in range(n):
            if dec.tick() is _SAMPLE_READY:
                index = quantize_to_index(float(filtered[i]), levels)
                value = dequantize(index, levels)
                hist.push(value)
                values[count] = value
                indices[count] = index
                count += 1
            buf[i] = reconstruct(hist, dec.frac_pos)
        self._capture_count = count

        if self.post_filter is not None:
            out[:] = self.post_filter.process(buf[:n])
        else:
            out[:] = buf[:n]

    def captured_values(self) -> NDArrayFloat:
        """Quantized values captured during the most recent block."""
        return cast(NDArrayFloat, self._captured_values[: self._capture_count].copy())

    def captured_indices(self) -> NDArrayInt:
        """Quantization indices captured during the most recent block."""
        return cast(NDArrayInt, self._captured_indices[: self._capture_count].copy())

    def coefficient_tables(self) -> dict[str, NDArrayFloat]:
        """Copies of every coefficient table this processor was built with."""
        tables: dict[str, NDArrayFloat] = {}
        for name, filt in (("pre", self.pre_filter), ("post", self.post_filter)):
            if filt is None:
                continue
            b, a = filt.transfer_function()
            tables[f"{name}_b"] = np.array(b, dtype=np.float64)
            tables[f"{name}_a"] = np.array(a, dtype=np.float64)
        for name, table in self.strategy.coefficient_tables().items():
            tables[name] = np.array(table, dtype=np.float64)
        return tables

    def reset(self) -> None:
        """Return to the freshly constructed state, keeping coefficients."""
        self.decimator.reset()
        self.history.clear()
        for filt in (self.pre_filter, self.post_filter):
            if filt is not None:
                filt.reset()
        self._capture_count = 0

    def dispose(self) -> None:
        """Release buffers and filter state. Processing afterwards raises."""
        if self._disposed:
            return
        self._disposed = True
        self.pre_filter = None
        self.post_filter = None
        self.history.clear()
        self._output = np.zeros(0, dtype=np.float64)
        self._captured_values = np.zeros(0, dtype=np.float64)
        self._captured_indices = np.zeros(0, dtype=np.int64)
        self._capture_count = 0
        logger.debug("BlockProcessor disposed")
