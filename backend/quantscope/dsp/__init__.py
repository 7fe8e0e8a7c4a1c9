"""Signal chain: waveform generation, quantization, decimation, reconstruction."""

from quantscope.dsp.decimator import Decimator, DecimatorState, PhaseState
from quantscope.dsp.history import SampleHistory
from quantscope.dsp.processor import BlockProcessor, ProcessorConfig
from quantscope.dsp.quantizer import (
    dequantize,
    quantization_levels,
    quantize,
    quantize_block,
    quantize_indices,
    quantize_to_index,
    to_binary_string,
)
from quantscope.dsp.reconstruction import (
    LinearInterpolation,
    PolyphaseFIR,
    SampleAndHold,
    WindowedSinc,
    select_strategy,
)
from quantscope.dsp.waveform import generate, generate_block

__all__ = [
    "BlockProcessor",
    "Decimator",
    "DecimatorState",
    "LinearInterpolation",
    "PhaseState",
    "PolyphaseFIR",
    "ProcessorConfig",
    "SampleAndHold",
    "SampleHistory",
    "WindowedSinc",
    "dequantize",
    "generate",
    "generate_block",
    "quantization_levels",
    "quantize",
    "quantize_block",
    "quantize_indices",
    "quantize_to_index",
    "select_strategy",
    "to_binary_string",
]
