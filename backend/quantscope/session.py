"""Pipeline sessions and the controller that swaps them.

A ``PipelineSession`` is one immutable configuration of the signal chain: the
settings it was built from, the source feeding it, a sample clock and a block
processor with all of its state. Sessions are never edited. Any change of
settings or source goes through :func:`reconfigure`, which builds a complete
new session, and the caller swaps it in and disposes the old one.

``PipelineController`` is that caller for interactive use. The block callback
and the swap hold the same lock, so a callback either runs entirely on the old
session or entirely on the new one.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import numpy as np

from .config import PipelineConfig
from .dsp.processor import BlockProcessor, ProcessorConfig
from .host import Host
from .settings import AudioSettings, QuantizationInfo, RateInfo
from .sources import DecodedBuffer, Oscillator, Source, load_wav
from .typing import NDArrayFloat

logger = logging.getLogger(__name__)


class PipelineSession:
    """One configured signal chain, owned by exactly one caller.

    Example usage:
        session = reconfigure(AudioSettings(sample_rate=8000), host)
        out = session.render_block()    # pull from the source and process
        session.on_block(inp, out_buf)  # or process a block the host supplies
        session.dispose()
    """

    def __init__(
        self,
        settings: AudioSettings,
        rate: RateInfo,
        processor: BlockProcessor,
        source: Source,
    ):
        self.settings = settings
        self.rate = rate
        self.quantization = QuantizationInfo.from_settings(settings)
        self.processor = processor
        self.source = source
        self.sample_clock = 0
        n = processor.block_size
        self._input = np.zeros(n, dtype=np.float64)
        self._output = np.zeros(n, dtype=np.float64)

    @property
    def hardware_rate(self) -> int:
        return self.rate.hardware_rate

    @property
    def block_size(self) -> int:
        return self.processor.block_size

    @property
    def disposed(self) -> bool:
        return self.processor.disposed

    @property
    def last_input(self) -> NDArrayFloat:
        """Source samples of the most recent ``render_block`` call."""
        return self._input

    def on_block(self, input_block: NDArrayFloat, output_block: NDArrayFloat) -> None:
        """Host callback: fill every index of ``output_block``."""
        self.processor.process_into(input_block, output_block)
        self.sample_clock += input_block.shape[0]

    def pull_input(self) -> NDArrayFloat:
        """Render the next block of source samples at the hardware rate."""
        self._input[:] = self.source.render(self.sample_clock, self.block_size, self.hardware_rate)
        return self._input

    def render_block(self) -> NDArrayFloat:
        """Pull one block from the source and process it.

        The returned array is reused by the next call.
        """
        self.on_block(self.pull_input(), self._output)
        return self._output

    def dispose(self) -> None:
        self.processor.dispose()
        logger.debug(f"Disposed session at sample {self.sample_clock}")


def processor_config_for(
    settings: AudioSettings,
    effective_rate: float,
    host: Host,
    pipeline: PipelineConfig,
) -> ProcessorConfig:
    return ProcessorConfig(
        hardware_rate=host.hardware_rate,
        target_rate=effective_rate,
        bit_depth=settings.bit_depth,
        waveform_type=settings.waveform_type,
        reconstruction=pipeline.reconstruction,
        pre_filter=pipeline.pre_filter,
        post_filter=pipeline.post_filter,
        pre_cutoff_ratio=pipeline.pre_cutoff_ratio,
        post_cutoff_ratio=pipeline.post_cutoff_ratio,
        sinc_radius=pipeline.sinc_radius,
        num_phases=pipeline.num_phases,
        filter_length=pipeline.filter_length,
        kaiser_base_order=pipeline.kaiser_base_order,
        kaiser_reference_rate=pipeline.kaiser_reference_rate,
        kaiser_beta=pipeline.kaiser_beta,
        block_size=host.block_size,
    )


def reconfigure(
    settings: AudioSettings,
    host: Host,
    pipeline: PipelineConfig | None = None,
    source: Source | None = None,
) -> PipelineSession:
    """Build a fresh session for ``settings``.

    Nothing is carried over from any previous session: the phase accumulator,
    sample history, filter state and sample clock all start from zero.

    Args:
        settings: Validated user settings
        host: Supplies the hardware rate, block size and rate clamp
        pipeline: Filter and reconstruction choices (defaults if None)
        source: Input source; an oscillator for ``settings`` if None

    Raises:
        SettingsError: settings are out of bounds
        ValueError: the pipeline configuration is invalid
    """
    settings.validate()
    pipeline = pipeline or PipelineConfig()
    effective = host.clamp_rate(settings.sample_rate)
    rate = RateInfo(
        requested_rate=settings.sample_rate,
        effective_rate=effective,
        hardware_rate=host.hardware_rate,
    )
    if source is None:
        source = Oscillator(settings.frequency, settings.waveform_type)
    processor = BlockProcessor(processor_config_for(settings, effective, host, pipeline))
    return PipelineSession(settings, rate, processor, source)


class PipelineController:
    """Owns the current session and swaps it on every change.

    While stopped there is no session and the callback writes silence.
    """

    def __init__(
        self,
        host: Host,
        pipeline: PipelineConfig | None = None,
        settings: AudioSettings | None = None,
    ):
        self.host = host
        self.pipeline = pipeline or PipelineConfig()
        self._settings = settings or self.pipeline.default_settings()
        self._file_source: DecodedBuffer | None = None
        self._session: PipelineSession | None = None
        self._lock = threading.Lock()
        # Serializes reconfiguration; the block callback never takes it
        self._reconfigure_lock = threading.Lock()
        self._silence = np.zeros(host.block_size, dtype=np.float64)

    @property
    def settings(self) -> AudioSettings:
        return self._settings

    @property
    def session(self) -> PipelineSession | None:
        return self._session

    @property
    def playing(self) -> bool:
        return self._session is not None

    @property
    def file_source(self) -> DecodedBuffer | None:
        return self._file_source

    def apply(self, settings: AudioSettings) -> None:
        """Adopt ``settings``, rebuilding the session when playing.

        Raises:
            SettingsError: settings are out of bounds; nothing changes
        """
        with self._reconfigure_lock:
            self._apply(settings, self._file_source)

    def start(self) -> None:
        self._set_playing(True)

    def stop(self) -> None:
        self._set_playing(False)

    def _set_playing(self, playing: bool) -> None:
        with self._reconfigure_lock:
            self._apply(self._settings.replace(is_playing=playing), self._file_source)

    def _apply(self, settings: AudioSettings, source: DecodedBuffer | None) -> None:
        # Caller holds _reconfigure_lock. Nothing is committed if building fails.
        settings.validate()
        new = None
        if settings.is_playing:
            new = reconfigure(settings, self.host, self.pipeline, source)
        self._settings = settings
        self._file_source = source
        self._swap(new)

    def set_source(self, source: DecodedBuffer | None) -> None:
        """Switch to a decoded buffer, or back to the oscillator with None."""
        with self._reconfigure_lock:
            self._apply(self._settings, source)

    def load_file(self, path: str | Path) -> DecodedBuffer:
        """Decode ``path`` and make it the active source.

        Raises:
            SourceDecodeError: the file cannot be decoded; nothing changes
        """
        buf = load_wav(path)
        self.set_source(buf)
        return buf

    def on_block(self, input_block: NDArrayFloat, output_block: NDArrayFloat) -> None:
        with self._lock:
            if self._session is None:
                output_block.fill(0.0)
                return
            self._session.on_block(input_block, output_block)

    def render_block(self) -> NDArrayFloat:
        with self._lock:
            if self._session is None:
                return self._silence
            return self._session.render_block()

    def dispose(self) -> None:
        with self._reconfigure_lock:
            self._swap(None)

    def _swap(self, new: PipelineSession | None) -> None:
        with self._lock:
            old, self._session = self._session, new
        # The callback can no longer reach ``old`` once the lock is released.
        if old is not None:
            old.dispose()
        if new is not None:
            logger.info(
                f"Session: {new.settings.waveform_type} {new.settings.frequency:.1f} Hz, "
                f"{new.rate.effective_rate:.1f} Hz / {new.settings.bit_depth}-bit, "
                f"source={type(new.source).__name__}"
            )
