"""Shared pytest fixtures for QuantScope tests."""

from pathlib import Path

import numpy as np
import pytest

from quantscope.config import AppConfig, LoggingConfig, PipelineConfig
from quantscope.host import OfflineHost
from quantscope.settings import AudioSettings
from quantscope.sources import write_wav


@pytest.fixture
def hardware_rate() -> int:
    """Default audio clock rate for tests."""
    return 48_000


@pytest.fixture
def block_size() -> int:
    """Default callback block size for tests."""
    return 4096


@pytest.fixture
def host(hardware_rate: int, block_size: int) -> OfflineHost:
    return OfflineHost(hardware_rate, block_size)


@pytest.fixture
def pipeline_config() -> PipelineConfig:
    return PipelineConfig()


@pytest.fixture
def make_settings():
    """Factory for validated AudioSettings with test defaults."""
    def _make(**changes) -> AudioSettings:
        return AudioSettings().replace(**changes)

    return _make


@pytest.fixture
def generate_tone():
    """Factory to generate single tone audio signals."""
    def _generate(
        sample_rate: int,
        duration_s: float,
        frequency: float,
        amplitude: float = 0.5,
    ) -> np.ndarray:
        n_samples = int(sample_rate * duration_s)
        t = np.arange(n_samples, dtype=np.float64) / sample_rate
        return amplitude * np.sin(2 * np.pi * frequency * t)

    return _generate


@pytest.fixture
def wav_file(tmp_path: Path, generate_tone) -> Path:
    """A short 16-bit mono tone on disk (22.05 kHz, 0.1 s, 1 kHz)."""
    path = tmp_path / "tone.wav"
    write_wav(path, generate_tone(22_050, 0.1, 1000.0), 22_050)
    return path


@pytest.fixture
def app_config(block_size: int) -> AppConfig:
    """Config with file logging disabled."""
    cfg = AppConfig()
    cfg.host.block_size = block_size
    cfg.logging = LoggingConfig(level="WARNING", console_level="WARNING", file=None)
    return cfg


@pytest.fixture
def backend_root() -> Path:
    """Get the backend root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(backend_root: Path) -> Path:
    """Get the config directory."""
    return backend_root / "config"
