from __future__ import annotations

import logging
import os
import shutil
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .dsp.filters import (
    DEFAULT_KAISER_BASE_ORDER,
    DEFAULT_KAISER_BETA,
    DEFAULT_KAISER_REFERENCE_RATE,
    FilterKind,
)
from .dsp.processor import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_POST_CUTOFF_RATIO,
    DEFAULT_PRE_CUTOFF_RATIO,
)
from .dsp.reconstruction import (
    DEFAULT_FILTER_LENGTH,
    DEFAULT_NUM_PHASES,
    DEFAULT_SINC_RADIUS,
    ReconstructionMode,
)
from .settings import AudioSettings, WaveformType

logger = logging.getLogger(__name__)

ENV_PREFIX = "QUANTSCOPE__"
CONFIG_ENV_VAR = "QUANTSCOPE_CONFIG"


@dataclass
class ServerConfig:
    bind_address: str = "127.0.0.1"
    port: int = 8095


@dataclass
class HostConfig:
    # Fixed rate of the audio clock pulling blocks
    hardware_rate: int = 48_000
    block_size: int = DEFAULT_BLOCK_SIZE


@dataclass
class PipelineConfig:
    # Settings used when a client does not send its own
    sample_rate: float = 8000.0
    bit_depth: int = 8
    frequency: float = 440.0
    waveform_type: WaveformType = "sine"

    reconstruction: ReconstructionMode = "auto"
    pre_filter: FilterKind = "butterworth4"
    post_filter: FilterKind = "biquad"
    pre_cutoff_ratio: float = DEFAULT_PRE_CUTOFF_RATIO
    post_cutoff_ratio: float = DEFAULT_POST_CUTOFF_RATIO
    sinc_radius: int = DEFAULT_SINC_RADIUS
    num_phases: int = DEFAULT_NUM_PHASES
    filter_length: int = DEFAULT_FILTER_LENGTH
    kaiser_base_order: int = DEFAULT_KAISER_BASE_ORDER
    kaiser_reference_rate: float = DEFAULT_KAISER_REFERENCE_RATE
    kaiser_beta: float = DEFAULT_KAISER_BETA

    def default_settings(self) -> AudioSettings:
        return AudioSettings(
            sample_rate=float(self.sample_rate),
            bit_depth=self.bit_depth,
            frequency=float(self.frequency),
            waveform_type=self.waveform_type,
        )


@dataclass
class LoggingConfig:
    # Level names (WARN and FATAL included) or numbers
    level: str | int = "INFO"
    console_level: str | int = "INFO"
    # Rotating log file; None disables file logging
    file: str | None = "logs/quantscope.log"

    def __post_init__(self) -> None:
        parse_log_level(self.level, "logging.level")
        parse_log_level(self.console_level, "logging.console_level")

    @property
    def level_number(self) -> int:
        return parse_log_level(self.level, "logging.level")

    @property
    def console_level_number(self) -> int:
        return parse_log_level(self.console_level, "logging.console_level")

    def uvicorn_level(self) -> str:
        """Lowercase level name for uvicorn's ``log_level`` option."""
        name = str(logging.getLevelName(self.level_number)).lower()
        return name if name in _UVICORN_LEVELS else "info"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    host: HostConfig = field(default_factory=HostConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = ("server", "host", "pipeline", "logging")
_UVICORN_LEVELS = ("critical", "error", "warning", "info", "debug")


def parse_log_level(value: str | int, label: str = "level") -> int:
    """Numeric level for a level name or number from the config.

    Raises:
        ValueError: ``value`` is neither a known level name nor a non-negative number
    """
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    raw = str(value).strip().upper()
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw)
    if not isinstance(level, int):
        raise ValueError(f"{label} must be a level name or number (got {value!r})")
    return level


def default_config_path() -> str:
    """Config path from QUANTSCOPE_CONFIG, else backend/config/quantscope.yaml."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return env_path
    module_dir = Path(__file__).resolve().parent
    return str(module_dir.parent / "config" / "quantscope.yaml")


def local_overlay_path(path: Path) -> Path:
    return path.with_name(f"{path.stem}.local{path.suffix}")


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError("Config root must be a mapping")
        return data


def _overlay(dst: dict[str, Any], src: dict[str, Any]) -> dict[str, Any]:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            _overlay(dst[k], v)
        else:
            dst[k] = v
    return dst


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    data = raw.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    return data


def load_config(path_str: str) -> AppConfig:
    path = Path(path_str)
    raw: dict[str, Any] = _read_yaml(path)
    local_path = local_overlay_path(path)
    if local_path.exists():
        _overlay(raw, _read_yaml(local_path))
        logger.debug(f"Applied local config overlay {local_path}")

    # Environment overrides (prefix QUANTSCOPE__SECTION__KEY)
    # Example: QUANTSCOPE__HOST__HARDWARE_RATE=44100
    for k, v in os_environ_items():
        if not k.startswith(ENV_PREFIX):
            continue
        parts = k[len(ENV_PREFIX) :].split("__")
        if len(parts) != 2:
            continue
        section, key = (p.lower() for p in parts)
        if section not in _SECTIONS:
            continue
        raw.setdefault(section, {})
        if isinstance(raw[section], dict):
            raw[section][key] = coerce_env_value(v)

    return AppConfig(
        server=ServerConfig(**_section(raw, "server")),
        host=HostConfig(**_section(raw, "host")),
        pipeline=PipelineConfig(**_section(raw, "pipeline")),
        logging=LoggingConfig(**_section(raw, "logging")),
    )


def coerce_env_value(val: str) -> Any:
    # bool/int/float coercion; anything else stays a string
    lower = val.lower()
    if lower in {"true", "false"}:
        return lower == "true"
    if lower in {"none", "null"}:
        return None
    try:
        return int(val)
    except ValueError:
        pass
    try:
        return float(val)
    except ValueError:
        return val


def os_environ_items() -> list[tuple[str, str]]:
    # Wrapped for testability
    return [(k, v) for k, v in os.environ.items()]


def save_config(config: AppConfig, path_str: str) -> None:
    """Save the AppConfig back to YAML, keeping unknown top-level keys."""
    path = Path(path_str)

    existing_data: dict[str, Any] = _read_yaml(path) if path.exists() else {}
    if path.exists():
        backup_path = path.with_suffix(path.suffix + ".bak")
        try:
            shutil.copy2(path, backup_path)
        except OSError as exc:
            logger.warning(f"Failed to write config backup to {backup_path}: {exc}")

    for name in _SECTIONS:
        existing_data[name] = asdict(getattr(config, name))

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        yaml.dump(existing_data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
