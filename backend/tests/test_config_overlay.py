"""Tests for config loading, local overlays and environment overrides."""
from __future__ import annotations

import tempfile
from pathlib import Path

import pytest
import yaml

from quantscope import config as config_module
from quantscope.config import (
    AppConfig,
    coerce_env_value,
    load_config,
    local_overlay_path,
    save_config,
)


def test_load_config_overlays_local_file() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        base_path = Path(tmpdir) / "quantscope.yaml"
        local_path = Path(tmpdir) / "quantscope.local.yaml"

        base_config = {
            "host": {"hardware_rate": 44_100, "block_size": 1024},
            "pipeline": {"sample_rate": 4000, "reconstruction": "hold"},
        }
        local_config = {
            "host": {"block_size": 512},
            "pipeline": {"post_filter": "kaiser"},
        }

        base_path.write_text(yaml.safe_dump(base_config), encoding="utf-8")
        local_path.write_text(yaml.safe_dump(local_config), encoding="utf-8")

        config = load_config(str(base_path))

        assert config.host.hardware_rate == 44_100
        assert config.host.block_size == 512
        assert config.pipeline.sample_rate == 4000
        assert config.pipeline.reconstruction == "hold"
        assert config.pipeline.post_filter == "kaiser"
        assert config.pipeline.pre_filter == "butterworth4"


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    config = load_config(str(tmp_path / "absent.yaml"))
    assert config == AppConfig()


def test_shipped_config_loads(config_dir: Path) -> None:
    config = load_config(str(config_dir / "quantscope.yaml"))
    assert config.host.hardware_rate == 48_000
    assert config.pipeline.default_settings().bit_depth == 8


def test_local_overlay_path() -> None:
    assert local_overlay_path(Path("/etc/qs/quantscope.yaml")) == Path("/etc/qs/quantscope.local.yaml")


def test_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "quantscope.yaml"
    path.write_text(yaml.safe_dump({"server": {"port": 9000}}), encoding="utf-8")
    monkeypatch.setattr(
        config_module,
        "os_environ_items",
        lambda: [
            ("QUANTSCOPE__SERVER__PORT", "9100"),
            ("QUANTSCOPE__PIPELINE__BIT_DEPTH", "4"),
            ("QUANTSCOPE__LOGGING__FILE", "none"),
            ("QUANTSCOPE__UNKNOWN__KEY", "1"),
            ("QUANTSCOPE__TOO__MANY__PARTS", "1"),
            ("OTHER__SERVER__PORT", "1"),
        ],
    )

    config = load_config(str(path))

    assert config.server.port == 9100
    assert config.pipeline.bit_depth == 4
    assert config.logging.file is None


def test_non_mapping_root_rejected(tmp_path: Path) -> None:
    path = tmp_path / "quantscope.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))


def test_non_mapping_section_rejected(tmp_path: Path) -> None:
    path = tmp_path / "quantscope.yaml"
    path.write_text(yaml.safe_dump({"host": 48000}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_config(str(path))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("true", True),
        ("False", False),
        ("null", None),
        ("42", 42),
        ("0.75", 0.75),
        ("kaiser", "kaiser"),
    ],
)
def test_coerce_env_value(raw: str, expected: object) -> None:
    assert coerce_env_value(raw) == expected


def test_save_config_writes_backup_and_keeps_unknown_keys(tmp_path: Path) -> None:
    path = tmp_path / "quantscope.yaml"
    path.write_text(yaml.safe_dump({"notes": "keep me", "server": {"port": 1}}), encoding="utf-8")

    cfg = AppConfig()
    cfg.pipeline.bit_depth = 3
    save_config(cfg, str(path))

    backup = tmp_path / "quantscope.yaml.bak"
    assert backup.exists()
    assert yaml.safe_load(backup.read_text(encoding="utf-8"))["server"]["port"] == 1

    saved = yaml.safe_load(path.read_text(encoding="utf-8"))
    assert saved["notes"] == "keep me"
    assert saved["server"]["port"] == 8095
    assert load_config(str(path)).pipeline.bit_depth == 3
