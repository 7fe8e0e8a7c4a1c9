"""Tests for the command line interface."""
from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from quantscope.cli import build_parser, main
from quantscope.sources import load_wav


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "quantscope.yaml"
    path.write_text(
        yaml.safe_dump({"host": {"hardware_rate": 48_000, "block_size": 1024}, "logging": {"file": None}}),
        encoding="utf-8",
    )
    return path


def test_no_command_prints_help(capsys):
    assert main([]) == 1
    assert "usage" in capsys.readouterr().out


def test_info_json(config_file: Path, capsys):
    rc = main(["-c", str(config_file), "info", "-s", "8000", "-b", "4", "-f", "7000", "--json"])
    assert rc == 0
    data = json.loads(capsys.readouterr().out)
    assert data["levels"] == 16
    assert data["nyquistFrequency"] == 4000.0
    assert data["downsampleRatio"] == pytest.approx(6.0)
    assert data["aliasFrequency"] == pytest.approx(1000.0)


def test_info_text_notes_hardware_limit(config_file: Path, capsys):
    assert main(["-c", str(config_file), "info", "-s", "88200"]) == 0
    out = capsys.readouterr().out
    assert "Sample rate:     88.2 kHz" in out
    assert "hardware limit" in out


def test_info_rejects_bad_settings(config_file: Path, capsys):
    assert main(["-c", str(config_file), "info", "-b", "40"]) == 2
    assert "bit_depth" in capsys.readouterr().err


def test_render_tone(config_file: Path, tmp_path: Path, capsys):
    out_path = tmp_path / "out.wav"
    rc = main(["-c", str(config_file), "render", "-o", str(out_path), "-t", "0.1", "-s", "4000", "-b", "3"])
    assert rc == 0
    buf = load_wav(out_path)
    assert buf.native_sample_rate == 48_000.0
    assert buf.channel_samples.size == 4800
    assert "strategy=linear" in capsys.readouterr().out


def test_render_file_input(config_file: Path, tmp_path: Path, wav_file: Path):
    out_path = tmp_path / "crushed.wav"
    rc = main(
        [
            "-c", str(config_file),
            "render", "-i", str(wav_file), "-o", str(out_path),
            "-t", "0.05", "-b", "2", "--reconstruction", "hold", "--post-filter", "none",
        ]
    )
    assert rc == 0
    assert load_wav(out_path).channel_samples.size == 2400


def test_render_missing_input(config_file: Path, tmp_path: Path, capsys):
    rc = main(["-c", str(config_file), "render", "-i", str(tmp_path / "absent.wav"), "-o", str(tmp_path / "x.wav")])
    assert rc == 1
    assert "Error" in capsys.readouterr().err
    assert not (tmp_path / "x.wav").exists()


def test_binary(config_file: Path, capsys):
    assert main(["-c", str(config_file), "binary", "-b", "4", "-n", "3"]) == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 3
    assert lines[0].split()[-1] == "1000"


def test_parser_rejects_unknown_filter():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["render", "-o", "x.wav", "--pre-filter", "elliptic"])
