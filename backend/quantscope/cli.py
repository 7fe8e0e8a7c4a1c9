#!/usr/bin/env python3
"""QuantScope Command Line Interface.

Runs the sampling and quantization chain without the server.

Usage:
    python -m quantscope.cli info --sample-rate 8000 --bit-depth 4
    python -m quantscope.cli render -o out.wav --sample-rate 3000 --duration 2
    python -m quantscope.cli render -i speech.wav -o crushed.wav --bit-depth 3
    python -m quantscope.cli binary --bit-depth 4 --count 16
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import math
import sys
from pathlib import Path
from typing import Any

from quantscope.config import AppConfig, default_config_path, load_config
from quantscope.dsp.filters import FILTER_KINDS
from quantscope.dsp.reconstruction import RECONSTRUCTION_MODES
from quantscope.host import OfflineHost
from quantscope.readouts import (
    alias_frequency,
    binary_stream,
    format_data_rate,
    format_sample_rate,
)
from quantscope.session import PipelineController
from quantscope.settings import WAVEFORM_TYPES, AudioSettings, QuantizationInfo, SettingsError
from quantscope.sources import SourceDecodeError, load_wav, write_wav

logger = logging.getLogger(__name__)


def _load_app_config(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    if getattr(args, "hardware_rate", None) is not None:
        cfg.host.hardware_rate = args.hardware_rate
    if getattr(args, "block_size", None) is not None:
        cfg.host.block_size = args.block_size
    return cfg


def _settings_from_args(args: argparse.Namespace, cfg: AppConfig) -> AudioSettings:
    defaults = cfg.pipeline.default_settings()
    changes: dict[str, Any] = {}
    if args.sample_rate is not None:
        changes["sample_rate"] = args.sample_rate
    if args.bit_depth is not None:
        changes["bit_depth"] = args.bit_depth
    if args.frequency is not None:
        changes["frequency"] = args.frequency
    if args.waveform is not None:
        changes["waveform_type"] = args.waveform
    return defaults.replace(**changes)


def cmd_info(args: argparse.Namespace) -> int:
    """Print derived quantization and rate information."""
    cfg = _load_app_config(args)
    settings = _settings_from_args(args, cfg)
    host = OfflineHost.from_config(cfg.host)
    info = QuantizationInfo.from_settings(settings)
    effective = host.clamp_rate(settings.sample_rate)

    result = {
        "sampleRate": settings.sample_rate,
        "effectiveRate": effective,
        "hardwareRate": host.hardware_rate,
        "bitDepth": settings.bit_depth,
        "levels": info.levels,
        "nyquistFrequency": info.nyquist_frequency,
        "bytesPerSecond": info.estimated_size,
        "downsampleRatio": host.hardware_rate / effective,
        "aliasFrequency": alias_frequency(settings.frequency, settings.sample_rate),
    }
    if args.json:
        print(json.dumps(result))
        return 0

    print(f"Sample rate:     {format_sample_rate(settings.sample_rate)}")
    if effective < settings.sample_rate:
        print(f"  (running at {format_sample_rate(effective)}, hardware limit)")
    print(f"Bit depth:       {settings.bit_depth} ({info.levels} levels)")
    print(f"Nyquist:         {format_sample_rate(info.nyquist_frequency)}")
    print(f"Data rate:       {format_data_rate(info)}")
    print(f"Downsample:      {result['downsampleRatio']:.3f}x from {host.hardware_rate} Hz")
    print(
        f"Tone:            {settings.waveform_type} {settings.frequency:.1f} Hz "
        f"-> heard at {result['aliasFrequency']:.1f} Hz"
    )
    return 0


def cmd_render(args: argparse.Namespace) -> int:
    """Render the processed signal to a WAV file."""
    cfg = _load_app_config(args)
    overrides: dict[str, Any] = {}
    if args.reconstruction is not None:
        overrides["reconstruction"] = args.reconstruction
    if args.pre_filter is not None:
        overrides["pre_filter"] = args.pre_filter
    if args.post_filter is not None:
        overrides["post_filter"] = args.post_filter
    cfg.pipeline = dataclasses.replace(cfg.pipeline, **overrides)

    settings = _settings_from_args(args, cfg)
    host = OfflineHost.from_config(cfg.host)
    controller = PipelineController(host, cfg.pipeline, settings)

    if args.input:
        source = load_wav(args.input)
        controller.set_source(source)
        print(f"Input: {args.input} ({source.native_sample_rate:.0f} Hz, {source.duration_s:.2f} s)")
    else:
        print(f"Input: {settings.waveform_type} {settings.frequency:.1f} Hz")

    num_samples = max(1, int(round(args.duration * host.hardware_rate)))
    num_blocks = math.ceil(num_samples / host.block_size)
    controller.start()
    try:
        session = controller.session
        if session is not None:
            print(
                f"Rate: {format_sample_rate(session.rate.effective_rate)}, "
                f"{settings.bit_depth}-bit, strategy={session.processor.strategy.name}"
            )
        audio = host.run(controller, num_blocks)[:num_samples]
    finally:
        controller.stop()

    out_path = Path(args.output)
    write_wav(out_path, audio, host.hardware_rate)
    print(f"Wrote {num_samples} samples ({num_samples / host.hardware_rate:.2f} s) to {out_path}")
    return 0


def cmd_binary(args: argparse.Namespace) -> int:
    """Print the binary code of consecutive samples."""
    cfg = _load_app_config(args)
    settings = _settings_from_args(args, cfg)
    source = load_wav(args.input) if args.input else None
    samples = binary_stream(settings, args.start, args.count, source)
    for s in samples:
        print(f"{s.sample_index:>8}  {s.t:10.6f}s  {s.value:+.6f}  {s.bits}")
    return 0


def _add_settings_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("-s", "--sample-rate", type=float, help="Capture rate in Hz (0.1-88200)")
    p.add_argument("-b", "--bit-depth", type=int, help="Bits per sample (1-32)")
    p.add_argument("-f", "--frequency", type=float, help="Tone frequency in Hz (20-20000)")
    p.add_argument("-w", "--waveform", choices=WAVEFORM_TYPES, help="Tone waveform")


def _add_host_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--hardware-rate", type=int, help="Audio clock rate in Hz")
    p.add_argument("--block-size", type=int, help="Samples per callback block")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quantscope",
        description="QuantScope Command Line Interface",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument(
        "-c",
        "--config",
        default=default_config_path(),
        help="Path to YAML config file",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p_info = subparsers.add_parser("info", help="Show levels, Nyquist and data rate for settings")
    _add_settings_args(p_info)
    _add_host_args(p_info)
    p_info.add_argument("--json", action="store_true", help="Print JSON instead of text")
    p_info.set_defaults(func=cmd_info)

    p_render = subparsers.add_parser("render", help="Render processed audio to a WAV file")
    _add_settings_args(p_render)
    _add_host_args(p_render)
    p_render.add_argument("-i", "--input", help="Input WAV file (default: tone)")
    p_render.add_argument("-o", "--output", required=True, help="Output WAV file")
    p_render.add_argument("-t", "--duration", type=float, default=2.0, help="Seconds to render (default: 2)")
    p_render.add_argument("--reconstruction", choices=RECONSTRUCTION_MODES, help="Reconstruction strategy")
    p_render.add_argument("--pre-filter", choices=FILTER_KINDS, help="Anti-alias filter")
    p_render.add_argument("--post-filter", choices=FILTER_KINDS, help="Reconstruction filter")
    p_render.set_defaults(func=cmd_render)

    p_binary = subparsers.add_parser("binary", help="Print the binary stream of quantized samples")
    _add_settings_args(p_binary)
    p_binary.add_argument("-i", "--input", help="Input WAV file (default: tone)")
    p_binary.add_argument("--start", type=int, default=0, help="First sample index")
    p_binary.add_argument("-n", "--count", type=int, default=16, help="Number of samples")
    p_binary.set_defaults(func=cmd_binary)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        result = args.func(args)
    except SettingsError as e:
        for problem in e.problems:
            print(f"Error: {problem}", file=sys.stderr)
        return 2
    except SourceDecodeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    return 0 if result is None else int(result)


if __name__ == "__main__":
    sys.exit(main())
