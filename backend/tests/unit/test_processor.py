"""Unit tests for the block processor."""

import time

import numpy as np
import pytest

from quantscope.dsp.filters import clear_coefficient_cache
from quantscope.dsp.processor import BlockProcessor, ProcessorConfig
from quantscope.dsp.quantizer import quantize_block


def _sine(freq: float, fs: float, n: int, start: int = 0, amplitude: float = 1.0) -> np.ndarray:
    return amplitude * np.sin(2 * np.pi * freq * (start + np.arange(n)) / fs)


@pytest.fixture
def processor() -> BlockProcessor:
    return BlockProcessor(ProcessorConfig(hardware_rate=48_000, target_rate=8_000, bit_depth=8))


class TestDecimatingPath:
    def test_reference_scenario(self, processor):
        """8 kHz / 8-bit / 440 Hz sine on a 48 kHz clock with 4096-sample blocks."""
        assert processor.levels == 256
        assert processor.decimator.downsample_ratio == 6.0
        assert not processor.bypass
        assert processor.strategy.name == "linear"

        n = 4096
        rms_in, rms_out = [], []
        for b in range(6):
            x = _sine(440.0, 48_000, n, start=b * n)
            y = processor.process(x)
            assert y.shape == (n,)
            assert np.all(np.isfinite(y))
            if b >= 1:
                rms_in.append(np.sqrt(np.mean(x**2)))
                rms_out.append(np.sqrt(np.mean(y**2)))
        ratio = np.mean(rms_out) / np.mean(rms_in)
        assert ratio == pytest.approx(1.0, abs=0.05)

    def test_captures_follow_ratio_and_lie_on_grid(self, processor):
        processor.process(_sine(440.0, 48_000, 4096))
        captured = processor.captured_values()
        assert captured.size == 4096 // 6
        np.testing.assert_array_equal(quantize_block(captured, 256), captured)
        idx = processor.captured_indices()
        assert idx.min() >= 0 and idx.max() <= 255

    def test_block_boundaries_do_not_matter(self):
        cfg = ProcessorConfig(hardware_rate=48_000, target_rate=7_350, bit_depth=6, block_size=4096)
        x = _sine(1234.0, 48_000, 4096, amplitude=0.8)
        whole = BlockProcessor(cfg).process(x)
        split = BlockProcessor(cfg)
        parts = np.concatenate([split.process(x[:1000]), split.process(x[1000:1001]), split.process(x[1001:])])
        np.testing.assert_allclose(parts, whole, atol=1e-12)

    def test_one_bit_captures_are_signs(self):
        proc = BlockProcessor(ProcessorConfig(hardware_rate=48_000, target_rate=8_000, bit_depth=1))
        proc.process(_sine(440.0, 48_000, 4096))
        assert set(np.unique(proc.captured_values())) <= {-1.0, 1.0}

    @pytest.mark.parametrize("mode", ["hold", "linear", "sinc", "polyphase"])
    @pytest.mark.parametrize("pre, post", [("butterworth4", "biquad"), ("kaiser", "kaiser"), ("none", "none")])
    def test_every_combination_runs(self, mode, pre, post):
        cfg = ProcessorConfig(
            hardware_rate=48_000,
            target_rate=11_025,
            bit_depth=4,
            reconstruction=mode,
            pre_filter=pre,
            post_filter=post,
            block_size=1024,
        )
        proc = BlockProcessor(cfg)
        for b in range(3):
            y = proc.process(_sine(500.0, 48_000, 1024, start=b * 1024, amplitude=0.9))
            assert y.shape == (1024,)
            assert np.all(np.isfinite(y))
        assert proc.blocks_processed == 3

    def test_hold_without_filters_is_a_staircase(self):
        cfg = ProcessorConfig(
            hardware_rate=48_000,
            target_rate=12_000,
            bit_depth=3,
            reconstruction="hold",
            pre_filter="none",
            post_filter="none",
        )
        y = BlockProcessor(cfg).process(_sine(300.0, 48_000, 64))
        # Every output is a held capture: constant across each run of 4 ticks
        np.testing.assert_array_equal(y[3::4][:-1], y[6::4])
        np.testing.assert_array_equal(quantize_block(y[3:], 8), y[3:])


class TestDeadline:
    @pytest.mark.parametrize("mode", ["hold", "linear", "sinc", "polyphase"])
    def test_block_finishes_within_block_period(self, mode):
        cfg = ProcessorConfig(48_000, 8_000, 8, reconstruction=mode, block_size=4096)
        proc = BlockProcessor(cfg)
        period_s = cfg.block_size / cfg.hardware_rate
        elapsed = []
        for b in range(3):
            x = _sine(440.0, 48_000, 4096, start=b * 4096)
            t0 = time.perf_counter()
            proc.process(x)
            elapsed.append(time.perf_counter() - t0)
        assert min(elapsed) < period_s


class TestBypassPath:
    def test_quantize_only_when_target_exceeds_hardware(self):
        proc = BlockProcessor(ProcessorConfig(hardware_rate=48_000, target_rate=96_000, bit_depth=8))
        assert proc.bypass
        assert proc.pre_filter is None and proc.post_filter is None
        x = _sine(440.0, 48_000, 4096)
        y = proc.process(x)
        assert y.shape == x.shape
        np.testing.assert_array_equal(y, quantize_block(x, 256))
        assert proc.captured_values().size == 4096

    def test_one_bit_bypass(self):
        proc = BlockProcessor(ProcessorConfig(hardware_rate=48_000, target_rate=48_000, bit_depth=1))
        y = proc.process(np.array([-0.5, -0.0001, 0.0, 0.7]))
        np.testing.assert_array_equal(y, [-1.0, -1.0, 1.0, 1.0])

    def test_32_bit_bypass_is_nearly_transparent(self):
        proc = BlockProcessor(ProcessorConfig(hardware_rate=48_000, target_rate=88_200, bit_depth=32))
        x = _sine(440.0, 48_000, 512)
        np.testing.assert_allclose(proc.process(x), x, atol=1e-9)


class TestContract:
    def test_process_into_fills_output(self, processor):
        out = np.full(256, np.nan)
        processor.process_into(_sine(440.0, 48_000, 256), out)
        assert np.all(np.isfinite(out))

    def test_non_finite_input_is_sanitized(self, processor):
        x = _sine(440.0, 48_000, 512)
        x[10] = np.nan
        x[20] = np.inf
        y = processor.process(x)
        assert np.all(np.isfinite(y))
        assert processor.nonfinite_blocks == 1

    def test_oversized_or_mismatched_block_rejected(self):
        proc = BlockProcessor(ProcessorConfig(48_000, 8_000, 8, block_size=128))
        with pytest.raises(ValueError):
            proc.process(np.zeros(129))
        with pytest.raises(ValueError):
            proc.process_into(np.zeros(64), np.zeros(32))

    def test_empty_block(self, processor):
        assert processor.process(np.zeros(0)).size == 0

    def test_dispose_is_final(self, processor):
        processor.dispose()
        processor.dispose()
        assert processor.disposed
        assert processor.pre_filter is None
        with pytest.raises(RuntimeError):
            processor.process(np.zeros(16))

    def test_reset_matches_fresh_processor(self):
        cfg = ProcessorConfig(48_000, 6_000, 5, reconstruction="sinc", block_size=2048)
        x = _sine(700.0, 48_000, 2048)
        proc = BlockProcessor(cfg)
        first = proc.process(x)
        proc.process(x)
        proc.reset()
        np.testing.assert_allclose(proc.process(x), first, atol=1e-12)


class TestConfig:
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"hardware_rate": 0},
            {"target_rate": 0.0},
            {"bit_depth": 0},
            {"bit_depth": 33},
            {"reconstruction": "cubic"},
            {"pre_filter": "elliptic"},
            {"post_cutoff_ratio": 1.0},
            {"pre_cutoff_ratio": 0.0},
            {"block_size": 0},
        ],
    )
    def test_invalid_config_rejected(self, kwargs):
        base = {"hardware_rate": 48_000, "target_rate": 8_000.0, "bit_depth": 8}
        base.update(kwargs)
        with pytest.raises(ValueError):
            ProcessorConfig(**base)

    def test_coefficient_tables_are_deterministic(self):
        cfg = ProcessorConfig(48_000, 8_000, 8, reconstruction="polyphase", pre_filter="kaiser")
        first = BlockProcessor(cfg).coefficient_tables()
        assert set(first) == {"pre_b", "pre_a", "post_b", "post_a", "polyphase"}
        clear_coefficient_cache()
        second = BlockProcessor(cfg).coefficient_tables()
        for key in first:
            np.testing.assert_array_equal(first[key], second[key])
