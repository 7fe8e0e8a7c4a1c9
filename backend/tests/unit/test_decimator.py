"""Unit tests for the phase-accumulator decimator."""

import pytest

from quantscope.dsp.decimator import Decimator, DecimatorState


def _ready_ticks(dec: Decimator, n: int) -> list[int]:
    return [i for i in range(n) if dec.tick() is DecimatorState.SAMPLE_READY]


class TestDecimator:
    def test_integer_ratio_emits_every_fourth_tick(self):
        dec = Decimator(48_000, 12_000)
        assert dec.downsample_ratio == 4.0
        ready = []
        for i in range(40):
            state = dec.tick()
            assert 0.0 <= dec.phase_accumulator < dec.downsample_ratio
            if state is DecimatorState.SAMPLE_READY:
                ready.append(i)
        assert ready == [3, 7, 11, 15, 19, 23, 27, 31, 35, 39]

    def test_fractional_ratio_averages_out(self):
        dec = Decimator(48_000, 44_100 / 4)
        n = 48_000
        ready = _ready_ticks(dec, n)
        assert len(ready) == pytest.approx(n / dec.downsample_ratio, abs=1)
        gaps = {b - a for a, b in zip(ready, ready[1:])}
        assert gaps <= {4, 5}

    def test_spec_scenario_ratio(self):
        dec = Decimator(48_000, 8_000)
        assert dec.downsample_ratio == 6.0
        assert len(_ready_ticks(dec, 4096)) == 4096 // 6

    def test_frac_pos_in_unit_interval(self):
        dec = Decimator(48_000, 7_000)
        for _ in range(1000):
            dec.tick()
            assert 0.0 <= dec.frac_pos < 1.0

    def test_bypass_when_target_at_or_above_hardware(self):
        for target in (48_000, 96_000):
            dec = Decimator(48_000, target)
            assert dec.bypass
            assert all(dec.tick() is DecimatorState.SAMPLE_READY for _ in range(10))
            assert dec.frac_pos == 0.0
            assert dec.phase_accumulator == 0.0

    def test_reset_restarts_phase(self):
        dec = Decimator(48_000, 12_000)
        first = _ready_ticks(dec, 10)
        dec.reset()
        assert dec.phase_accumulator == 0.0
        assert _ready_ticks(dec, 10) == first

    @pytest.mark.parametrize("hw, target", [(0, 8000), (48_000, 0), (48_000, -1.0)])
    def test_non_positive_rates_rejected(self, hw, target):
        with pytest.raises(ValueError):
            Decimator(hw, target)
