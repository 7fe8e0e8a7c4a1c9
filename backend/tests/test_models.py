"""Tests for the HTTP request and response models."""

import pytest
from pydantic import ValidationError

from quantscope.models import AudioSettingsModel, BinaryRequest, RenderRequest
from quantscope.settings import AudioSettings


def test_settings_model_round_trip():
    settings = AudioSettings(sample_rate=3000.0, bit_depth=4, frequency=1000.0, waveform_type="square")
    model = AudioSettingsModel.from_settings(settings)
    assert model.sampleRate == 3000.0
    assert model.waveformType == "square"
    assert model.to_settings() == settings


def test_settings_model_bounds():
    with pytest.raises(ValidationError):
        AudioSettingsModel(bitDepth=0)
    with pytest.raises(ValidationError):
        AudioSettingsModel(sampleRate=100_000.0)
    with pytest.raises(ValidationError):
        AudioSettingsModel(waveformType="noise")


@pytest.mark.parametrize("fft_size", [256, 4096, 65536])
def test_render_request_accepts_power_of_two(fft_size):
    assert RenderRequest(fftSize=fft_size).fftSize == fft_size


@pytest.mark.parametrize("fft_size", [128, 1000, 131072])
def test_render_request_rejects_fft_size(fft_size):
    with pytest.raises(ValidationError):
        RenderRequest(fftSize=fft_size)


def test_render_request_rejects_unknown_filter():
    with pytest.raises(ValidationError):
        RenderRequest(preFilter="elliptic")


def test_binary_request_bounds():
    assert BinaryRequest().count == 32
    with pytest.raises(ValidationError):
        BinaryRequest(count=0)
    with pytest.raises(ValidationError):
        BinaryRequest(startIndex=-1)
