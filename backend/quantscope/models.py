from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from .dsp.filters import FilterKind
from .dsp.reconstruction import ReconstructionMode
from .settings import AudioSettings, QuantizationInfo, RateInfo, WaveformType
from .validation import (
    BIT_DEPTH_MAX,
    BIT_DEPTH_MIN,
    SAMPLE_RATE_MAX_HZ,
    SAMPLE_RATE_MIN_HZ,
    TONE_FREQ_MAX_HZ,
    TONE_FREQ_MIN_HZ,
)


class AudioSettingsModel(BaseModel):
    sampleRate: float = Field(8000.0, ge=SAMPLE_RATE_MIN_HZ, le=SAMPLE_RATE_MAX_HZ)
    bitDepth: int = Field(8, ge=BIT_DEPTH_MIN, le=BIT_DEPTH_MAX)
    frequency: float = Field(440.0, ge=TONE_FREQ_MIN_HZ, le=TONE_FREQ_MAX_HZ)
    waveformType: WaveformType = "sine"
    isPlaying: bool = False

    def to_settings(self) -> AudioSettings:
        return AudioSettings(
            sample_rate=self.sampleRate,
            bit_depth=self.bitDepth,
            frequency=self.frequency,
            waveform_type=self.waveformType,
            is_playing=self.isPlaying,
        )

    @classmethod
    def from_settings(cls, settings: AudioSettings) -> AudioSettingsModel:
        return cls(
            sampleRate=settings.sample_rate,
            bitDepth=settings.bit_depth,
            frequency=settings.frequency,
            waveformType=settings.waveform_type,
            isPlaying=settings.is_playing,
        )


class QuantizationInfoModel(BaseModel):
    levels: int
    nyquistFrequency: float
    estimatedSize: float  # bytes per second
    sampleRateLabel: str
    dataRateLabel: str

    @classmethod
    def from_info(cls, info: QuantizationInfo, sample_rate_label: str, data_rate_label: str) -> QuantizationInfoModel:
        return cls(
            levels=info.levels,
            nyquistFrequency=info.nyquist_frequency,
            estimatedSize=info.estimated_size,
            sampleRateLabel=sample_rate_label,
            dataRateLabel=data_rate_label,
        )


class RateInfoModel(BaseModel):
    requestedRate: float
    effectiveRate: float
    hardwareRate: int
    aboveHardwareLimit: bool
    downsampleRatio: float
    bypass: bool

    @classmethod
    def from_info(cls, rate: RateInfo) -> RateInfoModel:
        return cls(
            requestedRate=rate.requested_rate,
            effectiveRate=rate.effective_rate,
            hardwareRate=rate.hardware_rate,
            aboveHardwareLimit=rate.above_hardware_limit,
            downsampleRatio=rate.downsample_ratio,
            bypass=rate.bypass,
        )


class InfoResponse(BaseModel):
    settings: AudioSettingsModel
    quantization: QuantizationInfoModel
    rate: RateInfoModel
    aliasFrequency: float  # where the tone lands after sampling


class SamplesRequest(BaseModel):
    settings: AudioSettingsModel = Field(default_factory=AudioSettingsModel)
    timeOffset: float = Field(0.0, ge=0, le=86_400)


class SamplesResponse(BaseModel):
    displayDuration: float
    totalSamples: int
    samplesInView: int
    stride: int
    t: list[float]
    analog: list[float]
    quantized: list[float]
    levels: list[int]


class BinaryRequest(BaseModel):
    settings: AudioSettingsModel = Field(default_factory=AudioSettingsModel)
    startIndex: int = Field(0, ge=0)
    count: int = Field(32, ge=1, le=4096)


class BinarySampleModel(BaseModel):
    sampleIndex: int
    t: float
    level: int
    value: float
    bits: str


class BinaryResponse(BaseModel):
    bitDepth: int
    samples: list[BinarySampleModel]


class RenderRequest(BaseModel):
    settings: AudioSettingsModel = Field(default_factory=AudioSettingsModel)
    blocks: int = Field(4, ge=1, le=256)
    reconstruction: ReconstructionMode | None = None
    preFilter: FilterKind | None = None
    postFilter: FilterKind | None = None
    fftSize: int = Field(4096)

    @field_validator("fftSize")
    @classmethod
    def validate_fft_size(cls, v: int) -> int:
        if v < 256 or v > 65536 or v & (v - 1):
            raise ValueError("fftSize must be a power of two between 256 and 65536")
        return v


class SpectrumPeakModel(BaseModel):
    frequency: float
    magnitudeDb: float
    aliased: bool


class RenderResponse(BaseModel):
    samples: int
    strategy: str
    rate: RateInfoModel
    rms: float
    peak: float
    # Largest |quantize(x) - x| over the rendered input
    maxQuantizationError: float
    quantizationStep: float
    capturedSamples: int
    nonfiniteBlocks: int
    nyquistFrequency: float
    spectrumPeak: SpectrumPeakModel


class SessionModel(BaseModel):
    settings: AudioSettingsModel
    playing: bool
    source: str  # "oscillator" or the loaded file name
    rate: RateInfoModel | None = None
    blocksProcessed: int = 0


class SourceRequest(BaseModel):
    # WAV file on the server; None switches back to the oscillator
    path: str | None = Field(None, max_length=4096)


class SavedDefaultsModel(BaseModel):
    path: str
    settings: AudioSettingsModel
