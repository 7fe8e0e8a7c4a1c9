from __future__ import annotations

import dataclasses
import logging
from typing import Any

import numpy as np
from fastapi import APIRouter, Depends, HTTPException, Request

from .config import save_config
from .dsp.quantizer import quantize_block
from .models import (
    AudioSettingsModel,
    BinaryRequest,
    BinaryResponse,
    BinarySampleModel,
    InfoResponse,
    QuantizationInfoModel,
    RateInfoModel,
    RenderRequest,
    RenderResponse,
    SamplesRequest,
    SamplesResponse,
    SavedDefaultsModel,
    SessionModel,
    SourceRequest,
    SpectrumPeakModel,
)
from .readouts import (
    alias_frequency,
    binary_stream,
    format_data_rate,
    format_sample_rate,
    sample_points,
    spectrum,
)
from .session import reconfigure
from .settings import QuantizationInfo, RateInfo
from .state import AppState

logger = logging.getLogger(__name__)

router = APIRouter()


def get_state(request: Request) -> AppState:
    state: AppState | None = getattr(request.app.state, "app_state", None)
    if state is None:
        raise RuntimeError("AppState not initialized")
    return state


@router.get("/health")
def health_check(state: AppState = Depends(get_state)) -> dict[str, Any]:
    return {
        "status": "ok",
        "hardwareRate": state.host.hardware_rate,
        "blockSize": state.host.block_size,
        "playing": state.controller.playing,
    }


@router.post("/info", response_model=InfoResponse)
def get_info(req: AudioSettingsModel, state: AppState = Depends(get_state)) -> InfoResponse:
    settings = req.to_settings()
    info = QuantizationInfo.from_settings(settings)
    effective = state.host.clamp_rate(settings.sample_rate)
    rate = RateInfo(settings.sample_rate, effective, state.host.hardware_rate)
    return InfoResponse(
        settings=req,
        quantization=QuantizationInfoModel.from_info(
            info, format_sample_rate(settings.sample_rate), format_data_rate(info)
        ),
        rate=RateInfoModel.from_info(rate),
        aliasFrequency=alias_frequency(settings.frequency, settings.sample_rate),
    )


@router.post("/readouts/samples", response_model=SamplesResponse)
def get_sample_points(req: SamplesRequest, state: AppState = Depends(get_state)) -> SamplesResponse:
    pts = sample_points(req.settings.to_settings(), req.timeOffset, state.controller.file_source)
    return SamplesResponse(
        displayDuration=pts.plan.duration_s,
        totalSamples=pts.plan.total_samples,
        samplesInView=pts.plan.samples_in_view,
        stride=pts.plan.stride,
        t=pts.t.tolist(),
        analog=pts.analog.tolist(),
        quantized=pts.quantized.tolist(),
        levels=pts.indices.tolist(),
    )


@router.post("/readouts/binary", response_model=BinaryResponse)
def get_binary_stream(req: BinaryRequest, state: AppState = Depends(get_state)) -> BinaryResponse:
    settings = req.settings.to_settings()
    samples = binary_stream(settings, req.startIndex, req.count, state.controller.file_source)
    return BinaryResponse(
        bitDepth=settings.bit_depth,
        samples=[
            BinarySampleModel(sampleIndex=s.sample_index, t=s.t, level=s.level, value=s.value, bits=s.bits)
            for s in samples
        ],
    )


@router.post("/render", response_model=RenderResponse)
def render(req: RenderRequest, state: AppState = Depends(get_state)) -> RenderResponse:
    """Run a throwaway session for a few blocks and summarize its output.

    Runs on a fresh session, so it never disturbs the controller's stream.
    """
    settings = req.settings.to_settings()
    overrides: dict[str, Any] = {}
    if req.reconstruction is not None:
        overrides["reconstruction"] = req.reconstruction
    if req.preFilter is not None:
        overrides["pre_filter"] = req.preFilter
    if req.postFilter is not None:
        overrides["post_filter"] = req.postFilter
    pipeline = dataclasses.replace(state.config.pipeline, **overrides)

    try:
        session = reconfigure(settings, state.host, pipeline, state.controller.file_source)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    n = session.block_size
    total = req.blocks * n
    inputs = np.empty(total, dtype=np.float64)
    outputs = np.empty(total, dtype=np.float64)
    captured = 0
    try:
        for b in range(req.blocks):
            outputs[b * n : (b + 1) * n] = session.render_block()
            inputs[b * n : (b + 1) * n] = session.last_input
            captured += session.processor.captured_values().size
        strategy = session.processor.strategy.name
        nonfinite = session.processor.nonfinite_blocks
    finally:
        session.dispose()

    rate = session.rate
    logger.debug(f"Rendered {total} samples with {strategy} at {rate.effective_rate:.1f} Hz")
    spec = spectrum(outputs, rate.hardware_rate, rate.effective_rate, req.fftSize)
    peak_hz, peak_db = spec.peak()
    err = np.abs(quantize_block(inputs, settings.levels) - inputs)
    return RenderResponse(
        samples=total,
        strategy=strategy,
        rate=RateInfoModel.from_info(rate),
        rms=float(np.sqrt(np.mean(outputs**2))),
        peak=float(np.max(np.abs(outputs))),
        maxQuantizationError=float(err.max()),
        quantizationStep=2.0 / (settings.levels - 1),
        capturedSamples=captured,
        nonfiniteBlocks=nonfinite,
        nyquistFrequency=spec.nyquist_frequency,
        spectrumPeak=SpectrumPeakModel(
            frequency=peak_hz,
            magnitudeDb=peak_db,
            aliased=peak_hz > spec.nyquist_frequency,
        ),
    )


def _session_model(state: AppState) -> SessionModel:
    controller = state.controller
    session = controller.session
    source = controller.file_source
    return SessionModel(
        settings=AudioSettingsModel.from_settings(controller.settings),
        playing=controller.playing,
        source=(source.label or "file") if source is not None else "oscillator",
        rate=RateInfoModel.from_info(session.rate) if session is not None else None,
        blocksProcessed=session.processor.blocks_processed if session is not None else 0,
    )


@router.get("/session", response_model=SessionModel)
def get_session(state: AppState = Depends(get_state)) -> SessionModel:
    return _session_model(state)


@router.put("/session", response_model=SessionModel)
def update_session(req: AudioSettingsModel, state: AppState = Depends(get_state)) -> SessionModel:
    """Apply new settings; playing settings rebuild the live session."""
    state.controller.apply(req.to_settings())
    return _session_model(state)


@router.put("/session/source", response_model=SessionModel)
def update_source(req: SourceRequest, state: AppState = Depends(get_state)) -> SessionModel:
    """Load a WAV file as the input source, or return to the oscillator."""
    if req.path is None:
        state.controller.set_source(None)
    else:
        state.controller.load_file(req.path)
    return _session_model(state)


@router.post("/config/defaults", response_model=SavedDefaultsModel)
def save_defaults(state: AppState = Depends(get_state)) -> SavedDefaultsModel:
    """Store the current session settings as the pipeline defaults in the config file."""
    if not state.config_path:
        raise HTTPException(status_code=400, detail="No config path configured")

    settings = state.controller.settings
    state.config.pipeline = dataclasses.replace(
        state.config.pipeline,
        sample_rate=settings.sample_rate,
        bit_depth=settings.bit_depth,
        frequency=settings.frequency,
        waveform_type=settings.waveform_type,
    )
    try:
        save_config(state.config, state.config_path)
    except OSError as e:
        logger.error(f"Failed to save config to {state.config_path}: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to save config: {e}") from e
    logger.info(f"Saved pipeline defaults to {state.config_path}")
    return SavedDefaultsModel(path=state.config_path, settings=AudioSettingsModel.from_settings(settings))
