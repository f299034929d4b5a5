from __future__ import annotations

"""
session.py

Capture-loop glue: one VoiceMapSession per audio stream.

Each call to process_frame() runs

    Hann window -> pitch -> noise gate -> formants -> EMA smoothing
    -> window analyzer -> resonance-axis stages -> zone + hysteresis

and returns a FrameResult for voiced frames (None for gated frames). Closed
500 ms windows are forwarded to an optional on_window callback.

A session is owned by a single loop and is not thread-safe. Stopping the
stream is simply no longer calling process_frame().
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import numpy as np

from voice_map_tools.edge.brightness_mapper import BrightnessResult
from voice_map_tools.edge.classifier import Category, HysteresisClassifier
from voice_map_tools.edge.dsp_utils import Ema, frame_rms, hann
from voice_map_tools.edge.formant_estimator import FormantEstimator, FormantEstimatorConfig
from voice_map_tools.edge.pitch_detector import PitchDetector
from voice_map_tools.edge.pitch_normalizer import PitchNormalizer
from voice_map_tools.edge.spectral_window_analyzer import SpectralWindowAnalyzer, WindowFeatures
from voice_map_tools.postprocess.resonance_axis import ResonanceAxisPipeline
from voice_map_tools.voice_defaults import VoiceMapConfig, build_voice_config

logger = logging.getLogger(__name__)

# capture-loop gating
MIN_CONFIDENCE = 0.45
NOISE_GATE_RATIO = 1.4
NOISE_BASELINE_FALLBACK = 0.4

# smoothing
F0_ALPHA = 0.15
RESONANCE_ALPHA = 0.15
NOISE_ALPHA = 0.05


@dataclass(frozen=True)
class FrameResult:
    f0_hz: float
    resonance01: float
    confidence: float
    pitch01: float
    x01: float
    brightness: Optional[BrightnessResult]
    raw_category: Category
    stable_category: Category


class VoiceMapSession:
    def __init__(
        self,
        sample_rate: int,
        cfg: Optional[VoiceMapConfig] = None,
        on_window: Optional[Callable[[WindowFeatures], None]] = None,
    ):
        self.sample_rate = int(sample_rate)
        self.cfg = cfg if cfg is not None else build_voice_config()
        self.on_window = on_window

        self.pitch = PitchDetector()
        self.formants = FormantEstimator(FormantEstimatorConfig(reference=self.cfg.reference_formants))
        self.windows = SpectralWindowAnalyzer(self.sample_rate, self.cfg.window, on_window=self._window_closed)
        self.normalizer = PitchNormalizer(self.cfg.pitch_range)
        self.axis = ResonanceAxisPipeline(
            self.cfg.resonance_axis,
            self.cfg.bias_dynamic,
            self.cfg.hard_floor,
        )
        self.hysteresis = HysteresisClassifier(self.cfg.zone_policy, self.cfg.hysteresis_windows)

        self._f0_ema = Ema(F0_ALPHA)
        self._res_ema = Ema(RESONANCE_ALPHA)
        self._noise_ema = Ema(NOISE_ALPHA)
        self._windows_cache: Dict[int, np.ndarray] = {}
        self.latest_window: Optional[WindowFeatures] = None

    def reset(self) -> None:
        self._f0_ema.reset()
        self._res_ema.reset()
        self._noise_ema.reset()
        self.formants.reset()
        self.windows.reset()
        self.axis.reset()
        self.hysteresis.reset()
        self.latest_window = None

    def _window_closed(self, wf: WindowFeatures) -> None:
        self.latest_window = wf
        if self.on_window is not None:
            self.on_window(wf)

    def _hann(self, n: int) -> np.ndarray:
        w = self._windows_cache.get(n)
        if w is None:
            w = hann(n)
            self._windows_cache[n] = w
        return w

    def noise_baseline(self, rms: float) -> float:
        v = self._noise_ema.value()
        return v if v > 0.0 else rms * NOISE_BASELINE_FALLBACK

    def process_frame(self, samples: np.ndarray) -> Optional[FrameResult]:
        x = np.asarray(samples, dtype=np.float64).reshape(-1)
        if x.size < 2:
            return None

        rms = frame_rms(x)
        xw = x * self._hann(x.size)
        pe = self.pitch.detect(xw, self.sample_rate)

        # adaptive noise gate + voiced check
        if pe.confidence < MIN_CONFIDENCE:
            self._noise_ema.update(rms)
            logger.debug("frame gated: confidence %.2f", pe.confidence)
            return None
        if rms < self.noise_baseline(rms) * NOISE_GATE_RATIO:
            logger.debug("frame gated: rms %.5f below noise gate", rms)
            return None

        fe = self.formants.estimate(xw, self.sample_rate, pe.f0_hz)
        if not pe.voiced:
            return None

        f0s = self._f0_ema.update(pe.f0_hz)
        res = self._res_ema.update(fe.resonance01)
        self.windows.add_frame(xw, f0s, pe.confidence, fe.f1_hz, fe.f2_hz, fe.f3_hz, res)

        pitch01 = self.normalizer.score(f0s)
        ax = self.axis(res, pitch01, f0s, self.latest_window)
        cls = self.hysteresis.classify(ax.x01, pitch01)

        return FrameResult(
            f0_hz=f0s,
            resonance01=res,
            confidence=pe.confidence,
            pitch01=pitch01,
            x01=ax.x01,
            brightness=ax.brightness,
            raw_category=cls.raw,
            stable_category=cls.stable,
        )


__all__ = [
    "FrameResult",
    "VoiceMapSession",
]
