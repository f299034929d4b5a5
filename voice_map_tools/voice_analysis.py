from __future__ import annotations

"""
voice_analysis.py

Offline analysis of a whole recording.

analyze_signal() runs the same pitch / formant path as the capture loop over
consecutive 2048-sample Hann frames and returns one row per 500 ms window:

    time_s, F0, F1, F2, F3, VTL, deltaF, H1_H2, EHF_LF, SC, PR,
    S_female, S_male, G, norm_pitch_y, norm_score_x, axis_x01,
    zone, stable_zone

norm_score_x is the rule-count score G = S_female - S_male + bias mapped
through the gradient clip, and the zone is classified from it. axis_x01 is
the resonance-axis position the live map would plot for the same window.
"""

import logging
from typing import List, Optional

import numpy as np
import pandas as pd

from voice_map_tools.audio_io import iter_frames
from voice_map_tools.edge.classifier import HysteresisClassifier
from voice_map_tools.edge.dsp_utils import Ema, clamp01, hann
from voice_map_tools.edge.formant_estimator import FormantEstimator, FormantEstimatorConfig
from voice_map_tools.edge.pitch_detector import PitchDetector
from voice_map_tools.edge.pitch_normalizer import pitch_score
from voice_map_tools.edge.spectral_window_analyzer import SpectralWindowAnalyzer, WindowFeatures
from voice_map_tools.postprocess.resonance_axis import ResonanceAxisPipeline
from voice_map_tools.voice_defaults import VoiceMapConfig, build_voice_config

logger = logging.getLogger(__name__)

FRAME_SIZE = 2048
MIN_CONFIDENCE = 0.45
SMOOTHING_ALPHA = 0.15

# F0 is clamped to this range before the vertical score
Y_F0_CLAMP_HZ = (80.0, 300.0)

FRAME_COLUMNS = [
    "time_s",
    "F0",
    "F1",
    "F2",
    "F3",
    "VTL",
    "deltaF",
    "H1_H2",
    "EHF_LF",
    "SC",
    "PR",
    "S_female",
    "S_male",
    "G",
    "norm_pitch_y",
    "norm_score_x",
    "axis_x01",
    "zone",
    "stable_zone",
]


def collect_windows(
    samples: np.ndarray,
    sample_rate: int,
    cfg: VoiceMapConfig,
    frame_size: int = FRAME_SIZE,
) -> List[WindowFeatures]:
    """Run the frame path over a signal and return every closed window."""
    windows: List[WindowFeatures] = []
    analyzer = SpectralWindowAnalyzer(sample_rate, cfg.window, on_window=windows.append)
    pitch = PitchDetector()
    formants = FormantEstimator(FormantEstimatorConfig(reference=cfg.reference_formants))
    f0_ema = Ema(SMOOTHING_ALPHA)
    res_ema = Ema(SMOOTHING_ALPHA)
    w = hann(frame_size)

    for frame in iter_frames(np.asarray(samples, dtype=np.float64), frame_size):
        xw = frame * w[: frame.size]
        pe = pitch.detect(xw, sample_rate)
        fe = formants.estimate(xw, sample_rate, pe.f0_hz)
        if pe.f0_hz > 0 and pe.confidence > MIN_CONFIDENCE:
            analyzer.add_frame(
                xw,
                f0_ema.update(pe.f0_hz),
                pe.confidence,
                fe.f1_hz,
                fe.f2_hz,
                fe.f3_hz,
                res_ema.update(fe.resonance01),
            )
    return windows


def analyze_signal(
    samples: np.ndarray,
    sample_rate: int,
    cfg: Optional[VoiceMapConfig] = None,
) -> pd.DataFrame:
    """
    Per-window analysis table for a mono signal (see module docstring for columns).

    Windows only accumulate voiced frames, so silence or unvoiced audio gives
    an empty table with the expected columns.
    """
    cfg = cfg if cfg is not None else build_voice_config()
    windows = collect_windows(samples, sample_rate, cfg)

    axis = ResonanceAxisPipeline(cfg.resonance_axis, cfg.bias_dynamic, cfg.hard_floor)
    hysteresis = HysteresisClassifier(cfg.zone_policy, cfg.hysteresis_windows)
    clip = cfg.gradient_clip
    hop_s = cfg.window.hop_ms / 1000.0
    lo, hi = Y_F0_CLAMP_HZ

    rows = []
    for i, wf in enumerate(windows):
        s_female = wf.decision.low_f0_count
        s_male = wf.decision.high_f0_count
        g = float(s_female - s_male) + cfg.bias
        rule_x = clamp01((g + clip) / (2.0 * clip)) if clip > 0 else 0.5
        y = pitch_score(max(lo, min(hi, wf.f0_hz)), cfg.pitch_range)
        axis_x = axis(wf.mean_resonance01, y, wf.f0_hz, wf).x01
        cls = hysteresis.classify(rule_x, y)

        rows.append(
            {
                "time_s": i * hop_s,
                "F0": wf.f0_hz,
                "F1": wf.f1_hz,
                "F2": wf.f2_hz,
                "F3": wf.f3_hz,
                "VTL": wf.vtl_delta_f_cm,
                "deltaF": wf.delta_f_hz,
                "H1_H2": wf.h1_minus_h2_db,
                "EHF_LF": wf.ehf_over_elf,
                "SC": wf.spectral_centroid_hz,
                "PR": wf.prosody_range_st,
                "S_female": s_female,
                "S_male": s_male,
                "G": g,
                "norm_pitch_y": y,
                "norm_score_x": rule_x,
                "axis_x01": axis_x,
                "zone": cls.raw.value,
                "stable_zone": cls.stable.value,
            }
        )

    logger.debug("analyze_signal: %d windows from %d samples", len(rows), np.asarray(samples).size)
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


__all__ = [
    "FRAME_COLUMNS",
    "analyze_signal",
    "collect_windows",
]
