from __future__ import annotations

"""
brightness_mapper.py

Composite brightness / resonance score for the horizontal axis.

Five window features are normalized against configured ranges, optionally
reshaped with a logistic curve, and combined with per-component weights:

    composite = clamp01(sum_i w_i * reshaped_i)

An optional dark gate caps the composite for windows that are dark on both
raw brightness cues (EHF/LF and spectral centroid).
"""

from dataclasses import dataclass, field, replace
from typing import Optional

import numpy as np

from voice_map_tools.edge.dsp_utils import clamp01, inv_sigmoid, linear_norm, sigmoid
from voice_map_tools.edge.spectral_window_analyzer import WindowFeatures

LOG_EPS = 1e-6


@dataclass(frozen=True)
class ResonanceWeights:
    hf_lf: float = 0.55
    sc: float = 0.25
    vtl_inv: float = 0.10
    delta_f: float = 0.05
    h1h2: float = 0.05


@dataclass(frozen=True)
class ResonanceRanges:
    hf_lf_min: float = 0.20
    hf_lf_max: float = 1.80
    sc_min_hz: float = 600.0
    sc_max_hz: float = 2400.0
    vtl_min_cm: float = 14.0
    vtl_max_cm: float = 22.0
    delta_f_min_hz: float = 700.0
    delta_f_max_hz: float = 1200.0
    h1h2_min_db: float = 0.0
    h1h2_max_db: float = 12.0


@dataclass(frozen=True)
class NonlinearSpec:
    kind: str  # "sigmoid" | "inv_sigmoid"; anything else leaves the value unchanged
    k: float
    mid: float  # raw units of the feature (Hz, cm, dB, ratio)


@dataclass(frozen=True)
class NonlinearShaping:
    hf_lf_left: Optional[NonlinearSpec] = None
    sc_left: Optional[NonlinearSpec] = None
    h1h2_left: Optional[NonlinearSpec] = None
    vtl_right: Optional[NonlinearSpec] = None
    delta_f_right: Optional[NonlinearSpec] = None


@dataclass(frozen=True)
class DarkGate:
    hf_lf_max: float
    sc_max_hz: float
    x_max: float


@dataclass(frozen=True)
class ResonanceAxisConfig:
    use_brightness_for_x: bool = False
    weights: ResonanceWeights = field(default_factory=ResonanceWeights)
    ranges: ResonanceRanges = field(default_factory=ResonanceRanges)
    hf_lf_log10: bool = False
    nonlinear: Optional[NonlinearShaping] = None
    dark_gate: Optional[DarkGate] = None
    gain_x: float = 1.0

    def with_weights(self, weights: ResonanceWeights) -> "ResonanceAxisConfig":
        return replace(self, weights=weights)


@dataclass(frozen=True)
class BrightnessComponents:
    hf_lf: float
    sc: float
    vtl_inv: float
    delta_f: float
    h1h2: float


@dataclass(frozen=True)
class BrightnessResult:
    composite: float
    components: BrightnessComponents


def _hf_lf_norm(v: float, cfg: ResonanceAxisConfig) -> float:
    r = cfg.ranges
    if cfg.hf_lf_log10:
        if np.isposinf(v):
            return 1.0
        return linear_norm(
            float(np.log10(max(LOG_EPS, v))),
            float(np.log10(max(LOG_EPS, r.hf_lf_min))),
            float(np.log10(max(LOG_EPS, r.hf_lf_max))),
        )
    return linear_norm(v, r.hf_lf_min, r.hf_lf_max)


def _inv_vtl_norm(vtl_cm: float, r: ResonanceRanges) -> float:
    if not (vtl_cm > 0 and r.vtl_min_cm > 0 and r.vtl_max_cm > 0):
        return 0.0
    return linear_norm(1.0 / vtl_cm, 1.0 / r.vtl_max_cm, 1.0 / r.vtl_min_cm)


def _reshape(v: float, spec: Optional[NonlinearSpec], mid01: float) -> float:
    if spec is None:
        return v
    if spec.kind == "sigmoid":
        return sigmoid(v, spec.k, mid01)
    if spec.kind == "inv_sigmoid":
        return inv_sigmoid(v, spec.k, mid01)
    return v


def compute_brightness(cfg: ResonanceAxisConfig, wf: WindowFeatures) -> BrightnessResult:
    """Composite brightness in [0, 1] plus the five normalized (pre-reshape) components."""
    r = cfg.ranges
    w = cfg.weights

    b_hf = _hf_lf_norm(wf.ehf_over_elf, cfg)
    b_sc = linear_norm(wf.spectral_centroid_hz, r.sc_min_hz, r.sc_max_hz)
    b_vtl = _inv_vtl_norm(wf.vtl_delta_f_cm, r)
    b_df = linear_norm(wf.delta_f_hz, r.delta_f_min_hz, r.delta_f_max_hz)
    b_h12 = linear_norm(max(0.0, wf.h1_minus_h2_db), r.h1h2_min_db, r.h1h2_max_db)

    nl = cfg.nonlinear
    if nl is not None:
        # midpoints are configured in raw units; move them into normalized space
        s_hf = _reshape(b_hf, nl.hf_lf_left, _hf_lf_norm(nl.hf_lf_left.mid, cfg) if nl.hf_lf_left else 0.0)
        s_sc = _reshape(b_sc, nl.sc_left, linear_norm(nl.sc_left.mid, r.sc_min_hz, r.sc_max_hz) if nl.sc_left else 0.0)
        s_h12 = _reshape(
            b_h12, nl.h1h2_left, linear_norm(nl.h1h2_left.mid, r.h1h2_min_db, r.h1h2_max_db) if nl.h1h2_left else 0.0
        )
        s_vtl = _reshape(b_vtl, nl.vtl_right, _inv_vtl_norm(nl.vtl_right.mid, r) if nl.vtl_right else 0.0)
        s_df = _reshape(
            b_df,
            nl.delta_f_right,
            linear_norm(nl.delta_f_right.mid, r.delta_f_min_hz, r.delta_f_max_hz) if nl.delta_f_right else 0.0,
        )
    else:
        s_hf, s_sc, s_h12, s_vtl, s_df = b_hf, b_sc, b_h12, b_vtl, b_df

    composite = clamp01(w.hf_lf * s_hf + w.sc * s_sc + w.vtl_inv * s_vtl + w.delta_f * s_df + w.h1h2 * s_h12)

    dg = cfg.dark_gate
    if dg is not None and wf.ehf_over_elf <= dg.hf_lf_max and wf.spectral_centroid_hz <= dg.sc_max_hz:
        composite = clamp01(min(composite, dg.x_max))

    return BrightnessResult(
        composite=composite,
        components=BrightnessComponents(b_hf, b_sc, b_vtl, b_df, b_h12),
    )
