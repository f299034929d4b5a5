# resonance_axis.py

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Mapping, Optional, Tuple

import numpy as np

from voice_map_tools.edge.brightness_mapper import (
    BrightnessResult,
    ResonanceAxisConfig,
    ResonanceWeights,
    compute_brightness,
)
from voice_map_tools.edge.dsp_utils import clamp01, inv_sigmoid
from voice_map_tools.edge.spectral_window_analyzer import WindowFeatures

_OPS = {
    ">=": lambda a, b: a >= b,
    "=>": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
    "=<": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
    "==": lambda a, b: abs(a - b) < 1e-3,
}


@dataclass(frozen=True)
class Condition:
    metric: str
    op: str
    value: float

    def holds(self, metrics: Mapping[str, float]) -> bool:
        fn = _OPS.get(self.op)
        if fn is None:
            return False
        v = float(metrics.get(self.metric, float("nan")))
        if np.isnan(v):
            return False
        return bool(fn(v, self.value))


def all_hold(conditions: Tuple[Condition, ...], metrics: Mapping[str, float]) -> bool:
    return all(c.holds(metrics) for c in conditions)


@dataclass(frozen=True)
class BiasDynamicConfig:
    """
    Low-pitch guard for the resonance axis.

    - between f0_low_hz and f0_high_hz the VTL and deltaF weights are scaled
      by scale_vtl_df before the brightness composite is computed
    - after blending, x is shifted left by k1 * invSigmoid(pitch01) plus
      k2 when the geom_male conditions hold on the latest window
    """

    enabled: bool = False
    f0_low_hz: float = 60.0
    f0_high_hz: float = 150.0
    scale_vtl_df: float = 0.5
    y_low_k: float = 8.0
    y_low_mid: float = 0.30
    k1: float = 0.10
    k2: float = 0.10
    geom_male: Tuple[Condition, ...] = ()
    geom_male_else: float = 0.0


@dataclass(frozen=True)
class HardFloorRule:
    conditions: Tuple[Condition, ...]
    x_min: float = 0.0


@dataclass(frozen=True)
class HardFloorConfig:
    enabled: bool = False
    rules: Tuple[HardFloorRule, ...] = ()


@dataclass(frozen=True)
class AxisResult:
    x01: float
    brightness: Optional[BrightnessResult]
    blend_alpha: float


# ----------------------------------------------------------------------
# Stages
# ----------------------------------------------------------------------


def scaled_axis_config(
    axis: ResonanceAxisConfig,
    bias: Optional[BiasDynamicConfig],
    f0_hz: float,
) -> ResonanceAxisConfig:
    if bias is None or not bias.enabled or not (bias.f0_low_hz <= f0_hz <= bias.f0_high_hz):
        return axis
    w = axis.weights
    return axis.with_weights(
        ResonanceWeights(
            hf_lf=w.hf_lf,
            sc=w.sc,
            vtl_inv=w.vtl_inv * bias.scale_vtl_df,
            delta_f=w.delta_f * bias.scale_vtl_df,
            h1h2=w.h1h2,
        )
    )


def apply_gain(x01: float, gain: float) -> float:
    if gain == 1.0:
        return x01
    return clamp01(0.5 + gain * (x01 - 0.5))


def bias_shift(
    x01: float,
    pitch01: float,
    window: Optional[WindowFeatures],
    bias: Optional[BiasDynamicConfig],
) -> float:
    if bias is None or not bias.enabled:
        return x01
    y_low = inv_sigmoid(pitch01, bias.y_low_k, bias.y_low_mid)
    gm = 0.0
    if window is not None and bias.geom_male:
        gm = 1.0 if all_hold(bias.geom_male, window.metrics()) else bias.geom_male_else
    return clamp01(x01 - (bias.k1 * y_low + bias.k2 * gm))


def apply_hard_floor(
    x01: float,
    f0_hz: float,
    window: Optional[WindowFeatures],
    floor: Optional[HardFloorConfig],
) -> float:
    if floor is None or not floor.enabled or window is None:
        return x01
    metrics = {"F0": f0_hz, "SC": window.spectral_centroid_hz, "EHF_LF": window.ehf_over_elf}
    for rule in floor.rules:
        if all_hold(rule.conditions, metrics):
            x01 = max(x01, rule.x_min)
    return x01


class BrightnessBlender:
    """
    Adaptive blend between the brightness composite and the formant resonance.

    When recent brightness values barely move, the blend leans on resonance01.
    """

    def __init__(self, history: int = 20, min_count: int = 5):
        self.min_count = int(min_count)
        self._recent: Deque[float] = deque(maxlen=int(history))

    def reset(self) -> None:
        self._recent.clear()

    def spread(self) -> float:
        if len(self._recent) < self.min_count:
            return float("inf")
        return float(np.std(np.asarray(self._recent, dtype=np.float64)))

    def alpha(self, has_brightness: bool) -> float:
        if not has_brightness:
            return 0.0
        s = self.spread()
        if not np.isfinite(s):
            return 0.6
        if s < 0.03:
            return 0.2
        if s < 0.06:
            return 0.45
        return 0.7

    def blend(self, brightness: Optional[float], resonance01: float) -> Tuple[float, float]:
        if brightness is not None:
            self._recent.append(float(brightness))
        a = self.alpha(brightness is not None)
        if brightness is None:
            return resonance01, a
        return a * brightness + (1.0 - a) * resonance01, a


class ResonanceAxisPipeline:
    """
    Horizontal-axis post-processing applied to every frame result:

        weight scaling -> brightness -> adaptive blend -> gain -> bias shift -> hard floor

    Every stage is parameterized by the resolved configuration; absent or
    disabled stages pass x through unchanged.
    """

    def __init__(
        self,
        axis: Optional[ResonanceAxisConfig] = None,
        bias_dynamic: Optional[BiasDynamicConfig] = None,
        hard_floor: Optional[HardFloorConfig] = None,
    ):
        self.axis = axis
        self.bias_dynamic = bias_dynamic
        self.hard_floor = hard_floor
        self.blender = BrightnessBlender()

    def reset(self) -> None:
        self.blender.reset()

    def __call__(
        self,
        resonance01: float,
        pitch01: float,
        f0_hz: float,
        window: Optional[WindowFeatures],
    ) -> AxisResult:
        bm: Optional[BrightnessResult] = None
        if self.axis is not None and self.axis.use_brightness_for_x and window is not None:
            bm = compute_brightness(scaled_axis_config(self.axis, self.bias_dynamic, f0_hz), window)

        x01, alpha = self.blender.blend(bm.composite if bm is not None else None, resonance01)
        if self.axis is not None:
            x01 = apply_gain(x01, self.axis.gain_x)
        x01 = bias_shift(x01, pitch01, window, self.bias_dynamic)
        x01 = apply_hard_floor(x01, f0_hz, window, self.hard_floor)
        return AxisResult(x01=clamp01(x01), brightness=bm, blend_alpha=alpha)
