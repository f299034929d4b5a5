from __future__ import annotations

from typing import Iterable, Optional

import numpy as np

EPS = 1e-12


# ----------------------------
# helpers
# ----------------------------
def hann(n: int) -> np.ndarray:
    # symmetric Hann: 0.5 - 0.5*cos(2*pi*i/(n-1))
    return np.hanning(int(n)).astype(np.float64)


def clamp01(v: float) -> float:
    if np.isnan(v):
        return 0.0
    return float(min(1.0, max(0.0, v)))


def linear_norm(v: float, lo: float, hi: float) -> float:
    """
    Map v linearly from [lo, hi] to [0, 1] and clamp.

    Zero-width or inverted ranges return 0 instead of propagating inf/nan.
    A +inf input saturates at 1.
    """
    if not (hi > lo) or not np.isfinite(lo) or not np.isfinite(hi):
        return 0.0
    if np.isnan(v):
        return 0.0
    if np.isposinf(v):
        return 1.0
    if np.isneginf(v):
        return 0.0
    return clamp01((v - lo) / (hi - lo))


def median_or(values: Iterable[float], default: float) -> float:
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size == 0:
        return float(default)
    return float(np.median(arr))


def sigmoid(v: float, k: float, t: float) -> float:
    """Logistic 1/(1+exp(-k(v-t))), clamped to [0, 1]."""
    z = -k * (v - t)
    # exp overflow guard
    if z > 700.0:
        return 0.0
    return clamp01(1.0 / (1.0 + np.exp(z)))


def inv_sigmoid(v: float, k: float, t: float) -> float:
    return clamp01(1.0 - sigmoid(v, k, t))


def frame_rms(x: np.ndarray) -> float:
    x = np.asarray(x, dtype=np.float64)
    if x.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(x * x)))


class Ema:
    """
    Exponential moving average. The first update initializes the state.
    """

    def __init__(self, alpha: float):
        self.alpha = float(alpha)
        self._y: Optional[float] = None

    def update(self, x: float) -> float:
        if self._y is None:
            self._y = float(x)
        else:
            a = self.alpha
            self._y = a * float(x) + (1.0 - a) * self._y
        return self._y

    def value(self) -> float:
        return 0.0 if self._y is None else self._y

    @property
    def initialized(self) -> bool:
        return self._y is not None

    def reset(self) -> None:
        self._y = None
