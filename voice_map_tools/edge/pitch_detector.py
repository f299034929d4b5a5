from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import scipy.signal as spsig


@dataclass
class PitchDetectorConfig:
    fmin_hz: float = 60.0
    fmax_hz: float = 500.0
    # total frame energy below this is treated as unvoiced
    energy_eps: float = 1e-6
    # shortest lag whose peak reaches this fraction of the global maximum wins
    subharmonic_tolerance: float = 0.9


@dataclass(frozen=True)
class PitchEstimate:
    f0_hz: float
    confidence: float

    @property
    def voiced(self) -> bool:
        return self.f0_hz > 0.0


UNVOICED = PitchEstimate(0.0, 0.0)


class PitchDetector:
    """
    Lightweight autocorrelation pitch detector.

      - autocorrelation over lags covering [fmin_hz, fmax_hz]
      - best lag = first peak within subharmonic_tolerance of the global maximum
      - parabolic interpolation over the three neighbouring lags
      - confidence = peak autocorrelation / mean frame energy, clamped to [0, 1]

    Each lag is normalized by its overlap count (n - lag), so confidence does
    not decay with the period of low voices. Never raises; silent frames
    return f0=0, confidence=0.
    """

    def __init__(self, cfg: PitchDetectorConfig = None):
        self.cfg = cfg if cfg is not None else PitchDetectorConfig()

    def lag_range(self, sample_rate: int) -> tuple[int, int]:
        min_lag = max(1, int(np.floor(sample_rate / self.cfg.fmax_hz)))
        max_lag = max(min_lag, int(np.floor(sample_rate / self.cfg.fmin_hz)))
        return min_lag, max_lag

    def _first_strong_peak(self, search: np.ndarray) -> int:
        # a periodic frame also peaks at multiples of its period; take the shortest
        peak = float(np.max(search))
        if peak <= 0.0:
            return int(np.argmax(search))
        i = int(np.argmax(search >= self.cfg.subharmonic_tolerance * peak))
        while i + 1 < search.size and search[i + 1] > search[i]:
            i += 1
        return i

    def detect(self, frame: np.ndarray, sample_rate: int) -> PitchEstimate:
        x = np.asarray(frame, dtype=np.float64).reshape(-1)
        n = x.size
        if n < 2 or sample_rate <= 0:
            return UNVOICED

        energy = float(np.dot(x, x))
        if not np.isfinite(energy) or energy < self.cfg.energy_eps:
            return UNVOICED

        min_lag, max_lag = self.lag_range(sample_rate)
        if min_lag >= n:
            return UNVOICED

        # r[lag] = sum_i x[i] * x[i + lag], lags 0..n-1
        r = spsig.correlate(x, x, mode="full", method="fft")[n - 1:]
        ac = np.zeros(max_lag + 1, dtype=np.float64)
        top = min(max_lag, n - 1)
        lags = np.arange(min_lag, top + 1)
        ac[min_lag:top + 1] = r[min_lag:top + 1] / (n - lags)

        search = ac[min_lag:max_lag + 1]
        best_lag = min_lag + self._first_strong_peak(search)

        # parabolic refinement around the peak
        l1 = max(min_lag, best_lag - 1)
        l3 = min(max_lag, best_lag + 1)
        y1, y2, y3 = ac[l1], ac[best_lag], ac[l3]
        denom = y1 - 2.0 * y2 + y3
        shift = 0.5 * (y1 - y3) / denom if abs(denom) > 1e-9 else 0.0
        refined_lag = best_lag + shift
        if refined_lag <= 0:
            return UNVOICED

        f0 = float(sample_rate / refined_lag)
        conf = float(np.clip(y2 / (energy / n), 0.0, 1.0))
        return PitchEstimate(f0, conf)
