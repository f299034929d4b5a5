from __future__ import annotations

"""
pitch_normalizer.py

Maps F0 (Hz) onto the vertical [0, 1] pitch axis.

The pitch range is an explicit immutable value passed to every call, so
normalization has no hidden process-wide state. The loader picks the range
once per session (see voice_defaults.resolve_pitch_range).
"""

from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from voice_map_tools.edge.dsp_utils import clamp01

DEFAULT_MIN_HZ = 85.0
DEFAULT_MAX_HZ = 255.0


@dataclass(frozen=True)
class PitchRange:
    min_hz: float = DEFAULT_MIN_HZ
    max_hz: float = DEFAULT_MAX_HZ

    @classmethod
    def resolve(cls, min_hz: Optional[float] = None, max_hz: Optional[float] = None) -> "PitchRange":
        """
        Build a range from optional bounds.

        Missing bounds fall back to 85/255 Hz; min is floored at 10 Hz and
        max is kept at least 1 Hz above min.
        """
        mn = max(float(DEFAULT_MIN_HZ if min_hz is None else min_hz), 10.0)
        mx = max(float(DEFAULT_MAX_HZ if max_hz is None else max_hz), mn + 1.0)
        return cls(mn, mx)

    @classmethod
    def from_group_stats(
        cls,
        female_mean_hz: float,
        female_std_hz: float,
        male_mean_hz: float,
        male_std_hz: float,
    ) -> "PitchRange":
        """
        Pooled range from per-group mean F0 statistics: [min(mean-2σ), max(mean+2σ)].

        The lower bound is kept in [40, 200] Hz, the upper bound in [220, 500] Hz
        and at least 40 Hz above the lower bound.
        """
        lo = min(female_mean_hz - 2.0 * female_std_hz, male_mean_hz - 2.0 * male_std_hz)
        hi = max(female_mean_hz + 2.0 * female_std_hz, male_mean_hz + 2.0 * male_std_hz)
        mn = float(np.clip(lo, 40.0, 200.0))
        mx = max(float(np.clip(hi, 220.0, 500.0)), mn + 40.0)
        return cls(mn, mx)

    @classmethod
    def from_samples(
        cls,
        f0_samples_hz: Iterable[float],
        lo_q: float = 0.05,
        hi_q: float = 0.95,
    ) -> Optional["PitchRange"]:
        """Robust 5th-95th percentile range of pooled F0 samples (None below 10 samples)."""
        arr = np.asarray([v for v in f0_samples_hz if np.isfinite(v) and v > 0], dtype=np.float64)
        if arr.size < 10:
            return None
        return cls.resolve(float(np.quantile(arr, lo_q)), float(np.quantile(arr, hi_q)))


def pitch_score(f0_hz: float, pitch_range: PitchRange) -> float:
    """Normalize F0 to [0, 1]: 0 ~ bottom of the range, 1 ~ top."""
    span = max(pitch_range.max_hz - pitch_range.min_hz, 1.0)
    return clamp01((f0_hz - pitch_range.min_hz) / span)


class PitchNormalizer:
    def __init__(self, pitch_range: Optional[PitchRange] = None):
        self.pitch_range = pitch_range if pitch_range is not None else PitchRange()

    def score(self, f0_hz: float) -> float:
        return pitch_score(f0_hz, self.pitch_range)

    def mean_score(self, f0_values_hz: Iterable[float]) -> float:
        scores = [self.score(f) for f in f0_values_hz]
        if not scores:
            return 0.0
        return clamp01(float(np.mean(scores)))


__all__ = [
    "PitchRange",
    "PitchNormalizer",
    "pitch_score",
]
