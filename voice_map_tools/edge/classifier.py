from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Deque, Optional, Union


class Category(str, Enum):
    MALE = "male"
    ANDROGYNOUS = "androgynous"
    FEMALE = "female"


# ----------------------------------------------------------------------
# Zone policies (tagged variant, picked once when the config is resolved)
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class AnchorEllipsePolicy:
    """
    Nearest-anchor classification with per-axis radius scaling.

    d2 = ((x - ax) / rx)^2 + ((y - ay) / ry)^2 for each anchor. When the two
    distances are similar (min/max above `androgynous_ratio`) the point is
    androgynous; otherwise it takes the nearer anchor's category.
    """

    kind: ClassVar[str] = "anchor_ellipse"

    male_x: float
    male_y: float
    female_x: float
    female_y: float
    male_rx: float
    male_ry: float
    female_rx: float
    female_ry: float
    androgynous_ratio: float = 0.7

    def classify(self, resonance_x01: float, pitch_y01: float) -> Category:
        dx_m = (resonance_x01 - self.male_x) / max(self.male_rx, 1e-3)
        dy_m = (pitch_y01 - self.male_y) / max(self.male_ry, 1e-3)
        d2_m = dx_m * dx_m + dy_m * dy_m
        dx_f = (resonance_x01 - self.female_x) / max(self.female_rx, 1e-3)
        dy_f = (pitch_y01 - self.female_y) / max(self.female_ry, 1e-3)
        d2_f = dx_f * dx_f + dy_f * dy_f

        ratio = min(d2_m, d2_f) / max(d2_m, d2_f) if (d2_m > 0 and d2_f > 0) else 0.0
        if ratio > self.androgynous_ratio:
            return Category.ANDROGYNOUS
        return Category.MALE if d2_m <= d2_f else Category.FEMALE


@dataclass(frozen=True)
class DiagonalPolicy:
    """Pitch-dependent boundary lines: boundary = center + base + slope * (1 - y)."""

    kind: ClassVar[str] = "diagonal"

    bias: float
    male_base: float
    male_slope: float
    andro_high_base: float
    andro_high_slope: float

    def boundaries(self, pitch_y01: float) -> tuple[float, float]:
        center = 0.5 + self.bias
        y_top0 = 1.0 - pitch_y01
        male = center + self.male_base + self.male_slope * y_top0
        high = center + self.andro_high_base + self.andro_high_slope * y_top0
        return male, high

    def classify(self, resonance_x01: float, pitch_y01: float) -> Category:
        male, high = self.boundaries(pitch_y01)
        return _by_boundaries(resonance_x01, male, high)


@dataclass(frozen=True)
class StaticPolicy:
    """Constant offsets around center = 0.5 + bias."""

    kind: ClassVar[str] = "static"

    bias: float = 0.05
    male_max: float = -0.2
    female_min: float = 0.08

    def boundaries(self, pitch_y01: float = 0.0) -> tuple[float, float]:
        center = 0.5 + self.bias
        return center + self.male_max, center + self.female_min

    def classify(self, resonance_x01: float, pitch_y01: float) -> Category:
        male, high = self.boundaries(pitch_y01)
        return _by_boundaries(resonance_x01, male, high)


ZonePolicy = Union[AnchorEllipsePolicy, DiagonalPolicy, StaticPolicy]


def _by_boundaries(x: float, male: float, high: float) -> Category:
    if x <= male:
        return Category.MALE
    if x <= high:
        return Category.ANDROGYNOUS
    return Category.FEMALE


def classify(resonance_x01: float, pitch_y01: float, policy: ZonePolicy) -> Category:
    return policy.classify(resonance_x01, pitch_y01)


# ----------------------------------------------------------------------
# Hysteresis
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class ClassificationResult:
    raw: Category
    stable: Category


class HysteresisClassifier:
    """
    Stabilizes a noisy label stream with a FIFO of the last `window` labels.

    The stable label is the mode of the FIFO; ties go to the label appended
    most recently.
    """

    def __init__(self, policy: ZonePolicy, window: int = 3):
        if int(window) < 1:
            raise ValueError("hysteresis window must be >= 1")
        self.policy = policy
        self.window = int(window)
        self._recent: Deque[Category] = deque(maxlen=self.window)

    @property
    def recent(self) -> tuple:
        return tuple(self._recent)

    def push(self, label: Category) -> Category:
        self._recent.append(Category(label))
        counts = Counter(self._recent)
        best: Optional[Category] = None
        for lab in reversed(self._recent):
            if best is None or counts[lab] > counts[best]:
                best = lab
        return best

    def classify(self, resonance_x01: float, pitch_y01: float) -> ClassificationResult:
        raw = self.policy.classify(resonance_x01, pitch_y01)
        return ClassificationResult(raw=raw, stable=self.push(raw))

    def reset(self) -> None:
        self._recent.clear()
