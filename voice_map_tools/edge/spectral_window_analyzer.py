from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, NamedTuple, Optional, Tuple

import librosa
import numpy as np

from voice_map_tools.edge.dsp_utils import EPS, median_or
from voice_map_tools.edge.formant_estimator import FALLBACK_FORMANTS_HZ, NEUTRAL_RESONANCE
from voice_map_tools.edge.pitch_normalizer import PitchNormalizer, PitchRange

SPEED_OF_SOUND_CM_S = 34300.0


# ----------------------------
# configuration
# ----------------------------
@dataclass(frozen=True)
class BandsConfig:
    split_hz: float = 1800.0
    sc_max_hz: float = 5000.0


@dataclass(frozen=True)
class F0ZoneConfig:
    low_max_hz: float = 165.0
    high_min_hz: float = 180.0


@dataclass(frozen=True)
class FeminineLowRules:
    delta_f_min_hz: float = 1000.0
    vtl_max_cm: float = 16.5
    f2_min_hz: float = 1700.0
    h1h2_min_db: float = 8.0
    ehf_lf_min: float = 1.1
    sc_min_hz: float = 1800.0
    prosody_min_st: float = 10.0
    # reserved for voice-quality cues (not evaluated yet)
    cpp_max_db: float = 12.0
    hnr_max_db: float = 18.0
    need_true_at_least: int = 5


@dataclass(frozen=True)
class MasculineHighRules:
    delta_f_max_hz: float = 850.0
    vtl_min_cm: float = 18.0
    f2_max_hz: float = 1500.0
    h1h2_max_db: float = 5.0
    ehf_lf_max: float = 0.7
    sc_max_hz: float = 1500.0
    prosody_max_st: float = 8.0
    cpp_min_db: float = 12.0
    hnr_min_db: float = 20.0
    need_true_at_least: int = 5


@dataclass(frozen=True)
class WindowAnalyzerConfig:
    window_ms: int = 500
    hop_ms: int = 250
    n_fft: int = 2048

    # per-frame track gating
    f0_min_conf: float = 0.6
    f0_range_hz: Tuple[float, float] = (60.0, 500.0)

    bands: BandsConfig = field(default_factory=BandsConfig)
    f0_zone: F0ZoneConfig = field(default_factory=F0ZoneConfig)
    feminine_low: FeminineLowRules = field(default_factory=FeminineLowRules)
    masculine_high: MasculineHighRules = field(default_factory=MasculineHighRules)
    pitch_range: PitchRange = field(default_factory=PitchRange)

    # The voice-quality slot of each rule set is an always-true placeholder,
    # so every window starts with one satisfied predicate.
    count_voice_quality_placeholder: bool = True


# ----------------------------
# rule sets
# ----------------------------
class RuleInputs(NamedTuple):
    delta_f_hz: float
    vtl_cm: float
    f2_hz: float
    h1_minus_h2_db: float
    ehf_over_elf: float
    spectral_centroid_hz: float
    prosody_range_st: float


@dataclass(frozen=True)
class Predicate:
    name: str
    test: Callable[[RuleInputs], bool]


@dataclass(frozen=True)
class RuleSet:
    name: str
    predicates: Tuple[Predicate, ...]
    need_true_at_least: int

    def satisfied(self, inputs: RuleInputs) -> List[str]:
        return [p.name for p in self.predicates if p.test(inputs)]

    def count(self, inputs: RuleInputs) -> int:
        return len(self.satisfied(inputs))


def _placeholder(enabled: bool) -> Tuple[Predicate, ...]:
    if not enabled:
        return ()
    return (Predicate("voice_quality", lambda _: True),)


def feminine_low_rules(th: FeminineLowRules, count_placeholder: bool = True) -> RuleSet:
    return RuleSet(
        name="feminine_low",
        predicates=(
            Predicate("delta_f", lambda r: r.delta_f_hz >= th.delta_f_min_hz),
            Predicate("vtl", lambda r: r.vtl_cm <= th.vtl_max_cm),
            Predicate("f2", lambda r: r.f2_hz >= th.f2_min_hz),
            Predicate("h1_h2", lambda r: r.h1_minus_h2_db >= th.h1h2_min_db),
            Predicate(
                "brightness",
                lambda r: r.ehf_over_elf >= th.ehf_lf_min or r.spectral_centroid_hz >= th.sc_min_hz,
            ),
            Predicate("prosody", lambda r: r.prosody_range_st >= th.prosody_min_st),
        ) + _placeholder(count_placeholder),
        need_true_at_least=int(th.need_true_at_least),
    )


def masculine_high_rules(th: MasculineHighRules, count_placeholder: bool = True) -> RuleSet:
    return RuleSet(
        name="masculine_high",
        predicates=(
            Predicate("delta_f", lambda r: r.delta_f_hz <= th.delta_f_max_hz),
            Predicate("vtl", lambda r: r.vtl_cm >= th.vtl_min_cm),
            Predicate("f2", lambda r: r.f2_hz <= th.f2_max_hz),
            Predicate("h1_h2", lambda r: r.h1_minus_h2_db <= th.h1h2_max_db),
            Predicate(
                "brightness",
                lambda r: r.ehf_over_elf <= th.ehf_lf_max or r.spectral_centroid_hz <= th.sc_max_hz,
            ),
            Predicate("prosody", lambda r: r.prosody_range_st <= th.prosody_max_st),
        ) + _placeholder(count_placeholder),
        need_true_at_least=int(th.need_true_at_least),
    )


# ----------------------------
# outputs
# ----------------------------
@dataclass(frozen=True)
class WindowDecision:
    low_f0_count: int
    high_f0_count: int
    low_f0_hit: bool
    high_f0_hit: bool


@dataclass(frozen=True)
class WindowFeatures:
    f0_track: Tuple[float, ...]
    f0_hz: float
    f1_hz: float
    f2_hz: float
    f3_hz: float
    delta_f_hz: float
    vtl_delta_f_cm: float
    vtl_formant_mean_cm: float
    h1_minus_h2_db: float
    ehf_over_elf: float
    spectral_centroid_hz: float
    prosody_range_st: float
    mean_pitch01: float
    mean_resonance01: float
    decision: WindowDecision

    def metrics(self) -> dict:
        """Named scalar view used by rule conditions and result tables."""
        return {
            "F0": self.f0_hz,
            "F1": self.f1_hz,
            "F2": self.f2_hz,
            "F3": self.f3_hz,
            "deltaF": self.delta_f_hz,
            "VTL": self.vtl_delta_f_cm,
            "VTL_fm": self.vtl_formant_mean_cm,
            "H1_H2": self.h1_minus_h2_db,
            "EHF_LF": self.ehf_over_elf,
            "SC": self.spectral_centroid_hz,
            "PR": self.prosody_range_st,
        }


class AnalyzerState(str, Enum):
    ACCUMULATING = "accumulating"
    WINDOW_READY = "window_ready"


# ----------------------------
# analyzer
# ----------------------------
class SpectralWindowAnalyzer:
    """
    Accumulates per-frame outputs into fixed 500 ms windows (250 ms hop) and
    computes window-level acoustic features plus rule-set hit counts.

    Each closed window produces one WindowFeatures, handed to `on_window`
    (if set) and returned from add_frame(). After emission the buffer slides
    by one hop and the per-window tracks are cleared.
    """

    def __init__(
        self,
        sample_rate: int,
        cfg: Optional[WindowAnalyzerConfig] = None,
        on_window: Optional[Callable[[WindowFeatures], None]] = None,
    ):
        self.cfg = cfg if cfg is not None else WindowAnalyzerConfig()
        self.sample_rate = int(sample_rate)
        self.on_window = on_window

        self.window_samples = (self.sample_rate * int(self.cfg.window_ms)) // 1000
        self.hop_samples = (self.sample_rate * int(self.cfg.hop_ms)) // 1000
        if self.window_samples < 16 or self.hop_samples < 1:
            raise ValueError(f"sample_rate {sample_rate} too low for window analysis")

        n_fft = int(self.cfg.n_fft)
        if self.window_samples < n_fft:
            n_fft = 1 << int(np.floor(np.log2(self.window_samples)))
        self.n_fft = n_fft

        self.normalizer = PitchNormalizer(self.cfg.pitch_range)
        self.feminine_low = feminine_low_rules(self.cfg.feminine_low, self.cfg.count_voice_quality_placeholder)
        self.masculine_high = masculine_high_rules(self.cfg.masculine_high, self.cfg.count_voice_quality_placeholder)

        self.state = AnalyzerState.ACCUMULATING
        self._buf = np.zeros(0, dtype=np.float64)
        self._f0_track: List[float] = []
        self._f1: List[float] = []
        self._f2: List[float] = []
        self._f3: List[float] = []
        self._res: List[float] = []

    def reset(self) -> None:
        self.state = AnalyzerState.ACCUMULATING
        self._buf = np.zeros(0, dtype=np.float64)
        self._clear_tracks()

    def _clear_tracks(self) -> None:
        self._f0_track.clear()
        self._f1.clear()
        self._f2.clear()
        self._f3.clear()
        self._res.clear()

    @property
    def buffered_samples(self) -> int:
        return int(self._buf.size)

    def add_frame(
        self,
        samples: np.ndarray,
        f0_hz: float,
        confidence: float,
        f1_hz: float,
        f2_hz: float,
        f3_hz: float,
        resonance01: float,
    ) -> List[WindowFeatures]:
        cfg = self.cfg
        x = np.asarray(samples, dtype=np.float64).reshape(-1)
        self._buf = np.concatenate([self._buf, x])

        lo, hi = cfg.f0_range_hz
        if confidence > cfg.f0_min_conf and lo <= f0_hz <= hi:
            self._f0_track.append(float(f0_hz))
        if f1_hz > 0 and f2_hz > 0 and f3_hz > 0:
            self._f1.append(float(f1_hz))
            self._f2.append(float(f2_hz))
            self._f3.append(float(f3_hz))
        if 0.0 <= resonance01 <= 1.0:
            self._res.append(float(resonance01))

        emitted: List[WindowFeatures] = []
        while self._buf.size >= self.window_samples:
            self.state = AnalyzerState.WINDOW_READY
            wf = self._analyze_window(self._buf[: self.window_samples])
            emitted.append(wf)
            if self.on_window is not None:
                self.on_window(wf)

            # slide by one hop, keep the overlap
            self._buf = self._buf[self.hop_samples:].copy()
            self._clear_tracks()
            self.state = AnalyzerState.ACCUMULATING

        return emitted

    # ------------- window features -------------

    def average_psd(self, x: np.ndarray) -> np.ndarray:
        """Mean power per bin of Hann-windowed, 50%-overlapping FFT frames (n_fft/2 bins)."""
        S = librosa.stft(
            np.ascontiguousarray(x, dtype=np.float64),
            n_fft=self.n_fft,
            hop_length=self.n_fft // 2,
            win_length=self.n_fft,
            window="hann",
            center=False,
        )
        P = np.abs(S) ** 2
        return P.mean(axis=1)[: self.n_fft // 2]

    def band_energy(self, psd: np.ndarray) -> Tuple[float, float]:
        """
        EHF/LF ratio and spectral centroid over bins 1..sc_max_bin.

        LF = bins up to the split, HF = bins above it. The ratio is +inf when
        only HF carries energy and 0 when neither band does.
        """
        bands = self.cfg.bands
        n_bins = psd.size
        hz_per_bin = self.sample_rate / self.n_fft
        split_bin = int(np.clip(int(bands.split_hz / hz_per_bin), 1, n_bins - 1))
        sc_max_bin = min(int(bands.sc_max_hz / hz_per_bin), n_bins - 1)

        k = np.arange(1, sc_max_bin + 1)
        p = psd[k].astype(np.float64)
        f = k * hz_per_bin
        e_lf = float(np.sum(p[k <= split_bin]))
        e_hf = float(np.sum(p[k > split_bin]))
        den = float(np.sum(p))

        if e_lf > EPS:
            ehf_elf = e_hf / e_lf
        elif e_hf > EPS:
            ehf_elf = float("inf")
        else:
            ehf_elf = 0.0
        sc = float(np.sum(f * p) / den) if den > 0 else 0.0
        return ehf_elf, sc

    def peak_db_near(self, psd: np.ndarray, target_hz: float) -> float:
        """Log-power (dB) peak near target_hz with quadratic interpolation in the dB domain."""
        hz_per_bin = self.sample_rate / self.n_fft
        idx = int(np.clip(int(round(target_hz / hz_per_bin)), 1, psd.size - 2))
        y1, y2, y3 = 10.0 * np.log10(np.maximum(psd[idx - 1: idx + 2], EPS))
        denom = y1 - 2.0 * y2 + y3
        shift = 0.5 * (y1 - y3) / denom if abs(denom) > 1e-6 else 0.0
        return float(y2 - 0.25 * (y1 - y3) * shift)

    def _analyze_window(self, x: np.ndarray) -> WindowFeatures:
        cfg = self.cfg
        psd = self.average_psd(x)
        ehf_elf, sc = self.band_energy(psd)

        f0 = median_or(self._f0_track, 0.0)
        h1h2 = self.peak_db_near(psd, f0) - self.peak_db_near(psd, 2.0 * f0) if f0 > 0 else 0.0

        f1m = median_or(self._f1, FALLBACK_FORMANTS_HZ[0])
        f2m = median_or(self._f2, FALLBACK_FORMANTS_HZ[1])
        f3m = median_or(self._f3, FALLBACK_FORMANTS_HZ[2])
        delta_f = max(((f2m - f1m) + (f3m - f2m)) / 2.0, 1.0)
        c = SPEED_OF_SOUND_CM_S
        vtl_delta_f = c / (2.0 * delta_f)
        quarter_wave = [((2 * m - 1) * c) / (4.0 * fm) for m, fm in ((1, f1m), (2, f2m), (3, f3m)) if fm > 0]
        vtl_fm = median_or(quarter_wave, vtl_delta_f)

        pr = 0.0
        if len(self._f0_track) >= 2:
            fmax, fmin = max(self._f0_track), min(self._f0_track)
            if fmax > 0 and fmin > 0:
                pr = float(12.0 * np.log2(fmax / fmin))

        mean_pitch01 = self.normalizer.mean_score(self._f0_track)
        mean_res01 = float(np.clip(np.mean(self._res), 0.0, 1.0)) if self._res else NEUTRAL_RESONANCE

        inputs = RuleInputs(delta_f, vtl_delta_f, f2m, h1h2, ehf_elf, sc, pr)
        low_count = self.feminine_low.count(inputs)
        high_count = self.masculine_high.count(inputs)
        low_f0 = f0 <= cfg.f0_zone.low_max_hz
        high_f0 = f0 >= cfg.f0_zone.high_min_hz
        decision = WindowDecision(
            low_f0_count=low_count,
            high_f0_count=high_count,
            low_f0_hit=bool(low_f0 and low_count >= self.feminine_low.need_true_at_least),
            high_f0_hit=bool(high_f0 and high_count >= self.masculine_high.need_true_at_least),
        )

        return WindowFeatures(
            f0_track=tuple(self._f0_track),
            f0_hz=f0,
            f1_hz=f1m,
            f2_hz=f2m,
            f3_hz=f3m,
            delta_f_hz=delta_f,
            vtl_delta_f_cm=vtl_delta_f,
            vtl_formant_mean_cm=vtl_fm,
            h1_minus_h2_db=h1h2,
            ehf_over_elf=ehf_elf,
            spectral_centroid_hz=sc,
            prosody_range_st=pr,
            mean_pitch01=mean_pitch01,
            mean_resonance01=mean_res01,
            decision=decision,
        )
