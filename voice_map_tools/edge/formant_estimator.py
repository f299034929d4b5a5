from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Tuple

import numpy as np
import scipy.signal as spsig

from voice_map_tools.edge.dsp_utils import Ema, clamp01, hann

# -----------------------------------------------------------------------------
# Resonance mapping:
#   resonance = clamp01((w2*z(F2) + w3*z(F3) + 2) / 4)
# z(.) is a z-score against reference phoneme statistics. The default weights
# put ~73% of the mass on F2 and ~27% on F3.
# -----------------------------------------------------------------------------

FALLBACK_FORMANTS_HZ: Tuple[float, float, float] = (500.0, 1500.0, 2500.0)
NEUTRAL_RESONANCE = 0.5


@dataclass(frozen=True)
class ReferenceFormantStats:
    f2_mean_hz: float = 1500.0
    f2_std_hz: float = 350.0
    f3_mean_hz: float = 2500.0
    f3_std_hz: float = 350.0

    @classmethod
    def from_phoneme_table(
        cls,
        table: Mapping[str, Sequence[Mapping[str, Any]]],
    ) -> "ReferenceFormantStats":
        """
        Average per-phoneme formant statistics into a single reference.

        `table` maps phoneme -> list of {"mean": ..., "stdev": ...} entries
        indexed by formant number (entry 2 is F2, entry 3 is F3). Phonemes
        with fewer than four entries are skipped; an unusable table gives
        the defaults.
        """
        m2, s2, m3, s3 = [], [], [], []
        for rows in table.values():
            if len(rows) > 3:
                m2.append(float(rows[2]["mean"]))
                s2.append(float(rows[2]["stdev"]))
                m3.append(float(rows[3]["mean"]))
                s3.append(float(rows[3]["stdev"]))
        if not m2:
            return cls()
        return cls(
            f2_mean_hz=float(np.mean(m2)),
            f2_std_hz=float(np.mean(s2)),
            f3_mean_hz=float(np.mean(m3)),
            f3_std_hz=float(np.mean(s3)),
        )


@dataclass
class FormantEstimatorConfig:
    # Decimation / analysis rate
    target_sr: int = 22050
    min_samples: int = 256

    # LPC
    lpc_order: int = 12
    pre_emphasis: float = 0.97
    n_fft: int = 2048

    # Peak picking
    f_min_hz: float = 200.0
    f_max_hz: float = 5000.0
    f1_band_hz: Tuple[float, float] = (200.0, 900.0)
    f2_band_hz: Tuple[float, float] = (800.0, 2500.0)
    f3_band_hz: Tuple[float, float] = (1800.0, 4000.0)

    # Harmonic leakage suppression
    harmonic_min_f0_hz: float = 40.0
    harmonic_tolerance: float = 0.08
    harmonic_attenuation: float = 0.15

    # Resonance score
    w_f2: float = 0.7321428571428571
    w_f3: float = 0.26785714285714285
    smoothing_alpha: float = 0.2
    reference: ReferenceFormantStats = field(default_factory=ReferenceFormantStats)


@dataclass(frozen=True)
class FormantEstimate:
    f1_hz: float
    f2_hz: float
    f3_hz: float
    resonance01: float


NEUTRAL_ESTIMATE = FormantEstimate(*FALLBACK_FORMANTS_HZ, NEUTRAL_RESONANCE)


def levinson_durbin(r: np.ndarray, order: int) -> Tuple[np.ndarray, float]:
    """
    Levinson-Durbin recursion.

    Returns the inverse-filter coefficients a (a[0] = 1) such that
    A(z) = sum_p a[p] z^-p whitens the signal, and the final prediction error.
    The recursion stops early if the error collapses (numerically singular
    autocorrelation); remaining coefficients stay zero.
    """
    a = np.zeros(order + 1, dtype=np.float64)
    a[0] = 1.0
    err = float(r[0])
    for i in range(1, order + 1):
        if err <= 0.0:
            break
        acc = float(r[i] + np.dot(a[1:i], r[i - 1:0:-1]))
        k = -acc / err
        prev = a.copy()
        a[1:i] = prev[1:i] + k * prev[i - 1:0:-1]
        a[i] = k
        err *= (1.0 - k * k)
    return a, err


class FormantEstimator:
    """
    Per-frame F1/F2/F3 from LPC spectral peak picking, plus a smoothed
    resonance score in [0, 1].

    Pipeline:
      decimate (integer stride) -> pre-emphasis -> Hann -> autocorrelation
      -> Levinson-Durbin -> all-pole envelope -> harmonic attenuation
      -> local maxima -> exclusive per-band selection -> z-score resonance -> EMA
    """

    def __init__(self, cfg: Optional[FormantEstimatorConfig] = None):
        self.cfg = cfg if cfg is not None else FormantEstimatorConfig()
        self._res_ema = Ema(self.cfg.smoothing_alpha)

    def reset(self) -> None:
        self._res_ema.reset()

    # ------------- helpers -------------

    def _decimate(self, x: np.ndarray, sample_rate: int) -> Tuple[np.ndarray, float]:
        decim = max(1, int(np.floor(sample_rate / self.cfg.target_sr)))
        m = x.size // decim
        return x[: m * decim : decim], float(sample_rate) / decim

    def envelope(self, frame: np.ndarray, sample_rate: int, f0_hz: Optional[float] = None):
        """
        All-pole spectral envelope of a frame.

        Returns (freqs_hz, power) on n_fft/2 bins, or None when the frame is
        too short or carries no energy.
        """
        cfg = self.cfg
        x = np.asarray(frame, dtype=np.float64).reshape(-1)
        x, fs = self._decimate(x, sample_rate)
        if x.size < cfg.min_samples:
            return None

        x = spsig.lfilter([1.0, -cfg.pre_emphasis], [1.0], x)
        x = x * hann(x.size)

        order = int(cfg.lpc_order)
        r = np.array([np.dot(x[: x.size - lag], x[lag:]) for lag in range(order + 1)])
        if not np.isfinite(r[0]) or r[0] <= 0.0:
            return None

        a, _ = levinson_durbin(r, order)

        n_bins = cfg.n_fft // 2
        w, h = spsig.freqz([1.0], a, worN=n_bins)
        power = np.abs(h) ** 2
        freqs = w * fs / (2.0 * np.pi)
        power[0] = 0.0

        f0 = 0.0 if f0_hz is None else float(f0_hz)
        if f0 > cfg.harmonic_min_f0_hz:
            k_h = np.round(freqs / f0)
            near = (k_h >= 1) & (np.abs(freqs - k_h * f0) < f0 * cfg.harmonic_tolerance)
            power = np.where(near, power * cfg.harmonic_attenuation, power)

        return freqs, power

    def _pick_formants(self, freqs: np.ndarray, power: np.ndarray) -> Tuple[float, float, float]:
        cfg = self.cfg
        # strict local maxima against two neighbours on each side
        peaks = spsig.argrelmax(power, order=2)[0]
        peaks = peaks[(freqs[peaks] >= cfg.f_min_hz) & (freqs[peaks] <= cfg.f_max_hz)]

        claimed: set = set()

        def pick(band: Tuple[float, float], fallback: float) -> float:
            lo, hi = band
            best = None
            for idx in peaks:
                if idx in claimed or not (lo <= freqs[idx] <= hi):
                    continue
                if best is None or power[idx] > power[best]:
                    best = idx
            if best is None:
                return fallback
            claimed.add(best)
            return float(freqs[best])

        f1 = pick(cfg.f1_band_hz, FALLBACK_FORMANTS_HZ[0])
        f2 = pick(cfg.f2_band_hz, FALLBACK_FORMANTS_HZ[1])
        f3 = pick(cfg.f3_band_hz, FALLBACK_FORMANTS_HZ[2])
        return f1, f2, f3

    def raw_resonance(self, f2_hz: float, f3_hz: float) -> float:
        cfg = self.cfg
        ref = cfg.reference

        def z(v: float, mean: float, std: float) -> float:
            return (v - mean) / std if std > 0 else 0.0

        zz = cfg.w_f2 * z(f2_hz, ref.f2_mean_hz, ref.f2_std_hz) + cfg.w_f3 * z(f3_hz, ref.f3_mean_hz, ref.f3_std_hz)
        return clamp01((zz + 2.0) / 4.0)

    # ------------- main API -------------

    def estimate(self, frame: np.ndarray, sample_rate: int, f0_hz: Optional[float] = None) -> FormantEstimate:
        env = self.envelope(frame, sample_rate, f0_hz)
        if env is None:
            return NEUTRAL_ESTIMATE

        freqs, power = env
        f1, f2, f3 = self._pick_formants(freqs, power)
        res01 = clamp01(self._res_ema.update(self.raw_resonance(f2, f3)))
        return FormantEstimate(f1, f2, f3, res01)
