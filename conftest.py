import numpy as np
import pytest

from voice_map_tools.edge.spectral_window_analyzer import WindowDecision, WindowFeatures


def _sine(freq_hz, sr, n, amp=0.5, harmonics=None):
    t = np.arange(n) / sr
    x = amp * np.sin(2 * np.pi * freq_hz * t)
    for k, a in (harmonics or {}).items():
        x = x + amp * a * np.sin(2 * np.pi * freq_hz * k * t)
    return x


@pytest.fixture
def sine():
    """sine(freq_hz, sr, n, amp=0.5, harmonics={k: relative_amp})"""
    return _sine


@pytest.fixture
def make_window():
    """Build a WindowFeatures with neutral values, overridable by keyword."""

    def _make(**overrides):
        base = dict(
            f0_track=(),
            f0_hz=150.0,
            f1_hz=500.0,
            f2_hz=1500.0,
            f3_hz=2500.0,
            delta_f_hz=1000.0,
            vtl_delta_f_cm=17.15,
            vtl_formant_mean_cm=17.15,
            h1_minus_h2_db=6.0,
            ehf_over_elf=1.0,
            spectral_centroid_hz=1500.0,
            prosody_range_st=0.0,
            mean_pitch01=0.5,
            mean_resonance01=0.5,
            decision=WindowDecision(0, 0, False, False),
        )
        base.update(overrides)
        return WindowFeatures(**base)

    return _make
