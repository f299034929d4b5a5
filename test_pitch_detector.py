import numpy as np
import pytest

from voice_map_tools.edge.pitch_detector import UNVOICED, PitchDetector, PitchDetectorConfig


def test_sine_150hz_at_44k(sine):
    pe = PitchDetector().detect(sine(150.0, 44100, 2048), 44100)
    assert pe.f0_hz == pytest.approx(150.0, abs=2.0)
    assert pe.confidence > 0.8
    assert pe.voiced


def test_hann_windowed_sine_keeps_pitch(sine):
    x = sine(220.0, 44100, 2048) * np.hanning(2048)
    pe = PitchDetector().detect(x, 44100)
    assert pe.f0_hz == pytest.approx(220.0, abs=3.0)
    assert pe.confidence > 0.45


def test_silence_is_unvoiced():
    assert PitchDetector().detect(np.zeros(2048), 44100) == UNVOICED


def test_frame_shorter_than_min_lag_is_unvoiced(sine):
    # min lag at 44.1 kHz is 88 samples
    assert PitchDetector().detect(sine(300.0, 44100, 64), 44100) == UNVOICED


def test_lag_range():
    assert PitchDetector().lag_range(44100) == (88, 735)
    assert PitchDetector(PitchDetectorConfig(fmin_hz=100.0, fmax_hz=400.0)).lag_range(16000) == (40, 160)


def test_confidence_is_bounded():
    rng = np.random.default_rng(0)
    pe = PitchDetector().detect(rng.standard_normal(2048), 16000)
    assert 0.0 <= pe.confidence <= 1.0


def test_low_voice_keeps_confidence(sine):
    # one 70 Hz period is 630 lags, most of a 2048-sample frame
    x = sine(70.0, 44100, 2048, harmonics={2: 0.5, 3: 0.25}) * np.hanning(2048)
    pe = PitchDetector().detect(x, 44100)
    assert pe.f0_hz == pytest.approx(70.0, abs=5.0)
    assert pe.confidence > 0.6


def test_shortest_period_wins_over_its_multiple(sine):
    # 200 Hz peaks at lags ~220 and ~441, both inside the search range
    pe = PitchDetector().detect(sine(200.0, 44100, 2048), 44100)
    assert pe.f0_hz == pytest.approx(200.0, abs=3.0)
