import pytest

from voice_map_tools.edge.pitch_normalizer import PitchNormalizer, PitchRange, pitch_score


def test_default_range():
    pr = PitchRange()
    assert (pr.min_hz, pr.max_hz) == (85.0, 255.0)
    assert pitch_score(85.0, pr) == 0.0
    assert pitch_score(255.0, pr) == 1.0
    assert pitch_score(170.0, pr) == pytest.approx(0.5)


def test_score_is_clamped():
    pr = PitchRange()
    assert pitch_score(20.0, pr) == 0.0
    assert pitch_score(600.0, pr) == 1.0
    assert pitch_score(float("nan"), pr) == 0.0


def test_resolve_guards():
    assert PitchRange.resolve() == PitchRange()
    pr = PitchRange.resolve(2.0, 5.0)
    assert pr.min_hz == 10.0
    assert pr.max_hz == 11.0


def test_from_group_stats():
    pr = PitchRange.from_group_stats(210.0, 25.0, 120.0, 20.0)
    assert pr == PitchRange(80.0, 260.0)

    clipped = PitchRange.from_group_stats(400.0, 100.0, 50.0, 20.0)
    assert clipped.min_hz == 40.0
    assert clipped.max_hz == 500.0


def test_from_samples():
    assert PitchRange.from_samples([100.0] * 9) is None
    samples = [100.0 + i for i in range(101)]
    pr = PitchRange.from_samples(samples)
    assert pr.min_hz == pytest.approx(105.0)
    assert pr.max_hz == pytest.approx(195.0)


def test_normalizer_uses_its_range():
    narrow = PitchNormalizer(PitchRange(100.0, 200.0))
    wide = PitchNormalizer()
    assert narrow.score(150.0) == pytest.approx(0.5)
    assert wide.score(150.0) != narrow.score(150.0)
    assert narrow.mean_score([100.0, 200.0]) == pytest.approx(0.5)
    assert narrow.mean_score([]) == 0.0
