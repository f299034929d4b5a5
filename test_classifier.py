import pytest

from voice_map_tools.edge.classifier import (
    AnchorEllipsePolicy,
    Category,
    DiagonalPolicy,
    HysteresisClassifier,
    StaticPolicy,
    classify,
)

ANCHORS = AnchorEllipsePolicy(
    male_x=0.3,
    male_y=0.2,
    female_x=0.7,
    female_y=0.8,
    male_rx=0.2,
    male_ry=0.2,
    female_rx=0.2,
    female_ry=0.2,
)


def test_static_policy_scenario():
    # center 0.55, male boundary 0.35, female boundary 0.63
    policy = StaticPolicy(bias=0.05, male_max=-0.2, female_min=0.08)
    assert classify(0.7, 0.5, policy) is Category.FEMALE
    assert classify(0.5, 0.5, policy) is Category.ANDROGYNOUS
    assert classify(0.35, 0.5, policy) is Category.MALE
    assert classify(0.63, 0.5, policy) is Category.ANDROGYNOUS
    # high pitch, bright resonance
    assert classify(0.95, 0.9, policy) is Category.FEMALE
    assert classify(0.95, 0.9, StaticPolicy()) is Category.FEMALE


def test_diagonal_policy_boundaries_move_with_pitch():
    policy = DiagonalPolicy(bias=0.0, male_base=-0.1, male_slope=0.1, andro_high_base=0.1, andro_high_slope=0.1)
    assert policy.boundaries(1.0) == pytest.approx((0.4, 0.6))
    assert policy.boundaries(0.0) == pytest.approx((0.5, 0.7))
    # the same x is androgynous at high pitch, male at low pitch
    assert policy.classify(0.45, 1.0) is Category.ANDROGYNOUS
    assert policy.classify(0.45, 0.0) is Category.MALE
    assert policy.classify(0.75, 0.0) is Category.FEMALE


def test_anchor_policy_nearest_and_androgynous():
    assert ANCHORS.classify(0.3, 0.2) is Category.MALE
    assert ANCHORS.classify(0.7, 0.8) is Category.FEMALE
    assert ANCHORS.classify(0.35, 0.25) is Category.MALE
    # halfway between the anchors both distances match
    assert ANCHORS.classify(0.5, 0.5) is Category.ANDROGYNOUS


def test_anchor_policy_radius_scaling():
    wide_female = AnchorEllipsePolicy(0.3, 0.5, 0.7, 0.5, 0.05, 0.2, 0.5, 0.2)
    # geometrically closer to male, but the female ellipse is much wider
    assert wide_female.classify(0.45, 0.5) is Category.FEMALE


def test_policy_kinds_are_distinct():
    kinds = {ANCHORS.kind, DiagonalPolicy(0, 0, 0, 0, 0).kind, StaticPolicy().kind}
    assert kinds == {"anchor_ellipse", "diagonal", "static"}


def test_hysteresis_majority():
    hc = HysteresisClassifier(StaticPolicy(), window=3)
    seq = [Category.MALE, Category.MALE, Category.FEMALE, Category.MALE, Category.MALE]
    stable = [hc.push(lab) for lab in seq]
    assert stable[-1] is Category.MALE
    assert stable[2] is Category.MALE
    assert len(hc.recent) == 3


def test_hysteresis_tie_goes_to_latest():
    hc = HysteresisClassifier(StaticPolicy(), window=2)
    hc.push(Category.MALE)
    assert hc.push(Category.FEMALE) is Category.FEMALE
    hc3 = HysteresisClassifier(StaticPolicy(), window=3)
    for lab in (Category.MALE, Category.FEMALE, Category.ANDROGYNOUS):
        out = hc3.push(lab)
    assert out is Category.ANDROGYNOUS


def test_hysteresis_classify_and_reset():
    hc = HysteresisClassifier(StaticPolicy(), window=3)
    hc.classify(0.9, 0.5)
    hc.classify(0.9, 0.5)
    res = hc.classify(0.1, 0.5)
    assert res.raw is Category.MALE
    assert res.stable is Category.FEMALE
    hc.reset()
    assert hc.recent == ()
    assert hc.classify(0.1, 0.5).stable is Category.MALE


def test_hysteresis_window_must_be_positive():
    with pytest.raises(ValueError):
        HysteresisClassifier(StaticPolicy(), window=0)


def test_category_values():
    assert [c.value for c in Category] == ["male", "androgynous", "female"]
    assert Category("female") is Category.FEMALE
