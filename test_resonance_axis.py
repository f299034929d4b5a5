import pytest

from voice_map_tools.edge.brightness_mapper import ResonanceAxisConfig
from voice_map_tools.postprocess.resonance_axis import (
    BiasDynamicConfig,
    BrightnessBlender,
    Condition,
    HardFloorConfig,
    HardFloorRule,
    ResonanceAxisPipeline,
    apply_gain,
    apply_hard_floor,
    bias_shift,
    scaled_axis_config,
)


def test_condition_operators():
    m = {"F0": 200.0, "SC": 1500.0}
    assert Condition("F0", ">=", 200.0).holds(m)
    assert Condition("F0", "=>", 200.0).holds(m)
    assert Condition("F0", "<=", 200.0).holds(m)
    assert Condition("F0", "=<", 200.0).holds(m)
    assert not Condition("F0", ">", 200.0).holds(m)
    assert not Condition("F0", "<", 200.0).holds(m)
    assert Condition("F0", "==", 200.0005).holds(m)
    assert not Condition("F0", "==", 200.01).holds(m)


def test_condition_unknown_metric_or_op_fails():
    assert not Condition("HNR", ">=", 0.0).holds({"F0": 1.0})
    assert not Condition("F0", "!=", 0.0).holds({"F0": 1.0})
    assert not Condition("F0", ">=", 0.0).holds({"F0": float("nan")})


def test_blender_alpha_steps():
    bl = BrightnessBlender()
    assert bl.alpha(False) == 0.0
    # fewer than five values: spread is infinite
    assert bl.spread() == float("inf")
    assert bl.alpha(True) == 0.6

    for _ in range(5):
        bl.blend(0.5, 0.5)
    assert bl.spread() == pytest.approx(0.0)
    assert bl.alpha(True) == 0.2

    bl.reset()
    for v in (0.4, 0.5, 0.4, 0.5, 0.4, 0.5):
        bl.blend(v, 0.5)
    assert bl.alpha(True) == 0.45

    bl.reset()
    for v in (0.0, 1.0, 0.0, 1.0, 0.0):
        bl.blend(v, 0.5)
    assert bl.alpha(True) == 0.7


def test_blend_without_brightness_returns_resonance():
    bl = BrightnessBlender()
    assert bl.blend(None, 0.37) == (0.37, 0.0)
    x, a = bl.blend(1.0, 0.5)
    assert a == 0.6
    assert x == pytest.approx(0.8)


def test_gain():
    assert apply_gain(0.6, 1.0) == 0.6
    assert apply_gain(0.6, 2.0) == pytest.approx(0.7)
    assert apply_gain(0.9, 3.0) == 1.0
    assert apply_gain(0.1, 3.0) == 0.0


def test_weight_scaling_in_low_band():
    axis = ResonanceAxisConfig()
    bias = BiasDynamicConfig(enabled=True, f0_low_hz=60.0, f0_high_hz=150.0, scale_vtl_df=0.5)
    scaled = scaled_axis_config(axis, bias, 100.0)
    assert scaled.weights.vtl_inv == pytest.approx(0.05)
    assert scaled.weights.delta_f == pytest.approx(0.025)
    assert scaled.weights.hf_lf == axis.weights.hf_lf
    assert scaled_axis_config(axis, bias, 200.0) is axis
    assert scaled_axis_config(axis, None, 100.0) is axis


def test_bias_shift(make_window):
    bias = BiasDynamicConfig(
        enabled=True,
        y_low_k=8.0,
        y_low_mid=0.3,
        k1=0.1,
        k2=0.1,
        geom_male=(Condition("VTL", ">=", 17.0),),
        geom_male_else=0.0,
    )
    # invSigmoid at the midpoint is 0.5
    assert bias_shift(0.5, 0.3, None, bias) == pytest.approx(0.45)
    assert bias_shift(0.5, 0.3, make_window(vtl_delta_f_cm=18.0), bias) == pytest.approx(0.35)
    assert bias_shift(0.5, 0.3, make_window(vtl_delta_f_cm=15.0), bias) == pytest.approx(0.45)
    assert bias_shift(0.5, 0.3, None, BiasDynamicConfig(enabled=False)) == 0.5


def test_hard_floor(make_window):
    floor = HardFloorConfig(
        enabled=True,
        rules=(
            HardFloorRule((Condition("F0", ">=", 200.0), Condition("SC", ">=", 2000.0)), x_min=0.6),
            HardFloorRule((Condition("EHF_LF", ">=", 1.5),), x_min=0.4),
        ),
    )
    bright = make_window(spectral_centroid_hz=2500.0, ehf_over_elf=1.0)
    assert apply_hard_floor(0.3, 220.0, bright, floor) == 0.6
    assert apply_hard_floor(0.3, 150.0, bright, floor) == 0.3
    assert apply_hard_floor(0.8, 220.0, bright, floor) == 0.8
    assert apply_hard_floor(0.3, 150.0, make_window(ehf_over_elf=2.0), floor) == 0.4
    assert apply_hard_floor(0.3, 220.0, None, floor) == 0.3
    assert apply_hard_floor(0.3, 220.0, bright, HardFloorConfig(enabled=False, rules=floor.rules)) == 0.3


def test_pipeline_passthrough_without_axis(make_window):
    pipe = ResonanceAxisPipeline()
    res = pipe(0.42, 0.5, 150.0, make_window())
    assert res.x01 == pytest.approx(0.42)
    assert res.brightness is None
    assert res.blend_alpha == 0.0


def test_pipeline_blends_brightness(make_window):
    axis = ResonanceAxisConfig(use_brightness_for_x=True)
    pipe = ResonanceAxisPipeline(axis)
    bright = make_window(
        ehf_over_elf=2.0,
        spectral_centroid_hz=2500.0,
        vtl_delta_f_cm=14.0,
        delta_f_hz=1200.0,
        h1_minus_h2_db=12.0,
    )
    res = pipe(0.5, 0.5, 150.0, bright)
    assert res.brightness.composite == pytest.approx(1.0)
    assert res.blend_alpha == 0.6
    assert res.x01 == pytest.approx(0.8)

    # no window yet: brightness unavailable
    assert pipe(0.5, 0.5, 150.0, None).x01 == pytest.approx(0.5)


def test_pipeline_stage_order(make_window):
    axis = ResonanceAxisConfig(use_brightness_for_x=False, gain_x=2.0)
    floor = HardFloorConfig(True, (HardFloorRule((Condition("F0", ">=", 0.0),), x_min=0.9),))
    pipe = ResonanceAxisPipeline(axis, hard_floor=floor)
    # gain first (0.6 -> 0.7), then the floor lifts it
    assert pipe(0.6, 0.5, 150.0, make_window()).x01 == pytest.approx(0.9)
    pipe.reset()
    assert pipe.blender.spread() == float("inf")
