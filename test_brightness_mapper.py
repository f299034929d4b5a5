import numpy as np
import pytest

from voice_map_tools.edge.brightness_mapper import (
    DarkGate,
    NonlinearShaping,
    NonlinearSpec,
    ResonanceAxisConfig,
    ResonanceWeights,
    compute_brightness,
)

SC_ONLY = ResonanceWeights(hf_lf=0.0, sc=1.0, vtl_inv=0.0, delta_f=0.0, h1h2=0.0)


def _bright(make_window):
    return make_window(
        ehf_over_elf=2.0,
        spectral_centroid_hz=2500.0,
        vtl_delta_f_cm=14.0,
        delta_f_hz=1200.0,
        h1_minus_h2_db=12.0,
    )


def _dark(make_window):
    return make_window(
        ehf_over_elf=0.1,
        spectral_centroid_hz=500.0,
        vtl_delta_f_cm=22.0,
        delta_f_hz=700.0,
        h1_minus_h2_db=-3.0,
    )


def test_extremes(make_window):
    cfg = ResonanceAxisConfig()
    assert compute_brightness(cfg, _bright(make_window)).composite == pytest.approx(1.0)
    assert compute_brightness(cfg, _dark(make_window)).composite == pytest.approx(0.0)


def test_composite_is_bounded(make_window):
    rng = np.random.default_rng(3)
    heavy = ResonanceAxisConfig(weights=ResonanceWeights(2.0, 2.0, 2.0, 2.0, 2.0))
    for _ in range(50):
        wf = make_window(
            ehf_over_elf=float(rng.uniform(0, 5)),
            spectral_centroid_hz=float(rng.uniform(0, 5000)),
            vtl_delta_f_cm=float(rng.uniform(5, 30)),
            delta_f_hz=float(rng.uniform(1, 2000)),
            h1_minus_h2_db=float(rng.uniform(-20, 20)),
        )
        for cfg in (ResonanceAxisConfig(), heavy):
            b = compute_brightness(cfg, wf).composite
            assert 0.0 <= b <= 1.0


def test_monotonic_in_each_cue(make_window):
    cfg = ResonanceAxisConfig()
    lo = make_window(ehf_over_elf=0.5, spectral_centroid_hz=1000.0)
    hi = make_window(ehf_over_elf=1.5, spectral_centroid_hz=1000.0)
    assert compute_brightness(cfg, hi).composite > compute_brightness(cfg, lo).composite

    long_tract = make_window(vtl_delta_f_cm=20.0)
    short_tract = make_window(vtl_delta_f_cm=15.0)
    assert compute_brightness(cfg, short_tract).composite > compute_brightness(cfg, long_tract).composite


def test_infinite_ratio_saturates(make_window):
    res = compute_brightness(ResonanceAxisConfig(), make_window(ehf_over_elf=float("inf")))
    assert res.components.hf_lf == 1.0
    log_cfg = ResonanceAxisConfig(hf_lf_log10=True)
    assert compute_brightness(log_cfg, make_window(ehf_over_elf=float("inf"))).components.hf_lf == 1.0


def test_log10_ratio_normalization(make_window):
    cfg = ResonanceAxisConfig(hf_lf_log10=True)
    # geometric midpoint of [0.2, 1.8]
    res = compute_brightness(cfg, make_window(ehf_over_elf=0.6))
    assert res.components.hf_lf == pytest.approx(0.5)


def test_dark_gate_caps_composite(make_window):
    wf = make_window(
        ehf_over_elf=0.4,
        spectral_centroid_hz=900.0,
        vtl_delta_f_cm=14.0,
        delta_f_hz=1200.0,
        h1_minus_h2_db=12.0,
    )
    ungated = compute_brightness(ResonanceAxisConfig(), wf).composite
    assert ungated > 0.3

    gate = DarkGate(hf_lf_max=0.5, sc_max_hz=1000.0, x_max=0.2)
    gated = compute_brightness(ResonanceAxisConfig(dark_gate=gate), wf)
    assert gated.composite == pytest.approx(0.2)

    # bright on one cue: gate does not apply
    brighter = make_window(ehf_over_elf=0.4, spectral_centroid_hz=1500.0)
    assert compute_brightness(ResonanceAxisConfig(dark_gate=gate), brighter).composite == pytest.approx(
        compute_brightness(ResonanceAxisConfig(), brighter).composite
    )


def test_sigmoid_reshape_uses_raw_midpoint(make_window):
    nl = NonlinearShaping(sc_left=NonlinearSpec("sigmoid", k=10.0, mid=1500.0))
    cfg = ResonanceAxisConfig(weights=SC_ONLY, nonlinear=nl)

    at_mid = compute_brightness(cfg, make_window(spectral_centroid_hz=1500.0))
    assert at_mid.composite == pytest.approx(0.5)
    assert at_mid.components.sc == pytest.approx(0.5)

    top = compute_brightness(cfg, make_window(spectral_centroid_hz=2400.0))
    assert top.composite == pytest.approx(1.0 / (1.0 + np.exp(-5.0)))
    assert top.components.sc == pytest.approx(1.0)


def test_inverse_sigmoid_and_unknown_kind(make_window):
    inv = NonlinearShaping(sc_left=NonlinearSpec("inv_sigmoid", k=10.0, mid=1500.0))
    wf = make_window(spectral_centroid_hz=2400.0)
    assert compute_brightness(ResonanceAxisConfig(weights=SC_ONLY, nonlinear=inv), wf).composite < 0.01

    other = NonlinearShaping(sc_left=NonlinearSpec("cubic", k=10.0, mid=1500.0))
    assert compute_brightness(ResonanceAxisConfig(weights=SC_ONLY, nonlinear=other), wf).composite == pytest.approx(1.0)


def test_degenerate_ranges_do_not_blow_up(make_window):
    from voice_map_tools.edge.brightness_mapper import ResonanceRanges

    cfg = ResonanceAxisConfig(ranges=ResonanceRanges(hf_lf_min=1.0, hf_lf_max=1.0, sc_min_hz=2000.0, sc_max_hz=1000.0))
    res = compute_brightness(cfg, make_window())
    assert res.components.hf_lf == 0.0
    assert res.components.sc == 0.0
    assert 0.0 <= res.composite <= 1.0
