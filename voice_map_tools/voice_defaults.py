from __future__ import annotations

"""
voice_defaults.py

Defines:
    - DEFAULT_VOICE_CONFIG: default settings, keyed like the JSON config file
    - VoiceMapConfig      : the single fully-resolved configuration value
    - build_voice_config(): merge overrides onto the defaults and resolve
    - load_voice_config() : read a JSON config file and resolve it

Everything optional is decided here, once. The analysis code only ever sees
a VoiceMapConfig and never re-derives defaults mid-pipeline.
"""

import copy
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from voice_map_tools.errors import ConfigError
from voice_map_tools.edge.brightness_mapper import (
    DarkGate,
    NonlinearShaping,
    NonlinearSpec,
    ResonanceAxisConfig,
    ResonanceRanges,
    ResonanceWeights,
)
from voice_map_tools.edge.classifier import AnchorEllipsePolicy, DiagonalPolicy, StaticPolicy, ZonePolicy
from voice_map_tools.edge.formant_estimator import ReferenceFormantStats
from voice_map_tools.edge.pitch_normalizer import PitchRange
from voice_map_tools.edge.spectral_window_analyzer import (
    BandsConfig,
    F0ZoneConfig,
    FeminineLowRules,
    MasculineHighRules,
    WindowAnalyzerConfig,
)
from voice_map_tools.postprocess.resonance_axis import BiasDynamicConfig, Condition, HardFloorConfig, HardFloorRule

logger = logging.getLogger(__name__)


# -----------------------------------------------------------
# Default Voice Map Parameters
# -----------------------------------------------------------

DEFAULT_VOICE_CONFIG: Dict[str, Any] = {
    # -------------------------------------------------------
    # Spectral band split for EHF/LF and spectral centroid
    # -------------------------------------------------------
    "bands": {"split_hz": 1800.0, "sc_max_hz": 5000.0},

    # -------------------------------------------------------
    # F0 zones gating the two rule sets
    # -------------------------------------------------------
    "f0_zone": {"low_max_hz": 165.0, "high_min_hz": 180.0},

    # -------------------------------------------------------
    # Static classification zones (offsets around 0.5 + bias)
    # -------------------------------------------------------
    "zones": {
        "bias": 0.05,
        "male_max": -0.2,
        "androgynous_low": -0.2,
        "androgynous_high": 0.08,
        "female_min": 0.08,
        "gradient_clip": 0.35,
        "hysteresis_windows": 3,
    },

    # -------------------------------------------------------
    # Rule sets
    # -------------------------------------------------------
    "rules_female_lowF0": {
        "deltaF_min_hz": 1000.0,
        "vtl_max_cm": 16.5,
        "F2_min_hz": 1700.0,
        "H1_H2_min_db": 8.0,
        "EHF_LF_min": 1.1,
        "SC_min_hz": 1800.0,
        "prosody_min_semitones": 10.0,
        "CPP_max_db": 12.0,
        "HNR_max_db": 18.0,
        "need_true_at_least": 5,
    },
    "rules_male_highF0": {
        "deltaF_max_hz": 850.0,
        "vtl_min_cm": 18.0,
        "F2_max_hz": 1500.0,
        "H1_H2_max_db": 5.0,
        "EHF_LF_max": 0.7,
        "SC_max_hz": 1500.0,
        "prosody_max_semitones": 8.0,
        "CPP_min_db": 12.0,
        "HNR_min_db": 20.0,
        "need_true_at_least": 5,
    },

    # -------------------------------------------------------
    # Formant reference statistics for the resonance z-score
    # -------------------------------------------------------
    "reference_formants": {
        "f2_mean_hz": 1500.0,
        "f2_std_hz": 350.0,
        "f3_mean_hz": 2500.0,
        "f3_std_hz": 350.0,
    },

    # Optional sections (absent by default):
    #   "score", "zones_diagonal", "ui_lines", "anchors", "resonance_axis",
    #   "pitch_range", "voice_stats", "phoneme_stats"
}

REQUIRED_SECTIONS: Tuple[str, ...] = (
    "bands",
    "f0_zone",
    "rules_female_lowF0",
    "rules_male_highF0",
)


class ConfigSource(str, Enum):
    PROVIDED = "provided"
    DEFAULT = "default"


@dataclass(frozen=True)
class VoiceMapConfig:
    window: WindowAnalyzerConfig
    zone_policy: ZonePolicy
    hysteresis_windows: int = 3
    bias: float = 0.05
    gradient_clip: float = 0.35
    pitch_range: PitchRange = field(default_factory=PitchRange)
    reference_formants: ReferenceFormantStats = field(default_factory=ReferenceFormantStats)
    resonance_axis: Optional[ResonanceAxisConfig] = None
    bias_dynamic: Optional[BiasDynamicConfig] = None
    hard_floor: Optional[HardFloorConfig] = None
    sources: Mapping[str, ConfigSource] = field(default_factory=dict, compare=False, hash=False)


# -----------------------------------------------------------
# Section parsers
# -----------------------------------------------------------


def _num(section: Mapping[str, Any], key: str, where: str) -> float:
    if key not in section:
        raise ConfigError(f"config section '{where}' is missing '{key}'")
    try:
        v = float(section[key])
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"config '{where}.{key}' must be a number, got {section[key]!r}") from exc
    if np.isnan(v):
        raise ConfigError(f"config '{where}.{key}' must not be NaN")
    return v


def _opt_num(section: Mapping[str, Any], key: str, where: str, default: float) -> float:
    return _num(section, key, where) if key in section else float(default)


def _section(params: Mapping[str, Any], name: str) -> Optional[Mapping[str, Any]]:
    sec = params.get(name)
    if sec is None:
        return None
    if not isinstance(sec, Mapping):
        raise ConfigError(f"config section '{name}' must be an object, got {type(sec).__name__}")
    return sec


def _conditions(items: Any, where: str) -> Tuple[Condition, ...]:
    if items is None:
        return ()
    out = []
    for i, c in enumerate(items):
        try:
            out.append(Condition(metric=str(c["metric"]), op=str(c["op"]), value=float(c["value"])))
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"config '{where}[{i}]' must have metric/op/value") from exc
    return tuple(out)


def _female_rules(o: Mapping[str, Any]) -> FeminineLowRules:
    w = "rules_female_lowF0"
    return FeminineLowRules(
        delta_f_min_hz=_num(o, "deltaF_min_hz", w),
        vtl_max_cm=_num(o, "vtl_max_cm", w),
        f2_min_hz=_num(o, "F2_min_hz", w),
        h1h2_min_db=_num(o, "H1_H2_min_db", w),
        ehf_lf_min=_num(o, "EHF_LF_min", w),
        sc_min_hz=_num(o, "SC_min_hz", w),
        prosody_min_st=_num(o, "prosody_min_semitones", w),
        cpp_max_db=_num(o, "CPP_max_db", w),
        hnr_max_db=_num(o, "HNR_max_db", w),
        need_true_at_least=int(_num(o, "need_true_at_least", w)),
    )


def _male_rules(o: Mapping[str, Any]) -> MasculineHighRules:
    w = "rules_male_highF0"
    return MasculineHighRules(
        delta_f_max_hz=_num(o, "deltaF_max_hz", w),
        vtl_min_cm=_num(o, "vtl_min_cm", w),
        f2_max_hz=_num(o, "F2_max_hz", w),
        h1h2_max_db=_num(o, "H1_H2_max_db", w),
        ehf_lf_max=_num(o, "EHF_LF_max", w),
        sc_max_hz=_num(o, "SC_max_hz", w),
        prosody_max_st=_num(o, "prosody_max_semitones", w),
        cpp_min_db=_num(o, "CPP_min_db", w),
        hnr_min_db=_num(o, "HNR_min_db", w),
        need_true_at_least=int(_num(o, "need_true_at_least", w)),
    )


def _nonlinear(o: Optional[Mapping[str, Any]]) -> Optional[NonlinearShaping]:
    if o is None:
        return None

    def spec(name: str) -> Optional[NonlinearSpec]:
        s = o.get(name)
        if s is None:
            return None
        where = f"resonance_axis.nonlinear.{name}"
        if "type" not in s:
            raise ConfigError(f"config section '{where}' is missing 'type'")
        return NonlinearSpec(kind=str(s["type"]), k=_num(s, "k", where), mid=_num(s, "mid", where))

    return NonlinearShaping(
        hf_lf_left=spec("hf_lf_left"),
        sc_left=spec("sc_left"),
        h1h2_left=spec("h1h2_left"),
        vtl_right=spec("vtl_right"),
        delta_f_right=spec("dF_right"),
    )


def _resonance_axis(o: Mapping[str, Any]) -> ResonanceAxisConfig:
    w = _section(o, "weights")
    r = _section(o, "ranges")
    if w is None or r is None:
        raise ConfigError("config section 'resonance_axis' needs 'weights' and 'ranges'")
    ww, rr = "resonance_axis.weights", "resonance_axis.ranges"

    dark_gate = None
    dg = (_section(o, "overrides") or {}).get("dark_gate")
    if dg is not None:
        where = "resonance_axis.overrides.dark_gate"
        dark_gate = DarkGate(
            hf_lf_max=_num(dg, "hf_lf_max", where),
            sc_max_hz=_num(dg, "sc_max_hz", where),
            x_max=_num(dg, "x_max", where),
        )
        if not (0.0 <= dark_gate.x_max <= 1.0):
            raise ConfigError(f"config '{where}.x_max' must be in [0, 1]")

    return ResonanceAxisConfig(
        use_brightness_for_x=bool(o.get("use_brightness_for_x", False)),
        weights=ResonanceWeights(
            hf_lf=_num(w, "hf_lf", ww),
            sc=_num(w, "sc", ww),
            vtl_inv=_num(w, "vtl_inv", ww),
            delta_f=_num(w, "deltaF", ww),
            h1h2=_num(w, "h1_h2", ww),
        ),
        ranges=ResonanceRanges(
            hf_lf_min=_num(r, "hf_lf_min", rr),
            hf_lf_max=_num(r, "hf_lf_max", rr),
            sc_min_hz=_num(r, "sc_min_hz", rr),
            sc_max_hz=_num(r, "sc_max_hz", rr),
            vtl_min_cm=_num(r, "vtl_min_cm", rr),
            vtl_max_cm=_num(r, "vtl_max_cm", rr),
            delta_f_min_hz=_num(r, "deltaF_min_hz", rr),
            delta_f_max_hz=_num(r, "deltaF_max_hz", rr),
            h1h2_min_db=_num(r, "h1h2_min_db", rr),
            h1h2_max_db=_num(r, "h1h2_max_db", rr),
        ),
        hf_lf_log10=bool(o.get("hf_lf_log10", False)),
        nonlinear=_nonlinear(_section(o, "nonlinear")),
        dark_gate=dark_gate,
        gain_x=_opt_num(o, "gain_x", "resonance_axis", 1.0),
    )


def _hard_floor(o: Optional[Mapping[str, Any]]) -> Optional[HardFloorConfig]:
    if o is None:
        return None
    rules = []
    for i, rule in enumerate(o.get("x_min_when") or []):
        where = f"resonance_axis.hard_floor.x_min_when[{i}]"
        rules.append(
            HardFloorRule(
                conditions=_conditions(rule.get("all"), f"{where}.all"),
                x_min=_opt_num(rule, "x_min", where, 0.0),
            )
        )
    return HardFloorConfig(enabled=bool(o.get("enabled", False)), rules=tuple(rules))


def _bias_dynamic(o: Optional[Mapping[str, Any]]) -> Optional[BiasDynamicConfig]:
    if o is None:
        return None
    w = "score.bias_dynamic"
    p = o.get("params") or {}
    y_low = p.get("y_low") or {}
    gm = p.get("geom_male") or {}
    return BiasDynamicConfig(
        enabled=bool(o.get("enabled", False)),
        f0_low_hz=_opt_num(o, "f0_low_hz", w, 60.0),
        f0_high_hz=_opt_num(o, "f0_high_hz", w, 150.0),
        scale_vtl_df=_opt_num(o, "scale_vtl_dF", w, 0.5),
        y_low_k=_opt_num(y_low, "k", f"{w}.params.y_low", 8.0),
        y_low_mid=_opt_num(y_low, "mid", f"{w}.params.y_low", 0.30),
        k1=_opt_num(p, "k1", f"{w}.params", 0.10),
        k2=_opt_num(p, "k2", f"{w}.params", 0.10),
        geom_male=_conditions(gm.get("all"), f"{w}.params.geom_male.all"),
        geom_male_else=_opt_num(gm, "else", f"{w}.params.geom_male", 0.0),
    )


def _anchors(o: Mapping[str, Any]) -> AnchorEllipsePolicy:
    male = _section(o, "male")
    female = _section(o, "female")
    if male is None or female is None:
        raise ConfigError("config section 'anchors' needs 'male' and 'female'")
    rx = o.get("rx")
    ry = o.get("ry")

    def radius(side: Mapping[str, Any], key: str, shared: Any, where: str) -> float:
        if key in side:
            return _num(side, key, where)
        if shared is None:
            raise ConfigError(f"config section '{where}' is missing '{key}' (and no shared anchors.{key})")
        return float(shared)

    return AnchorEllipsePolicy(
        male_x=_num(male, "x", "anchors.male"),
        male_y=_num(male, "y", "anchors.male"),
        female_x=_num(female, "x", "anchors.female"),
        female_y=_num(female, "y", "anchors.female"),
        male_rx=radius(male, "rx", rx, "anchors.male"),
        male_ry=radius(male, "ry", ry, "anchors.male"),
        female_rx=radius(female, "rx", rx, "anchors.female"),
        female_ry=radius(female, "ry", ry, "anchors.female"),
        androgynous_ratio=_opt_num(o, "androgynous_ratio", "anchors", 0.7),
    )


def resolve_zone_policy(params: Mapping[str, Any], bias: float) -> ZonePolicy:
    """Pick the zone policy once: anchors > zones_diagonal > ui_lines > static zones."""
    anchors = _section(params, "anchors")
    if anchors is not None:
        return _anchors(anchors)

    diag = _section(params, "zones_diagonal")
    if diag is not None:
        w = "zones_diagonal"
        return DiagonalPolicy(
            bias=bias,
            male_base=_num(diag, "male_max_base", w),
            male_slope=_num(diag, "male_max_slope", w),
            andro_high_base=_num(diag, "andro_high_base", w),
            andro_high_slope=_num(diag, "andro_high_slope", w),
        )

    ui = _section(params, "ui_lines")
    if ui is not None:
        w = "ui_lines"
        return DiagonalPolicy(
            bias=_opt_num(ui, "bias", w, bias),
            male_base=_num(ui, "male_base", w),
            male_slope=_num(ui, "male_slope", w),
            andro_high_base=_num(ui, "andro_high_base", w),
            andro_high_slope=_num(ui, "andro_high_slope", w),
        )

    zones = _section(params, "zones") or {}
    return StaticPolicy(
        bias=bias,
        male_max=_num(zones, "male_max", "zones"),
        female_min=_num(zones, "female_min", "zones"),
    )


def resolve_pitch_range(params: Mapping[str, Any]) -> PitchRange:
    """
    Pitch normalization range:
    voice_stats > pitch_range > zones_diagonal y_norm > f0_samples_hz percentiles > 85-255 Hz.
    """
    stats = _section(params, "voice_stats")
    if stats is not None:
        f = _section(stats, "female") or {}
        m = _section(stats, "male") or {}
        return PitchRange.from_group_stats(
            _num(f, "mean_hz", "voice_stats.female"),
            _num(f, "std_hz", "voice_stats.female"),
            _num(m, "mean_hz", "voice_stats.male"),
            _num(m, "std_hz", "voice_stats.male"),
        )

    pr = _section(params, "pitch_range")
    if pr is not None:
        mn = _num(pr, "min_hz", "pitch_range")
        mx = _num(pr, "max_hz", "pitch_range")
        if mx > mn:
            return PitchRange.resolve(mn, mx)
        logger.warning("Ignoring pitch_range with max_hz <= min_hz: %.1f-%.1f", mn, mx)

    diag = _section(params, "zones_diagonal")
    if diag is not None and "y_norm_f0_min_hz" in diag and "y_norm_f0_max_hz" in diag:
        return PitchRange.resolve(
            _num(diag, "y_norm_f0_min_hz", "zones_diagonal"),
            _num(diag, "y_norm_f0_max_hz", "zones_diagonal"),
        )

    samples = params.get("f0_samples_hz")
    if samples is not None:
        try:
            from_samples = PitchRange.from_samples(float(v) for v in samples)
        except (TypeError, ValueError) as exc:
            raise ConfigError("config 'f0_samples_hz' must be a list of numbers") from exc
        if from_samples is not None:
            return from_samples
        logger.warning("Ignoring f0_samples_hz with fewer than 10 usable values")

    return PitchRange()


def _reference_formants(params: Mapping[str, Any]) -> ReferenceFormantStats:
    table = _section(params, "phoneme_stats")
    if table is not None:
        try:
            return ReferenceFormantStats.from_phoneme_table(table)
        except (KeyError, TypeError, ValueError, IndexError) as exc:
            raise ConfigError("config section 'phoneme_stats' has malformed entries") from exc
    o = _section(params, "reference_formants") or {}
    w = "reference_formants"
    return ReferenceFormantStats(
        f2_mean_hz=_num(o, "f2_mean_hz", w),
        f2_std_hz=_num(o, "f2_std_hz", w),
        f3_mean_hz=_num(o, "f3_mean_hz", w),
        f3_std_hz=_num(o, "f3_std_hz", w),
    )


# -----------------------------------------------------------
# Builders
# -----------------------------------------------------------


def build_voice_config(
    params: Optional[Mapping[str, Any]] = None,
    strict: bool = False,
) -> VoiceMapConfig:
    """
    Merge config overrides + defaults into a VoiceMapConfig instance.

    Priority:
        1. params[section][key]  (overrides)
        2. DEFAULT_VOICE_CONFIG[section][key]

    With strict=True the REQUIRED_SECTIONS must be present in params
    (a real config file must carry them); otherwise ConfigError is raised.

    Returns:
        VoiceMapConfig
    """
    params = dict(params or {})

    if strict:
        missing = [s for s in REQUIRED_SECTIONS if s not in params]
        if missing:
            raise ConfigError(f"config missing required sections: {missing}")

    # 1) merge caller overrides on top of defaults, section by section
    merged: Dict[str, Any] = copy.deepcopy(DEFAULT_VOICE_CONFIG)
    sources: Dict[str, ConfigSource] = {}
    for name, value in params.items():
        if name in merged and isinstance(merged[name], dict) and isinstance(value, Mapping):
            merged[name] = {**merged[name], **value}
        else:
            merged[name] = value
    for name in set(DEFAULT_VOICE_CONFIG) | set(params):
        sources[name] = ConfigSource.PROVIDED if name in params else ConfigSource.DEFAULT
        if sources[name] is ConfigSource.DEFAULT:
            logger.debug("Config section '%s' not provided; using defaults", name)

    bands = _section(merged, "bands")
    f0_zone = _section(merged, "f0_zone")
    zones = _section(merged, "zones") or {}
    score = _section(merged, "score")

    # 2) score overrides zones for bias / clip / hysteresis
    score_or_zones = score if score is not None else {}
    bias = _opt_num(score_or_zones, "bias", "score", _num(zones, "bias", "zones"))
    gradient_clip = _opt_num(score_or_zones, "gradient_clip", "score", _num(zones, "gradient_clip", "zones"))
    hysteresis = int(
        _opt_num(score_or_zones, "hysteresis_windows", "score", _num(zones, "hysteresis_windows", "zones"))
    )
    if hysteresis < 1:
        raise ConfigError("config 'hysteresis_windows' must be >= 1")

    pitch_range = resolve_pitch_range(merged)

    window = WindowAnalyzerConfig(
        bands=BandsConfig(
            split_hz=_num(bands, "split_hz", "bands"),
            sc_max_hz=_num(bands, "sc_max_hz", "bands"),
        ),
        f0_zone=F0ZoneConfig(
            low_max_hz=_num(f0_zone, "low_max_hz", "f0_zone"),
            high_min_hz=_num(f0_zone, "high_min_hz", "f0_zone"),
        ),
        feminine_low=_female_rules(_section(merged, "rules_female_lowF0")),
        masculine_high=_male_rules(_section(merged, "rules_male_highF0")),
        pitch_range=pitch_range,
    )

    axis_sec = _section(merged, "resonance_axis")
    resonance_axis = _resonance_axis(axis_sec) if axis_sec is not None else None
    hard_floor = _hard_floor(_section(axis_sec, "hard_floor")) if axis_sec is not None else None
    bias_dynamic = _bias_dynamic(_section(score, "bias_dynamic")) if score is not None else None

    return VoiceMapConfig(
        window=window,
        zone_policy=resolve_zone_policy(merged, bias),
        hysteresis_windows=hysteresis,
        bias=bias,
        gradient_clip=gradient_clip,
        pitch_range=pitch_range,
        reference_formants=_reference_formants(merged),
        resonance_axis=resonance_axis,
        bias_dynamic=bias_dynamic,
        hard_floor=hard_floor,
        sources=sources,
    )


def read_voice_dataset(path: Union[str, Path]) -> List[float]:
    """
    Pooled F0 samples (Hz) from a labelled voice dataset CSV.

    The table needs a 'meanfun' column (mean fundamental, kHz) and a 'label'
    column; only rows labelled male or female are kept.
    """
    try:
        df = pd.read_csv(path)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"cannot read voice dataset {path}: {exc}") from exc

    cols = {str(c).strip().lower(): c for c in df.columns}
    if "meanfun" not in cols or "label" not in cols:
        raise ConfigError(f"voice dataset {path} needs 'meanfun' and 'label' columns")

    labels = df[cols["label"]].astype(str).str.strip().str.lower()
    meanfun = pd.to_numeric(df[cols["meanfun"]], errors="coerce")
    keep = labels.isin(["male", "female"]) & meanfun.notna()
    return (meanfun[keep] * 1000.0).astype(float).tolist()


def load_voice_config(
    path: Optional[Union[str, Path]] = None,
    dataset_path: Optional[Union[str, Path]] = None,
) -> VoiceMapConfig:
    """
    Load a JSON config file and resolve it (strict: required sections must be present).

    path=None returns the defaults. dataset_path points at a labelled voice
    dataset whose F0 percentiles set the pitch range when the config does not.
    """
    extra: Dict[str, Any] = {}
    if dataset_path is not None:
        extra["f0_samples_hz"] = read_voice_dataset(dataset_path)
        logger.info("Read %d F0 samples from %s", len(extra["f0_samples_hz"]), dataset_path)

    if path is None:
        return build_voice_config(extra)

    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            params = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc

    if not isinstance(params, Mapping):
        raise ConfigError(f"config file {path} must contain a JSON object")

    logger.info("Loaded voice config from %s", path)
    return build_voice_config({**extra, **params}, strict=True)


__all__ = [
    "DEFAULT_VOICE_CONFIG",
    "REQUIRED_SECTIONS",
    "ConfigSource",
    "VoiceMapConfig",
    "build_voice_config",
    "load_voice_config",
    "read_voice_dataset",
    "resolve_pitch_range",
    "resolve_zone_policy",
]
