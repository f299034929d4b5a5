from __future__ import annotations

"""
processors.py

Concrete processor implementations for the voice processing framework.

Exposes:
    - BaseProcessor     : convenience base class (validation, timing)
    - VoiceMapProcessor : offline voice-map analysis of one recording

All processors are structurally compatible with the VoiceProcessor protocol
defined in voice_processing_framework.py (name + run(...) signature).
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Tuple

import time
import numpy as np
import pandas as pd

from voice_map_tools.postprocess.summary import summarize_zones
from voice_map_tools.voice_analysis import analyze_signal
from voice_map_tools.voice_defaults import VoiceMapConfig, build_voice_config, load_voice_config


# ----------------------------------------------------------------------
# Base processor with shared helpers
# ----------------------------------------------------------------------


@dataclass
class BaseProcessor:
    """
    Base class for voice processors.

    Provides:
        - name          : short identifier for namespacing (e.g. "voice")
        - _validate_audio: basic sanity checks on the input buffer
        - _with_timing  : measure runtime of the wrapped function

    Concrete processors inherit from this and implement .run().
    """

    name: str

    def _validate_audio(self, audio_data: np.ndarray, params: Dict[str, Any]) -> None:
        """
        Perform basic validation on the input audio buffer.

        Checks:
            - audio_data is a NumPy array
            - audio_data is 1-D (mono)
            - if sample_rate and check_duration are present in params,
              length is at least sample_rate * check_duration
        """
        if not isinstance(audio_data, np.ndarray):
            raise TypeError(f"audio_data must be a NumPy array, got {type(audio_data)}")

        if audio_data.ndim != 1:
            raise ValueError(f"audio_data must be 1-D, got shape {audio_data.shape}")

        sr = params.get("sample_rate")
        dur = params.get("check_duration")
        if sr is not None and dur is not None:
            min_len = int(sr * dur)
            if audio_data.size < min_len:
                raise ValueError(
                    f"audio_data too short: {audio_data.size} < required {min_len} samples"
                )

    def _with_timing(self, func: Callable[..., Any], *args, **kwargs) -> Tuple[Any, float]:
        """
        Execute fn(*args, **kwargs) and return (result, elapsed_time_seconds).
        """
        t0 = time.perf_counter()
        result = func(*args, **kwargs)
        dt = time.perf_counter() - t0
        return result, dt


def resolve_config(params: Dict[str, Any]) -> VoiceMapConfig:
    """
    Pick the voice config from processor params.

    Accepted keys (first match wins):
        - "voice_config"      : a resolved VoiceMapConfig
        - "voice_config_path" : JSON file, loaded strictly; an optional
                                "voice_dataset_path" CSV supplies F0 samples
        - "voice_params"      : dict of overrides merged onto the defaults
    """
    cfg = params.get("voice_config")
    if isinstance(cfg, VoiceMapConfig):
        return cfg
    path = params.get("voice_config_path")
    if path is not None:
        return load_voice_config(path, params.get("voice_dataset_path"))
    return build_voice_config(params.get("voice_params"))


# ----------------------------------------------------------------------
# VoiceMapProcessor: adapter over analyze_signal
# ----------------------------------------------------------------------


@dataclass
class VoiceMapProcessor(BaseProcessor):
    """
    Adapter for the offline voice-map analysis.

    Expected function signature:
        fn(audio_data: np.ndarray, sample_rate: int, cfg: VoiceMapConfig) -> pd.DataFrame

    The processor returns:
        - results: zone percentages, window count, median F0, latency
          (namespaced later as voice__*)
        - state  : the per-window frames table and the resolved config
    """

    name: str = "voice"
    fn: Callable[..., pd.DataFrame] = field(default=analyze_signal)

    def run(
        self,
        audio_data: np.ndarray,
        params: Dict[str, Any],
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        # Validate input buffer
        self._validate_audio(audio_data, params)
        if "sample_rate" not in params:
            raise KeyError("params must contain 'sample_rate'.")

        cfg = resolve_config(params)

        # Call underlying analysis with timing
        frames, latency = self._with_timing(self.fn, audio_data, int(params["sample_rate"]), cfg)

        results: Dict[str, Any] = dict(summarize_zones(frames))
        for k, v in summarize_zones(frames, "stable_zone").items():
            results[f"stable_{k}"] = v
        results["windows"] = int(len(frames))
        results["median_f0_hz"] = float(frames["F0"].median()) if len(frames) else 0.0
        results["latency_s"] = latency

        state_out: Dict[str, Any] = {
            "frames": frames,
            "config": cfg,
            "processor": self.name,
            "latency_s": latency,
        }
        return results, state_out


def has_processor(processors, name: str) -> bool:
    """
    Check whether a processor with a given name exists in a list of processors.
    """
    return any(p.name == name for p in processors)


__all__ = [
    "BaseProcessor",
    "VoiceMapProcessor",
    "has_processor",
    "resolve_config",
]
