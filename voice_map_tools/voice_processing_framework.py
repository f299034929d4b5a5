from __future__ import annotations

"""
voice_processing_framework.py

Batch orchestration for voice processors in the voice_map_tools package.

This module defines:
    - VoiceProcessor       : protocol describing the processor interface
    - process_voice_files(): main orchestration entry point

Audio is loaded with audio_io.load_voice_file by default; a custom loader can
be injected via load_fn.
"""

import logging
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Tuple,
    Union,
    runtime_checkable,
)

import numpy as np
import pandas as pd
from tqdm import tqdm

from voice_map_tools.audio_io import load_voice_file
from voice_map_tools.errors import InputError

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Processor contract
# ----------------------------------------------------------------------


@runtime_checkable
class VoiceProcessor(Protocol):
    """
    Interface for voice processors used by the framework.

    A processor receives a mono float buffer and a parameter dict, and returns:
        - results: scalar metrics (for the main results DataFrame)
        - state  : internal state (frames tables, resolved config, ...)
    """

    @property
    def name(self) -> str:
        """Short identifier used as a namespace prefix in result columns."""
        ...

    def run(
        self,
        audio_data: np.ndarray,
        params: Dict[str, Any],
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        ...


# ----------------------------------------------------------------------
# Helper for namespaced result columns
# ----------------------------------------------------------------------


def _flatten_with_namespace(ns: str, d: Dict[str, Any]) -> Dict[str, Any]:
    """
    Prefix keys in a metrics dict with a processor namespace.

    Examples
    --------
    >>> _flatten_with_namespace("voice", {"male_percent": 25.0, "windows": 8})
    {'voice__male_percent': 25.0, 'voice__windows': 8}
    """
    return {f"{ns}__{k}": v for k, v in d.items()}


# ----------------------------------------------------------------------
# Orchestrator
# ----------------------------------------------------------------------


def process_voice_files(
    *,
    processors: List[VoiceProcessor],
    paths: Iterable[Union[str, Path]],
    params_global: Optional[Dict[str, Any]] = None,
    params_by_processor: Optional[Dict[str, Dict[str, Any]]] = None,
    load_fn: Optional[Callable[..., Tuple[np.ndarray, int]]] = None,
    show_progress: bool = True,
) -> Tuple[pd.DataFrame, Dict[str, pd.DataFrame]]:
    """
    Run one or more VoiceProcessors over a list of recordings.

    Parameters
    ----------
    processors :
        VoiceProcessor implementations, each with a unique `.name`.
    paths :
        Audio files to analyze.
    params_global :
        Parameters shared across processors. "sample_rate" (optional) is the
        rate every file is resampled to; without it files keep their native
        rate and the per-file rate is passed to the processors.
    params_by_processor :
        Optional mapping from processor name to overrides merged on top of
        `params_global`.
    load_fn :
        Optional loader `fn(path, sr=None) -> (samples, sample_rate)`.
        Defaults to audio_io.load_voice_file.

    Returns
    -------
    results_df :
        One row per successfully loaded file: "file_key", "sample_rate",
        "duration_s" and namespaced metrics "<processor>__<metric>".
    states_df_by_proc :
        Mapping from processor name to a DataFrame of per-file state.

    Files that cannot be loaded are skipped with a warning.
    """
    params_global = dict(params_global or {})
    params_by_processor = params_by_processor or {}
    load_fn = load_fn if load_fn is not None else load_voice_file

    paths = [str(p) for p in paths]
    logger.info("received %d voice files", len(paths))

    results_rows: List[Dict[str, Any]] = []
    states_by_processor: Dict[str, List[Dict[str, Any]]] = {p.name: [] for p in processors}

    for file_key in tqdm(paths, disable=not show_progress):
        try:
            audio, sr = load_fn(file_key, sr=params_global.get("sample_rate"))
        except InputError as exc:
            logger.warning("skipping %s: %s", file_key, exc)
            continue

        audio = np.asarray(audio)
        if audio.ndim != 1:
            raise ValueError(f"audio for {file_key} must be 1-D, got shape {audio.shape}")

        row: Dict[str, Any] = {
            "file_key": file_key,
            "sample_rate": sr,
            "duration_s": audio.size / float(sr),
        }

        for proc in processors:
            proc_params = {**params_global, "sample_rate": sr, **params_by_processor.get(proc.name, {})}
            proc_results, proc_state = proc.run(audio, proc_params)

            proc_state = dict(proc_state)
            proc_state["file_key"] = file_key

            row.update(_flatten_with_namespace(proc.name, proc_results))
            states_by_processor[proc.name].append(proc_state)

        results_rows.append(row)

    logger.info("processed %d of %d voice files", len(results_rows), len(paths))

    # ------------------------------------------------------------------
    # Collate results into DataFrames
    # ------------------------------------------------------------------
    results_df = pd.DataFrame(results_rows)
    if not results_df.empty:
        results_df = results_df.sort_values("file_key").reset_index(drop=True)

    states_df_by_proc: Dict[str, pd.DataFrame] = {}
    for name, rows in states_by_processor.items():
        if rows:
            df = pd.DataFrame(rows)
            df = df.sort_values("file_key").reset_index(drop=True)
        else:
            df = pd.DataFrame()
        states_df_by_proc[name] = df

    return results_df, states_df_by_proc


__all__ = [
    "VoiceProcessor",
    "process_voice_files",
]
