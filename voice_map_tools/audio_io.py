from __future__ import annotations

"""
audio_io.py

Audio loading utilities for the voice_map_tools package.

Responsibilities:
    - Converting raw PCM / arrays to normalized float32
    - Forcing mono and (optionally) resampling to a target rate
    - Loading speech recordings from local files
    - Cutting a signal into consecutive analysis frames
"""

import logging
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import librosa
import numpy as np

from voice_map_tools.errors import InputError

logger = logging.getLogger(__name__)

AUDIO_SUFFIXES = (".wav", ".flac", ".ogg", ".mp3", ".m4a", ".aiff", ".aif")


# ----------------------------------------------------------------------
# Converters
# ----------------------------------------------------------------------


def safe_to_float(
    data: np.ndarray | bytes | bytearray | memoryview,
    bytes_per_sample: int = 2,
    signed: bool = True,
) -> np.ndarray:
    """
    Convert raw PCM samples or numeric arrays to float32 audio in the range [-1, 1].

    Parameters
    ----------
    data :
        Raw PCM buffer (bytes / bytearray / memoryview) or a NumPy array
        of dtype int16 or float.
    bytes_per_sample :
        Bytes per PCM sample. Only 2-byte (16-bit) signed PCM is supported.
    signed :
        Whether PCM data is signed. Only signed=True is supported.

    Returns
    -------
    np.ndarray
        1-D float32 array with values in [-1, 1].
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        if bytes_per_sample != 2 or not signed:
            raise ValueError("Only 16-bit signed PCM input is supported.")
        arr = np.frombuffer(data, dtype="<i2")  # little-endian int16
    else:
        arr = np.asarray(data)

    if np.issubdtype(arr.dtype, np.floating):
        out = arr.astype(np.float32, copy=False)
        return np.clip(out, -1.0, 1.0)

    if arr.dtype != np.int16:
        raise ValueError(f"Unsupported dtype {arr.dtype}; expected int16 or float.")

    return arr.astype(np.float32) / np.float32(32768.0)


def to_mono(y: np.ndarray) -> np.ndarray:
    y = np.asarray(y)
    if y.ndim == 2:
        # Support both (channels, samples) and (samples, channels)
        y = y.mean(axis=0) if y.shape[0] < y.shape[1] else y.mean(axis=1)
    return y.reshape(-1)


# ----------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------


def load_voice_file(
    path: Union[str, Path],
    sr: Optional[int] = None,
) -> Tuple[np.ndarray, int]:
    """
    Load a speech recording as mono float32 in [-1, 1].

    Parameters
    ----------
    path :
        Audio file readable by librosa (WAV, FLAC, ...).
    sr :
        Target sample rate; None keeps the file's native rate.

    Returns
    -------
    (samples, sample_rate)

    Raises
    ------
    InputError
        If the file is missing, unreadable or contains no samples.
    """
    path = Path(path)
    if not path.is_file():
        raise InputError(f"audio file not found: {path}")

    try:
        y, file_sr = librosa.load(str(path), sr=None, mono=False)
    except Exception as exc:
        raise InputError(f"cannot read audio file {path}: {exc}") from exc

    y = to_mono(y)
    if y.size == 0 or file_sr <= 0:
        raise InputError(f"audio file is empty: {path}")

    if sr is not None and int(sr) != int(file_sr):
        y = librosa.resample(y.astype(np.float32, copy=False), orig_sr=file_sr, target_sr=int(sr))
        file_sr = int(sr)

    logger.debug("Loaded %s: %d samples @ %d Hz", path, y.size, file_sr)
    return safe_to_float(y), int(file_sr)


def find_voice_files(root: Union[str, Path]) -> List[str]:
    """Recursively list audio files under root (sorted)."""
    root = Path(root)
    if not root.is_dir():
        raise InputError(f"not a directory: {root}")
    return sorted(str(p) for p in root.rglob("*") if p.is_file() and p.suffix.lower() in AUDIO_SUFFIXES)


def iter_frames(samples: np.ndarray, frame_len: int) -> Iterator[np.ndarray]:
    """Yield consecutive non-overlapping frames; the last one may be short."""
    if frame_len < 1:
        raise ValueError("frame_len must be >= 1")
    x = np.asarray(samples).reshape(-1)
    for i in range(0, x.size, frame_len):
        yield x[i : i + frame_len]


__all__ = [
    "safe_to_float",
    "to_mono",
    "load_voice_file",
    "find_voice_files",
    "iter_frames",
]
