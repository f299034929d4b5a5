# summary.py
import numpy as np
import pandas as pd
from typing import Dict

from voice_map_tools.edge.classifier import Category


def summarize_zones(frames_df: pd.DataFrame, column: str = "zone") -> Dict[str, float]:
    """
    Percentage of windows per zone. An empty table gives zeros.
    """
    total = max(len(frames_df), 1)
    counts = frames_df[column].value_counts() if column in frames_df else pd.Series(dtype=np.int64)
    return {
        f"{cat.value}_percent": 100.0 * float(counts.get(cat.value, 0)) / total
        for cat in (Category.FEMALE, Category.ANDROGYNOUS, Category.MALE)
    }


def postprocess_voice(
    results_df: pd.DataFrame,
    ns: str = "voice",
) -> pd.DataFrame:
    """
    Per-file zone summary from the batch results table.
    """
    if results_df.empty:
        return pd.DataFrame(
            columns=[
                "file_key",
                "female_percent",
                "androgynous_percent",
                "male_percent",
                "windows",
            ]
        )

    out = pd.DataFrame(
        {
            "file_key": results_df["file_key"],
            "female_percent": results_df.get(f"{ns}__female_percent", np.nan),
            "androgynous_percent": results_df.get(f"{ns}__androgynous_percent", np.nan),
            "male_percent": results_df.get(f"{ns}__male_percent", np.nan),
            "windows": results_df.get(f"{ns}__windows", np.nan),
        }
    )
    return out
