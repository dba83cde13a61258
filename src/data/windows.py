"""
Window aggregates over cycle-indexed series: missing-data counts, window
means per subject and descriptive group summaries.
"""

from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from data.loader import SubjectSeries

__all__ = [
    "STUDY_WINDOWS",
    "window_values",
    "window_mean",
    "missing_summary",
    "window_means",
    "group_summary",
]

# 1-based inclusive cycle windows analysed in the study.
STUDY_WINDOWS: dict[str, tuple[int, int]] = {
    "baseline": (6, 10),
    "early_learning": (13, 17),
    "late_learning": (46, 50),
    "aftereffect": (51, 51),
}


def _cycle_index(cycles: Iterable[int], length: int) -> NDArray[np.intp]:
    idx = np.asarray(list(cycles), dtype=np.intp) - 1
    if idx.size == 0:
        raise ValueError("cycles must not be empty.")
    if idx.min() < 0 or idx.max() >= length:
        raise ValueError(f"cycles must lie within 1..{length}.")
    return idx


def window_values(values: Sequence[float] | NDArray[np.float64], cycles: Iterable[int]) -> NDArray[np.float64]:
    arr = np.asarray(values, dtype=np.float64).ravel()
    return arr[_cycle_index(cycles, arr.size)]


def window_mean(values: Sequence[float] | NDArray[np.float64], cycles: Iterable[int]) -> float:
    """Mean over ``cycles`` ignoring missing samples (NaN if all missing)."""

    selected = window_values(values, cycles)
    finite = selected[np.isfinite(selected)]
    if finite.size == 0:
        return float("nan")
    return float(finite.mean())


def missing_summary(subjects: Sequence[SubjectSeries], cycles: Iterable[int]) -> pd.DataFrame:
    """Missing count and fraction per subject within ``cycles``."""

    cycle_list = list(cycles)
    rows = []
    for subject in subjects:
        selected = window_values(subject.observed, cycle_list)
        n_missing = int(np.count_nonzero(~np.isfinite(selected)))
        rows.append(
            {
                "id": subject.id,
                "group": subject.group,
                "missing_count": n_missing,
                "missing_percent": n_missing / float(selected.size),
            }
        )
    return pd.DataFrame(rows, columns=["id", "group", "missing_count", "missing_percent"])


def window_means(table: pd.DataFrame, cycles: Iterable[int]) -> pd.DataFrame:
    """Per-subject mean of ``ha`` over ``cycles`` from a normalised trial table."""

    cycle_set = {int(c) for c in cycles}
    subset = table[table["cycle"].isin(cycle_set)]
    return (
        subset.groupby(["id", "group"], observed=True, sort=True)["ha"]
        .mean()
        .reset_index()
    )


def group_summary(frame: pd.DataFrame, *, value_col: str = "ha", group_col: str = "group") -> pd.DataFrame:
    """n, mean, median, sd, min and max of ``value_col`` per group."""

    grouped = frame.groupby(group_col, observed=True, sort=True)[value_col]
    summary = grouped.agg(["count", "mean", "median", "std", "min", "max"]).reset_index()
    return summary.rename(columns={"count": "n", "std": "sd"})
