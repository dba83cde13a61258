from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray
from scipy import stats

__all__ = [
    "count_observed",
    "r_squared_raw",
    "parameter_correlations",
    "parameter_summary",
]


def count_observed(observed: Sequence[float] | NDArray[np.float64]) -> int:
    return int(np.count_nonzero(np.isfinite(np.asarray(observed, dtype=np.float64))))


def r_squared_raw(
    observed: Sequence[float] | NDArray[np.float64],
    predicted: Sequence[float] | NDArray[np.float64],
) -> float | None:
    """R² = 1 - SSE/SST over non-missing observations.

    SST is the raw sum of squared observations (not mean-centred), matching
    the values reported for the study. Returns ``None`` when nothing usable
    is observed or SST is zero.
    """

    y = np.asarray(observed, dtype=np.float64).ravel()
    y_hat = np.asarray(predicted, dtype=np.float64).ravel()
    if y.size != y_hat.size:
        raise ValueError("observed and predicted must have the same length.")
    mask = np.isfinite(y) & np.isfinite(y_hat)
    if not np.any(mask):
        return None
    sse = float(np.sum((y[mask] - y_hat[mask]) ** 2))
    sst = float(np.sum(y[mask] ** 2))
    if sst <= 0.0:
        return None
    return 1.0 - sse / sst


def parameter_correlations(
    fits: pd.DataFrame,
    *,
    x: str = "retention",
    y: str = "error_sensitivity",
    group_col: str = "group",
) -> pd.DataFrame:
    """Pearson correlation between two fitted parameters within each group."""

    rows: list[dict[str, object]] = []
    for group, frame in fits.groupby(group_col, sort=False):
        data = frame[[x, y]].dropna()
        n = int(len(data))
        if n < 3 or data[x].nunique() < 2 or data[y].nunique() < 2:
            r_value, p_value = np.nan, np.nan
        else:
            r_value, p_value = stats.pearsonr(data[x].to_numpy(), data[y].to_numpy())
        rows.append({group_col: group, "n": n, "r": float(r_value), "p": float(p_value)})
    return pd.DataFrame(rows, columns=[group_col, "n", "r", "p"])


def parameter_summary(
    fits: pd.DataFrame,
    *,
    params: Sequence[str] = ("retention", "error_sensitivity", "decay"),
    group_col: str = "group",
    cred_mass: float = 0.89,
) -> pd.DataFrame:
    """Median and HDI of fitted parameters across subjects in each group."""

    from contrasts.summary import median_hdi  # defer import

    rows: list[dict[str, object]] = []
    for group, frame in fits.groupby(group_col, sort=False):
        for name in params:
            summary = median_hdi(frame[name].to_numpy(dtype=np.float64), cred_mass=cred_mass)
            rows.append(
                {
                    group_col: group,
                    "parameter": name,
                    "n": summary.n,
                    "median": summary.median,
                    "lower": summary.lower,
                    "upper": summary.upper,
                }
            )
    return pd.DataFrame(rows, columns=[group_col, "parameter", "n", "median", "lower", "upper"])
