"""
Trial-table loader for per-subject adaptation time series.

This module ingests long-format hand-angle data (one row per subject and
cycle), validates it, and pivots it into one cycle-ordered series per
subject with NaN marking missing cycles.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

__all__ = [
    "TrialTableConfig",
    "SubjectSeries",
    "load_trial_table",
    "subject_series",
]

_LONG_COLUMNS = ("id", "group", "cycle", "ha")


@dataclass(frozen=True)
class TrialTableConfig:
    """Column names and cycle span for the trial table."""

    id_col: str = "id"
    group_col: str = "group"
    cycle_col: str = "cycle"
    value_col: str = "ha"
    group_order: Sequence[str] | None = None


@dataclass(frozen=True)
class SubjectSeries:
    """Cycle-ordered observations for one subject (cycle 1 at index 0)."""

    id: str
    group: str
    observed: NDArray[np.float64]

    @property
    def n_missing(self) -> int:
        return int(np.count_nonzero(~np.isfinite(self.observed)))


def _read_frame(path: Path) -> pd.DataFrame:
    suffix = path.suffix.lower()
    if suffix in {".csv", ".txt"}:
        return pd.read_csv(path)
    if suffix in {".parquet", ".pq"}:
        return pd.read_parquet(path)
    raise ValueError(f"Unsupported file extension for trial loader: {suffix}")


def load_trial_table(
    source: str | Path | Iterable[Path] | pd.DataFrame,
    *,
    config: TrialTableConfig | None = None,
) -> pd.DataFrame:
    """
    Load and normalise a long-format trial table to columns (id, group, cycle, ha).
    """

    cfg = config or TrialTableConfig()
    if isinstance(source, pd.DataFrame):
        frame = source.copy()
    elif isinstance(source, (str, Path)):
        frame = _read_frame(Path(source))
    else:
        paths = list(source)
        if not paths:
            raise ValueError("Iterable source provided to load_trial_table is empty.")
        frame = pd.concat((_read_frame(Path(p)) for p in paths), ignore_index=True)

    columns = (cfg.id_col, cfg.group_col, cfg.cycle_col, cfg.value_col)
    missing = [col for col in columns if col not in frame.columns]
    if missing:
        raise ValueError(f"Trial table is missing columns: {', '.join(missing)}")

    long = frame.loc[:, list(columns)].copy()
    long.columns = list(_LONG_COLUMNS)
    long = long.dropna(subset=["id", "group", "cycle"])
    long["id"] = long["id"].astype(str)
    long["group"] = long["group"].astype(str)
    long["cycle"] = pd.to_numeric(long["cycle"], errors="raise").astype(int)
    long["ha"] = pd.to_numeric(long["ha"], errors="coerce").astype(float)
    if (long["cycle"] < 1).any():
        raise ValueError("cycle numbers must be 1-based.")
    if long.duplicated(subset=["id", "cycle"]).any():
        raise ValueError("Trial table has duplicate (id, cycle) rows.")

    groups_per_id = long.groupby("id")["group"].nunique()
    if (groups_per_id > 1).any():
        bad = groups_per_id[groups_per_id > 1].index.tolist()
        raise ValueError(f"Subjects assigned to more than one group: {bad}")

    if cfg.group_order is not None:
        order = [str(name) for name in cfg.group_order]
        unknown = sorted(set(long["group"]) - set(order))
        if unknown:
            raise ValueError(f"Groups not listed in group_order: {unknown}")
        long["group"] = pd.Categorical(long["group"], categories=order, ordered=True)

    return long.sort_values(["group", "id", "cycle"]).reset_index(drop=True)


def subject_series(
    table: pd.DataFrame,
    *,
    n_cycles: int | None = None,
) -> list[SubjectSeries]:
    """Pivot a normalised trial table into one series per subject.

    Cycles absent from the table (or beyond a subject's last row) are NaN.
    """

    if table.empty:
        raise ValueError("Trial table is empty.")
    span = int(n_cycles) if n_cycles is not None else int(table["cycle"].max())
    wide = table.pivot(index="id", columns="cycle", values="ha").reindex(
        columns=range(1, span + 1)
    )
    groups = table.drop_duplicates("id").set_index("id")["group"]

    order = table.drop_duplicates("id")["id"].tolist()
    return [
        SubjectSeries(
            id=str(subject),
            group=str(groups.loc[subject]),
            observed=wide.loc[subject].to_numpy(dtype=np.float64),
        )
        for subject in order
    ]
