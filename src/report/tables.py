from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from contrasts.summary import ContrastReport
from data.loader import SubjectSeries
from data.windows import STUDY_WINDOWS, window_mean
from statespace.calibrate import FitStatus, UnitFit

__all__ = [
    "FIT_COLUMNS",
    "fits_frame",
    "predictions_frame",
    "late_learning_frame",
    "contrasts_frame",
    "table_fits",
    "table_contrasts",
]

FIT_COLUMNS = (
    "id",
    "group",
    "status",
    "retention",
    "error_sensitivity",
    "decay",
    "initial_state",
    "mse",
    "r_squared",
    "n_observed",
    "n_failed",
    "error",
)
CONTRAST_MD_COLUMNS = (
    "contrast",
    "diff_median",
    "HDI",
    "prob_greater",
    "type_s",
    "type_m_median",
    "Type M HDI",
    "type_s_n_defined",
    "type_m_n_defined",
)


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _format_float(value: float) -> str:
    if pd.isna(value):
        return "nan"
    if abs(value) >= 1e4 or (abs(value) > 0 and abs(value) < 1e-3):
        return f"{value:.3e}"
    return f"{value:.4f}"


def _format_interval(lo: object, hi: object) -> str:
    if lo is None or hi is None or pd.isna(lo) or pd.isna(hi):
        return "n/a"
    return f"[{_format_float(float(lo))}, {_format_float(float(hi))}]"


def _write_markdown(df: pd.DataFrame, path: Path) -> None:
    columns = list(df.columns)
    header = "| " + " | ".join(columns) + " |"
    divider = "| " + " | ".join("---" for _ in columns) + " |"
    lines = [header, divider]
    for _, row in df.iterrows():
        values = [
            _format_float(row[col]) if isinstance(row[col], (float, np.floating)) else str(row[col])
            for col in columns
        ]
        lines.append("| " + " | ".join(values) + " |")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def fits_frame(fits: Iterable[UnitFit], groups: Mapping[str, str]) -> pd.DataFrame:
    """One row per subject with fitted parameters and fit statistics.

    Failed subjects keep their row with NaN parameters and the error message.
    """

    rows: list[dict[str, object]] = []
    for item in fits:
        row: dict[str, object] = {col: np.nan for col in FIT_COLUMNS}
        row.update(item.to_dict())
        row["group"] = groups.get(item.unit, "")
        row["status"] = str(item.status)
        if row.get("r_squared") is None:
            row["r_squared"] = np.nan
        row["error"] = item.error or ""
        rows.append(row)
    return pd.DataFrame(rows, columns=list(FIT_COLUMNS))


def predictions_frame(
    fits: Iterable[UnitFit],
    subjects: Sequence[SubjectSeries],
    cycles: Sequence[int],
) -> pd.DataFrame:
    """Long table of observed and predicted output per subject and cycle."""

    lookup = {subject.id: subject for subject in subjects}
    cycle_list = [int(c) for c in cycles]
    frames: list[pd.DataFrame] = []
    for item in fits:
        if item.fit is None:
            continue
        subject = lookup[item.unit]
        observed = subject.observed[np.asarray(cycle_list) - 1]
        frames.append(
            pd.DataFrame(
                {
                    "id": subject.id,
                    "group": subject.group,
                    "cycle": cycle_list,
                    "observed": observed,
                    "predicted": item.fit.predicted,
                }
            )
        )
    if not frames:
        return pd.DataFrame(columns=["id", "group", "cycle", "observed", "predicted"])
    return pd.concat(frames, ignore_index=True)


def late_learning_frame(
    fits: Iterable[UnitFit],
    subjects: Sequence[SubjectSeries],
    cycles: Sequence[int],
    *,
    window: tuple[int, int] = STUDY_WINDOWS["late_learning"],
) -> pd.DataFrame:
    """Mean observed and predicted output over the late-learning window.

    ``cycles`` are the 1-based cycles the predictions cover; the window must
    fall inside them.
    """

    cycle_list = [int(c) for c in cycles]
    positions = {cycle: pos for pos, cycle in enumerate(cycle_list)}
    lo, hi = window
    missing = [c for c in range(lo, hi + 1) if c not in positions]
    if missing:
        raise ValueError(f"Late-learning window {lo}-{hi} is outside the fitted cycles.")
    window_idx = [positions[c] + 1 for c in range(lo, hi + 1)]

    lookup = {subject.id: subject for subject in subjects}
    rows = []
    for item in fits:
        if item.fit is None or item.status is not FitStatus.OK:
            continue
        subject = lookup[item.unit]
        observed = subject.observed[np.asarray(cycle_list) - 1]
        rows.append(
            {
                "id": subject.id,
                "group": subject.group,
                "observed_mean": window_mean(observed, window_idx),
                "predicted_mean": window_mean(item.fit.predicted, window_idx),
                "retention": item.fit.params.retention,
                "error_sensitivity": item.fit.params.error_sensitivity,
            }
        )
    return pd.DataFrame(
        rows,
        columns=["id", "group", "observed_mean", "predicted_mean", "retention", "error_sensitivity"],
    )


def contrasts_frame(reports: Iterable[ContrastReport]) -> pd.DataFrame:
    return pd.DataFrame([report.to_dict() for report in reports])


def table_fits(df: pd.DataFrame, *, output_dir: Path) -> tuple[Path, Path]:
    """Write the per-subject fit table as CSV and Markdown."""

    if df.empty:
        raise ValueError("Fits DataFrame is empty.")
    _ensure_dir(output_dir)

    csv_path = output_dir / "fits.csv"
    md_path = output_dir / "fits.md"
    df.to_csv(csv_path, index=False)

    md_df = df.drop(columns=["initial_state", "error"], errors="ignore")
    _write_markdown(md_df, md_path)
    return csv_path, md_path


def table_contrasts(df: pd.DataFrame, *, output_dir: Path) -> tuple[Path, Path]:
    """Write contrast diagnostics as CSV and a condensed Markdown table."""

    if df.empty:
        raise ValueError("Contrast DataFrame is empty.")
    _ensure_dir(output_dir)

    csv_path = output_dir / "contrasts.csv"
    md_path = output_dir / "contrasts.md"
    df.to_csv(csv_path, index=False)

    md_df = df.copy()
    md_df["HDI"] = [
        _format_interval(lo, hi) for lo, hi in zip(md_df["diff_lower"], md_df["diff_upper"])
    ]
    md_df["Type M HDI"] = [
        _format_interval(lo, hi)
        for lo, hi in zip(md_df["type_m_hdi_lower"], md_df["type_m_hdi_upper"])
    ]
    for col in ("diff_median", "prob_greater", "type_s", "type_m_median"):
        md_df[col] = md_df[col].astype(float)
    md_df = md_df[[col for col in CONTRAST_MD_COLUMNS if col in md_df.columns]]
    _write_markdown(md_df, md_path)
    return csv_path, md_path
