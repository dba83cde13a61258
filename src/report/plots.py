from __future__ import annotations

from pathlib import Path
from typing import Sequence

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from statespace.params import ModelParameters
from statespace.schedule import TrialSchedule
from statespace.simulate import simulate

__all__ = [
    "plot_model_fit",
    "plot_parameter_scatter",
    "plot_group_curves",
    "group_mean_parameters",
]


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def plot_model_fit(
    subject_id: str,
    cycles: Sequence[int],
    observed: Sequence[float],
    predicted: Sequence[float],
    *,
    output_dir: Path,
    r_squared: float | None = None,
) -> Path:
    """Observed hand angle against the fitted model output for one subject."""

    x = np.asarray(list(cycles), dtype=np.float64)
    y = np.asarray(observed, dtype=np.float64)
    y_hat = np.asarray(predicted, dtype=np.float64)
    if not (x.size == y.size == y_hat.size):
        raise ValueError("cycles, observed and predicted must have equal length.")
    _ensure_dir(output_dir)

    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(x, y, "o", color="C0", markersize=3, label="data")
    ax.plot(x, y_hat, "-", color="C3", linewidth=2, label="model")
    ax.set_xlabel("Cycle")
    ax.set_ylabel("Hand angle (deg)")
    title = f"Subject {subject_id}"
    if r_squared is not None and np.isfinite(r_squared):
        title += f" (R² = {r_squared:.3f})"
    ax.set_title(title)
    ax.legend(loc="lower right")
    fig.tight_layout()

    path = output_dir / f"fit_{subject_id}.png"
    fig.savefig(path, dpi=200)
    plt.close(fig)
    return path


def plot_parameter_scatter(
    fits: pd.DataFrame,
    *,
    output_dir: Path,
    x: str = "retention",
    y: str = "error_sensitivity",
    group_col: str = "group",
) -> Path:
    """Retention against error sensitivity, one panel per group."""

    data = fits.dropna(subset=[x, y])
    if data.empty:
        raise ValueError("No fitted parameters available for plotting.")
    _ensure_dir(output_dir)

    groups = list(pd.unique(data[group_col]))
    fig, axes = plt.subplots(1, len(groups), figsize=(4 * len(groups), 4), squeeze=False)
    for idx, (ax, group) in enumerate(zip(axes[0], groups)):
        subset = data[data[group_col] == group]
        ax.scatter(subset[x], subset[y], color=f"C{idx}", alpha=0.7, edgecolor="black")
        ax.set_xlabel("Retention (A)")
        ax.set_title(str(group))
    axes[0][0].set_ylabel("Error sensitivity (b)")
    fig.tight_layout()

    path = output_dir / "parameter_scatter.png"
    fig.savefig(path, dpi=200)
    plt.close(fig)
    return path


def group_mean_parameters(
    fits: pd.DataFrame,
    *,
    group_col: str = "group",
    initial_state: float = 0.0,
) -> dict[str, ModelParameters]:
    """Average fitted parameters per group."""

    data = fits.dropna(subset=["retention", "error_sensitivity", "decay"])
    result: dict[str, ModelParameters] = {}
    for group, frame in data.groupby(group_col, sort=False):
        result[str(group)] = ModelParameters(
            retention=float(frame["retention"].mean()),
            error_sensitivity=float(frame["error_sensitivity"].mean()),
            initial_state=float(initial_state),
            decay=float(frame["decay"].mean()),
        )
    return result


def plot_group_curves(
    fits: pd.DataFrame,
    schedule: TrialSchedule,
    *,
    output_dir: Path,
    group_col: str = "group",
    initial_state: float = 0.0,
) -> Path:
    """Learning curves simulated from each group's mean parameters."""

    params = group_mean_parameters(fits, group_col=group_col, initial_state=initial_state)
    if not params:
        raise ValueError("No fitted parameters available for plotting.")
    _ensure_dir(output_dir)

    cycles = np.arange(1, len(schedule) + 1)
    fig, ax = plt.subplots(figsize=(7, 4))
    for idx, (group, group_params) in enumerate(params.items()):
        output = simulate(group_params, schedule).output
        ax.plot(cycles, output, color=f"C{idx}", linewidth=2, label=group)
    ax.axhline(0.0, color="grey", linewidth=0.8, linestyle="--")
    ax.set_xlabel("Cycle")
    ax.set_ylabel("Hand angle (deg)")
    ax.set_title("Model output from group-mean parameters")
    ax.legend(loc="best")
    fig.tight_layout()

    path = output_dir / "group_curves.png"
    fig.savefig(path, dpi=200)
    plt.close(fig)
    return path
