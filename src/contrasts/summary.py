from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from contrasts.draws import PosteriorDrawSet
from contrasts.hdi import hdi
from contrasts.type_errors import TypeMResult, TypeSResult, type_m_error, type_s_error

__all__ = [
    "IntervalSummary",
    "ContrastReport",
    "median_hdi",
    "directional_probability",
    "cohens_d_draws",
    "group_mean_summary",
    "contrast_summary",
    "contrast_report",
]


@dataclass(frozen=True)
class IntervalSummary:
    """Point estimate (median) with an HDI; ``None`` fields when undefined."""

    median: float | None
    lower: float | None
    upper: float | None
    cred_mass: float
    n: int

    def to_dict(self) -> dict[str, object]:
        return {
            "median": self.median,
            "lower": self.lower,
            "upper": self.upper,
            "cred_mass": float(self.cred_mass),
            "n": int(self.n),
        }


def median_hdi(
    values: Sequence[float] | NDArray[np.float64],
    cred_mass: float = 0.89,
) -> IntervalSummary:
    """Median and HDI over the finite entries of ``values``."""

    arr = np.asarray(values, dtype=np.float64).ravel()
    arr = arr[np.isfinite(arr)]
    if arr.size == 0:
        return IntervalSummary(median=None, lower=None, upper=None, cred_mass=cred_mass, n=0)
    lower, upper = hdi(arr, cred_mass=cred_mass)
    return IntervalSummary(
        median=float(np.median(arr)),
        lower=lower,
        upper=upper,
        cred_mass=float(cred_mass),
        n=int(arr.size),
    )


def directional_probability(draws: PosteriorDrawSet, group1: int, group2: int) -> float:
    """Posterior probability that ``mu[group1] > mu[group2]``."""

    return float(np.mean(draws.true_difference(group1, group2) > 0.0))


def cohens_d_draws(
    draws: PosteriorDrawSet,
    group1: int,
    group2: int,
    n_per_group: Sequence[int],
) -> NDArray[np.float64]:
    """Per-draw standardised mean difference using a pooled SD.

    The pooled SD combines the draw's group scales weighted by ``n - 1``.
    """

    if draws.sigma is None:
        raise ValueError("Cohen's d requires posterior draws of sigma.")
    counts = np.asarray(n_per_group, dtype=np.float64).ravel()
    if counts.size != draws.n_groups:
        raise ValueError(f"n_per_group must have {draws.n_groups} entries.")
    n1, n2 = counts[int(group1)], counts[int(group2)]
    if n1 + n2 - 2 <= 0:
        raise ValueError("Pooled SD needs at least three observations across both groups.")
    s1 = draws.sigma[:, int(group1)]
    s2 = draws.sigma[:, int(group2)]
    pooled = np.sqrt(((n1 - 1.0) * s1**2 + (n2 - 1.0) * s2**2) / (n1 + n2 - 2.0))
    with np.errstate(divide="ignore", invalid="ignore"):
        d = draws.true_difference(group1, group2) / pooled
    return np.where(pooled > 0.0, d, np.nan)


def _group_names(draws: PosteriorDrawSet, names: Sequence[str] | None) -> list[str]:
    if names is None:
        return [str(label) for label in (draws.group_labels or ())]
    if len(names) != draws.n_groups:
        raise ValueError(f"Expected {draws.n_groups} group names, got {len(names)}.")
    return [str(name) for name in names]


def group_mean_summary(
    draws: PosteriorDrawSet,
    *,
    names: Sequence[str] | None = None,
    cred_mass: float = 0.89,
) -> pd.DataFrame:
    labels = _group_names(draws, names)
    rows = []
    for idx, name in enumerate(labels):
        summary = median_hdi(draws.true_means[:, idx], cred_mass=cred_mass)
        rows.append({"group": name, "mu": summary.median, "lower": summary.lower, "upper": summary.upper})
    return pd.DataFrame(rows, columns=["group", "mu", "lower", "upper"])


def contrast_summary(
    draws: PosteriorDrawSet,
    pairs: Sequence[tuple[int, int]],
    *,
    names: Sequence[str] | None = None,
    cred_mass: float = 0.89,
) -> pd.DataFrame:
    labels = _group_names(draws, names)
    rows = []
    for group1, group2 in pairs:
        summary = median_hdi(draws.true_difference(group1, group2), cred_mass=cred_mass)
        rows.append(
            {
                "contrast": f"{labels[group1]} - {labels[group2]}",
                "diff": summary.median,
                "lower": summary.lower,
                "upper": summary.upper,
            }
        )
    return pd.DataFrame(rows, columns=["contrast", "diff", "lower", "upper"])


@dataclass(frozen=True)
class ContrastReport:
    """Everything reported for one group pair."""

    label: str
    difference: IntervalSummary
    prob_greater: float
    type_s: TypeSResult
    type_m: TypeMResult
    cohens_d: IntervalSummary | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "contrast": self.label,
            "diff_median": self.difference.median,
            "diff_lower": self.difference.lower,
            "diff_upper": self.difference.upper,
            "prob_greater": float(self.prob_greater),
        }
        type_s = self.type_s.to_dict()
        type_m = self.type_m.to_dict()
        payload.update(
            {
                "group1": type_s["group1"],
                "group2": type_s["group2"],
                "n_draws": type_s["n_draws"],
                "type_s": type_s["type_s"],
                "type_s_n_defined": type_s["n_defined"],
                "type_m_mean": type_m["type_m_mean"],
                "type_m_median": type_m["type_m_median"],
                "type_m_hdi_lower": type_m["type_m_hdi_lower"],
                "type_m_hdi_upper": type_m["type_m_hdi_upper"],
                "type_m_n_defined": type_m["n_defined"],
                "threshold": type_m["threshold"],
                "cred_mass": type_m["cred_mass"],
            }
        )
        if self.cohens_d is not None:
            payload.update(
                {
                    "d_median": self.cohens_d.median,
                    "d_lower": self.cohens_d.lower,
                    "d_upper": self.cohens_d.upper,
                }
            )
        return payload


def contrast_report(
    draws: PosteriorDrawSet,
    group1: int,
    group2: int,
    *,
    names: Sequence[str] | None = None,
    threshold: float = 0.0,
    cred_mass: float = 0.89,
    n_per_group: Sequence[int] | Mapping[int, int] | None = None,
) -> ContrastReport:
    labels = _group_names(draws, names)
    cohens_d = None
    if n_per_group is not None and draws.sigma is not None:
        counts = (
            [int(n_per_group[idx]) for idx in range(draws.n_groups)]
            if isinstance(n_per_group, Mapping)
            else list(n_per_group)
        )
        cohens_d = median_hdi(
            cohens_d_draws(draws, group1, group2, counts),
            cred_mass=cred_mass,
        )
    return ContrastReport(
        label=f"{labels[group1]} - {labels[group2]}",
        difference=median_hdi(draws.true_difference(group1, group2), cred_mass=cred_mass),
        prob_greater=directional_probability(draws, group1, group2),
        type_s=type_s_error(draws, group1, group2),
        type_m=type_m_error(draws, group1, group2, threshold=threshold, cred_mass=cred_mass),
        cohens_d=cohens_d,
    )
