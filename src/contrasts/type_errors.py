"""
Type S (sign) and Type M (magnitude) error for a two-group contrast.

Unlike the classical design analysis, which assumes one known true effect,
both diagnostics marginalise over posterior uncertainty. Each posterior draw
supplies "true" group means together with a simulated replication of the
study; the replication's mean difference is compared with the draw's true
difference. Draws are independent of one another.

Per-draw values are ``None`` when the contrast is undefined for that draw
(true difference of zero, below the Type M threshold, or a simulated group
with no members). Aggregates are computed over defined draws only and are
``None`` when every draw was excluded.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, TypeVar

import numpy as np

from contrasts.draws import PosteriorDrawSet
from contrasts.hdi import hdi

__all__ = [
    "TypeSResult",
    "TypeMResult",
    "collect_defined",
    "type_s_indicators",
    "type_m_ratios",
    "type_s_error",
    "type_m_error",
]

T = TypeVar("T")


def collect_defined(values: Iterable[T | None]) -> list[T]:
    """Drop undefined (``None``) entries, keeping order."""

    return [value for value in values if value is not None]


def type_s_indicators(
    draws: PosteriorDrawSet,
    group1: int = 0,
    group2: int = 1,
) -> list[bool | None]:
    true_diff = draws.true_difference(group1, group2)
    sim_diff = draws.simulated_difference(group1, group2)
    flipped = np.sign(true_diff) != np.sign(sim_diff)
    defined = (true_diff != 0.0) & np.isfinite(true_diff) & np.isfinite(sim_diff)
    return [bool(flag) if ok else None for flag, ok in zip(flipped, defined)]


def type_m_ratios(
    draws: PosteriorDrawSet,
    group1: int = 0,
    group2: int = 1,
    *,
    threshold: float = 0.0,
) -> list[float | None]:
    """Per-draw ``|sim diff| / |true diff|``.

    Draws are included when ``|true diff| >= threshold`` and the true
    difference is non-zero.
    """

    if threshold < 0.0:
        raise ValueError("threshold must be non-negative.")
    true_abs = np.abs(draws.true_difference(group1, group2))
    sim_abs = np.abs(draws.simulated_difference(group1, group2))
    defined = (true_abs > 0.0) & (true_abs >= threshold) & np.isfinite(true_abs) & np.isfinite(sim_abs)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratios = sim_abs / true_abs
    return [float(ratio) if ok else None for ratio, ok in zip(ratios, defined)]


@dataclass(frozen=True)
class TypeSResult:
    group1: int
    group2: int
    rate: float | None
    n_defined: int
    n_draws: int
    indicators: tuple[bool | None, ...]

    @property
    def defined(self) -> bool:
        return self.rate is not None

    def to_dict(self) -> dict[str, object]:
        return {
            "group1": int(self.group1),
            "group2": int(self.group2),
            "type_s": self.rate,
            "n_defined": int(self.n_defined),
            "n_draws": int(self.n_draws),
        }


@dataclass(frozen=True)
class TypeMResult:
    group1: int
    group2: int
    mean: float | None
    median: float | None
    hdi: tuple[float, float] | None
    cred_mass: float
    threshold: float
    n_defined: int
    n_draws: int
    ratios: tuple[float, ...]

    @property
    def defined(self) -> bool:
        return self.mean is not None

    def to_dict(self) -> dict[str, object]:
        return {
            "group1": int(self.group1),
            "group2": int(self.group2),
            "type_m_mean": self.mean,
            "type_m_median": self.median,
            "type_m_hdi_lower": None if self.hdi is None else self.hdi[0],
            "type_m_hdi_upper": None if self.hdi is None else self.hdi[1],
            "cred_mass": float(self.cred_mass),
            "threshold": float(self.threshold),
            "n_defined": int(self.n_defined),
            "n_draws": int(self.n_draws),
        }


def type_s_error(
    draws: PosteriorDrawSet,
    group1: int = 0,
    group2: int = 1,
) -> TypeSResult:
    indicators = type_s_indicators(draws, group1, group2)
    valid = collect_defined(indicators)
    rate = float(np.mean(valid)) if valid else None
    return TypeSResult(
        group1=int(group1),
        group2=int(group2),
        rate=rate,
        n_defined=len(valid),
        n_draws=draws.n_draws,
        indicators=tuple(indicators),
    )


def type_m_error(
    draws: PosteriorDrawSet,
    group1: int = 0,
    group2: int = 1,
    *,
    threshold: float = 0.0,
    cred_mass: float = 0.89,
) -> TypeMResult:
    valid = collect_defined(type_m_ratios(draws, group1, group2, threshold=threshold))
    if valid:
        values = np.asarray(valid, dtype=np.float64)
        mean = float(np.mean(values))
        median = float(np.median(values))
        interval: tuple[float, float] | None = hdi(values, cred_mass=cred_mass)
    else:
        mean = median = None
        interval = None
    return TypeMResult(
        group1=int(group1),
        group2=int(group2),
        mean=mean,
        median=median,
        hdi=interval,
        cred_mass=float(cred_mass),
        threshold=float(threshold),
        n_defined=len(valid),
        n_draws=draws.n_draws,
        ratios=tuple(float(v) for v in valid),
    )
