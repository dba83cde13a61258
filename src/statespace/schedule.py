"""
Trial schedules: perturbation, error-clamp and set-break layout per trial.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
from numpy.typing import NDArray

__all__ = ["TrialSchedule", "cycle_schedule", "CYCLE_BREAKS"]

# 1-based cycles that are followed by a set break in the study layout.
CYCLE_BREAKS: tuple[int, ...] = (10, 30, 50, 70)


@dataclass(frozen=True, eq=False)
class TrialSchedule:
    """Per-trial schedule consumed by the simulator.

    ``is_set_break[n]`` marks trial ``n`` as followed by a break, so the
    decayed retention applies to the update producing trial ``n + 1``.
    """

    perturbation: NDArray[np.float64]
    is_clamp: NDArray[np.bool_]
    clamp_value: NDArray[np.float64]
    is_set_break: NDArray[np.bool_]

    def __post_init__(self) -> None:
        perturbation = np.asarray(self.perturbation, dtype=np.float64).ravel()
        is_clamp = np.asarray(self.is_clamp, dtype=bool).ravel()
        clamp_value = np.asarray(self.clamp_value, dtype=np.float64).ravel()
        is_set_break = np.asarray(self.is_set_break, dtype=bool).ravel()

        n = perturbation.size
        if not (is_clamp.size == clamp_value.size == is_set_break.size == n):
            raise ValueError(
                "perturbation, is_clamp, clamp_value and is_set_break must have equal length "
                f"(got {n}, {is_clamp.size}, {clamp_value.size}, {is_set_break.size})."
            )
        if n == 0:
            raise ValueError("A trial schedule needs at least one trial.")
        undefined_clamps = is_clamp & ~np.isfinite(clamp_value)
        if np.any(undefined_clamps):
            idx = np.flatnonzero(undefined_clamps).tolist()
            raise ValueError(f"clamp_value must be defined on clamp trials; missing at {idx}.")

        for array in (perturbation, is_clamp, clamp_value, is_set_break):
            array.setflags(write=False)
        object.__setattr__(self, "perturbation", perturbation)
        object.__setattr__(self, "is_clamp", is_clamp)
        object.__setattr__(self, "clamp_value", clamp_value)
        object.__setattr__(self, "is_set_break", is_set_break)

    def __len__(self) -> int:
        return int(self.perturbation.size)

    @classmethod
    def from_arrays(
        cls,
        perturbation: Sequence[float],
        is_clamp: Sequence[bool] | None = None,
        clamp_value: Sequence[float] | None = None,
        is_set_break: Sequence[bool] | None = None,
    ) -> "TrialSchedule":
        """Build a schedule, defaulting to no clamps and no breaks."""

        r = np.asarray(perturbation, dtype=np.float64).ravel()
        n = r.size
        clamp = np.zeros(n, dtype=bool) if is_clamp is None else np.asarray(is_clamp, dtype=bool)
        values = (
            np.full(n, np.nan, dtype=np.float64)
            if clamp_value is None
            else np.asarray(clamp_value, dtype=np.float64)
        )
        breaks = (
            np.zeros(n, dtype=bool) if is_set_break is None else np.asarray(is_set_break, dtype=bool)
        )
        return cls(perturbation=r, is_clamp=clamp, clamp_value=values, is_set_break=breaks)

    def window(self, cycles: Iterable[int]) -> "TrialSchedule":
        """Return the sub-schedule for 1-based ``cycles``."""

        idx = np.asarray(list(cycles), dtype=np.intp) - 1
        if idx.size == 0:
            raise ValueError("cycles must not be empty.")
        if idx.min() < 0 or idx.max() >= len(self):
            raise ValueError(f"cycles must lie within 1..{len(self)}.")
        return TrialSchedule(
            perturbation=self.perturbation[idx],
            is_clamp=self.is_clamp[idx],
            clamp_value=self.clamp_value[idx],
            is_set_break=self.is_set_break[idx],
        )

    def to_dict(self) -> dict[str, list[float | bool | None]]:
        def _clean(values: NDArray[np.float64]) -> list[float | None]:
            return [float(v) if np.isfinite(v) else None for v in values]

        return {
            "perturbation": _clean(self.perturbation),
            "is_clamp": [bool(v) for v in self.is_clamp],
            "clamp_value": _clean(self.clamp_value),
            "is_set_break": [bool(v) for v in self.is_set_break],
        }


def cycle_schedule(
    *,
    clamp_error: float = 45.0,
    baseline: int = 10,
    learning: int = 40,
    no_feedback: int = 1,
    washout: int = 20,
    relearning: int = 20,
    breaks: Sequence[int] = CYCLE_BREAKS,
) -> TrialSchedule:
    """Return the cycle layout of the dual-task clamp study.

    Baseline and washout cycles carry veridical feedback (perturbation 0).
    Learning and relearning cycles clamp the error at ``clamp_error``; the
    no-feedback cycle is a clamp of 0.
    """

    segments = [
        (baseline, 0.0, False, np.nan),
        (learning, np.nan, True, clamp_error),
        (no_feedback, np.nan, True, 0.0),
        (washout, 0.0, False, np.nan),
        (relearning, np.nan, True, clamp_error),
    ]
    perturbation: list[float] = []
    is_clamp: list[bool] = []
    clamp_value: list[float] = []
    for length, r_value, clamped, ec_value in segments:
        perturbation.extend([r_value] * int(length))
        is_clamp.extend([clamped] * int(length))
        clamp_value.extend([ec_value] * int(length))

    n = len(perturbation)
    is_set_break = np.zeros(n, dtype=bool)
    for cycle in breaks:
        if 1 <= int(cycle) <= n:
            is_set_break[int(cycle) - 1] = True

    return TrialSchedule(
        perturbation=np.asarray(perturbation, dtype=np.float64),
        is_clamp=np.asarray(is_clamp, dtype=bool),
        clamp_value=np.asarray(clamp_value, dtype=np.float64),
        is_set_break=is_set_break,
    )
