"""
Model parameters, bounds and the free-parameter transform for the
single-state adaptation model.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

__all__ = [
    "FREE_PARAMETERS",
    "InvalidBoundsError",
    "ModelParameters",
    "ParameterBounds",
    "FixedInitialState",
    "sample_uniform",
]

FREE_PARAMETERS: tuple[str, ...] = ("retention", "error_sensitivity", "decay")


class InvalidBoundsError(ValueError):
    """Raised when parameter bounds are malformed (e.g. lower > upper)."""


@dataclass(frozen=True)
class ModelParameters:
    """Single-state model parameters.

    ``decay`` is the exponent applied to ``retention`` on the update that
    follows a set break. ``noise_sd`` is only used by the noisy simulator.
    """

    retention: float
    error_sensitivity: float
    initial_state: float = 0.0
    decay: float = 1.0
    noise_sd: float = 0.0

    def __post_init__(self) -> None:
        if not 0.0 < self.retention < 1.0:
            raise ValueError(f"retention must lie in (0, 1); got {self.retention}.")
        if not self.error_sensitivity >= 0.0:
            raise ValueError(f"error_sensitivity must be non-negative; got {self.error_sensitivity}.")
        if not self.decay >= 1.0:
            raise ValueError(f"decay must be at least 1; got {self.decay}.")
        if not self.noise_sd >= 0.0:
            raise ValueError("noise_sd must be non-negative.")

    def as_array(self) -> NDArray[np.float64]:
        """Return ``[retention, error_sensitivity, initial_state, decay]``."""

        return np.array(
            [self.retention, self.error_sensitivity, self.initial_state, self.decay],
            dtype=np.float64,
        )

    @classmethod
    def from_array(cls, values: Sequence[float], *, noise_sd: float = 0.0) -> "ModelParameters":
        arr = np.asarray(values, dtype=np.float64).ravel()
        if arr.size not in (4, 5):
            raise ValueError("Expected 4 or 5 parameter values.")
        if arr.size == 5:
            noise_sd = float(arr[4])
        return cls(
            retention=float(arr[0]),
            error_sensitivity=float(arr[1]),
            initial_state=float(arr[2]),
            decay=float(arr[3]),
            noise_sd=float(noise_sd),
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "retention": float(self.retention),
            "error_sensitivity": float(self.error_sensitivity),
            "initial_state": float(self.initial_state),
            "decay": float(self.decay),
            "noise_sd": float(self.noise_sd),
        }


@dataclass(frozen=True)
class ParameterBounds:
    """Inclusive box constraints over the free parameters."""

    names: tuple[str, ...]
    lower: tuple[float, ...]
    upper: tuple[float, ...]

    def __post_init__(self) -> None:
        if not (len(self.names) == len(self.lower) == len(self.upper)):
            raise InvalidBoundsError("names, lower and upper must have equal length.")
        if not self.names:
            raise InvalidBoundsError("At least one parameter bound is required.")
        lo = np.asarray(self.lower, dtype=np.float64)
        hi = np.asarray(self.upper, dtype=np.float64)
        if not (np.all(np.isfinite(lo)) and np.all(np.isfinite(hi))):
            raise InvalidBoundsError("Bounds must be finite.")
        bad = [name for name, a, b in zip(self.names, lo, hi) if a > b]
        if bad:
            raise InvalidBoundsError(f"lower > upper for parameter(s): {', '.join(bad)}")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Sequence[float]]) -> "ParameterBounds":
        names = tuple(str(key) for key in mapping)
        pairs = [tuple(float(v) for v in mapping[key]) for key in mapping]
        if any(len(pair) != 2 for pair in pairs):
            raise InvalidBoundsError("Each bound must be a (lower, upper) pair.")
        return cls(
            names=names,
            lower=tuple(pair[0] for pair in pairs),
            upper=tuple(pair[1] for pair in pairs),
        )

    @classmethod
    def default(cls) -> "ParameterBounds":
        return cls(
            names=FREE_PARAMETERS,
            lower=(0.1, 0.005, 1.0),
            upper=(0.999, 0.75, 2.0),
        )

    @property
    def size(self) -> int:
        return len(self.names)

    def as_array(self) -> NDArray[np.float64]:
        """Return an array of shape (D, 2) with ``[lower, upper]`` rows."""

        return np.column_stack(
            [np.asarray(self.lower, dtype=np.float64), np.asarray(self.upper, dtype=np.float64)]
        )

    def as_scipy(self) -> list[tuple[float, float]]:
        return [(float(a), float(b)) for a, b in zip(self.lower, self.upper)]

    def contains(self, values: Sequence[float]) -> bool:
        arr = np.asarray(values, dtype=np.float64).ravel()
        if arr.size != self.size or not np.all(np.isfinite(arr)):
            return False
        lo = np.asarray(self.lower, dtype=np.float64)
        hi = np.asarray(self.upper, dtype=np.float64)
        return bool(np.all(arr >= lo) and np.all(arr <= hi))

    def to_dict(self) -> dict[str, list[float]]:
        return {
            name: [float(a), float(b)]
            for name, a, b in zip(self.names, self.lower, self.upper)
        }


@dataclass(frozen=True)
class FixedInitialState:
    """Map (retention, error_sensitivity, decay) to the full parameter vector.

    The initial state is held at ``initial_state`` and is not searched.
    """

    initial_state: float = 0.0

    def expand(self, free: Sequence[float]) -> ModelParameters:
        arr = np.asarray(free, dtype=np.float64).ravel()
        if arr.size != 3:
            raise ValueError("Expected 3 free parameters (retention, error_sensitivity, decay).")
        return ModelParameters(
            retention=float(arr[0]),
            error_sensitivity=float(arr[1]),
            initial_state=float(self.initial_state),
            decay=float(arr[2]),
        )

    def reduce(self, params: ModelParameters) -> NDArray[np.float64]:
        return np.array(
            [params.retention, params.error_sensitivity, params.decay], dtype=np.float64
        )


def sample_uniform(
    bounds: ParameterBounds,
    rng: np.random.Generator,
    size: int | None = None,
) -> NDArray[np.float64]:
    """Draw parameter vectors uniformly within ``bounds``.

    Returns shape (D,) when ``size`` is None, otherwise (size, D).
    """

    lo = np.asarray(bounds.lower, dtype=np.float64)
    hi = np.asarray(bounds.upper, dtype=np.float64)
    shape = (bounds.size,) if size is None else (int(size), bounds.size)
    return lo + (hi - lo) * rng.random(shape)
