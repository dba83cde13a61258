"""
Multi-start bounded least-squares calibration of the single-state model.

Each restart is an independent bounded local minimisation started from a
uniform draw inside the parameter box. Restarts are reduced to a single fit
by taking the minimum MSE (lowest restart index on ties), so results do not
depend on worker count or completion order.
"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from enum import Enum
from functools import reduce
from typing import Any, Iterable, Iterator, Sequence

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize

from statespace.fit_stats import count_observed, r_squared_raw
from statespace.params import (
    FREE_PARAMETERS,
    FixedInitialState,
    InvalidBoundsError,
    ModelParameters,
    ParameterBounds,
    sample_uniform,
)
from statespace.schedule import TrialSchedule
from statespace.simulate import simulate

__all__ = [
    "SUPPORTED_METHODS",
    "CalibrationFailedError",
    "CalibrationProblem",
    "FitResult",
    "FitStatus",
    "RestartResult",
    "UnitFit",
    "calibrate",
    "calibrate_units",
    "iter_calibrate_units",
    "mse_cost",
    "run_restart",
    "select_best",
]

_LOGGER = logging.getLogger(__name__)

SUPPORTED_METHODS: tuple[str, ...] = ("L-BFGS-B", "SLSQP", "TNC", "Powell", "Nelder-Mead")


class CalibrationFailedError(RuntimeError):
    """Raised when no restart produced a finite, in-bounds fit."""


class FitStatus(str, Enum):
    OK = "ok"
    CALIBRATION_FAILED = "calibration_failed"
    NO_OBSERVATIONS = "no_observations"

    def __str__(self) -> str:  # pragma: no cover - invoked implicitly
        return self.value


def mse_cost(
    params: ModelParameters,
    observed: NDArray[np.float64],
    schedule: TrialSchedule,
) -> float:
    """Mean squared error over the non-missing observed samples.

    Returns ``inf`` when nothing is observed or the prediction is undefined
    at an observed position.
    """

    y = np.asarray(observed, dtype=np.float64)
    mask = np.isfinite(y)
    if not np.any(mask):
        return float("inf")
    predicted = simulate(params, schedule).output
    with np.errstate(over="ignore", invalid="ignore"):
        value = float(np.mean((y[mask] - predicted[mask]) ** 2))
    return value if np.isfinite(value) else float("inf")


@dataclass(frozen=True, eq=False)
class CalibrationProblem:
    """Bounded cost over the free parameters of one subject."""

    observed: NDArray[np.float64]
    schedule: TrialSchedule
    bounds: ParameterBounds
    transform: FixedInitialState = FixedInitialState()

    def __call__(self, free: Sequence[float]) -> float:
        if not self.bounds.contains(free):
            return float("inf")
        return mse_cost(self.transform.expand(free), self.observed, self.schedule)


@dataclass(frozen=True)
class RestartResult:
    index: int
    start: tuple[float, ...]
    params: ModelParameters | None
    mse: float
    converged: bool
    n_evaluations: int
    message: str

    @property
    def failed(self) -> bool:
        return not np.isfinite(self.mse)

    def to_dict(self) -> dict[str, object]:
        return {
            "index": int(self.index),
            "start": [float(v) for v in self.start],
            "params": None if self.params is None else self.params.to_dict(),
            "mse": float(self.mse),
            "converged": bool(self.converged),
            "n_evaluations": int(self.n_evaluations),
            "message": str(self.message),
        }


@dataclass(frozen=True)
class FitResult:
    params: ModelParameters
    mse: float
    best_index: int
    restarts: tuple[RestartResult, ...]
    predicted: NDArray[np.float64]
    r_squared: float | None
    n_observed: int

    @property
    def n_failed(self) -> int:
        return sum(1 for item in self.restarts if item.failed)

    def to_dict(self) -> dict[str, object]:
        return {
            **self.params.to_dict(),
            "mse": float(self.mse),
            "r_squared": None if self.r_squared is None else float(self.r_squared),
            "best_index": int(self.best_index),
            "n_restarts": len(self.restarts),
            "n_failed": int(self.n_failed),
            "n_observed": int(self.n_observed),
        }


@dataclass(frozen=True)
class UnitFit:
    """Per-subject outcome of a batch calibration."""

    unit: str
    status: FitStatus
    fit: FitResult | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"id": str(self.unit), "status": str(self.status)}
        if self.fit is not None:
            payload.update(self.fit.to_dict())
        if self.error is not None:
            payload["error"] = self.error
        return payload


def _optimizer_options(method: str, maxiter: int, ftol: float) -> dict[str, Any]:
    if method == "L-BFGS-B":
        return {"maxiter": maxiter, "ftol": ftol, "gtol": 1e-10}
    if method == "SLSQP":
        return {"maxiter": maxiter, "ftol": ftol}
    if method == "TNC":
        return {"maxfun": maxiter, "ftol": ftol}
    if method == "Powell":
        return {"maxiter": maxiter, "ftol": ftol, "xtol": 1e-10}
    if method == "Nelder-Mead":
        return {"maxiter": maxiter, "fatol": ftol, "xatol": 1e-10}
    raise ValueError(f"Unsupported optimiser {method!r}; choose from {SUPPORTED_METHODS}.")


def run_restart(
    problem: CalibrationProblem,
    index: int,
    start: Sequence[float],
    *,
    method: str = "L-BFGS-B",
    maxiter: int = 1000,
    ftol: float = 1e-12,
) -> RestartResult:
    """Run one bounded local minimisation from ``start``.

    Optimiser errors, non-finite costs and results outside the bounds are
    reported as ``mse = inf`` instead of being raised.
    """

    x0 = np.asarray(start, dtype=np.float64)
    start_tuple = tuple(float(v) for v in x0)
    try:
        with np.errstate(all="ignore"):
            result = minimize(
                problem,
                x0=x0,
                method=method,
                bounds=problem.bounds.as_scipy(),
                options=_optimizer_options(method, maxiter, ftol),
            )
    except (ValueError, ArithmeticError, np.linalg.LinAlgError) as exc:
        _LOGGER.warning("restart %d failed: %s", index, exc)
        return RestartResult(
            index=int(index),
            start=start_tuple,
            params=None,
            mse=float("inf"),
            converged=False,
            n_evaluations=0,
            message=str(exc),
        )

    free = np.asarray(result.x, dtype=np.float64)
    mse = problem(free)
    params = problem.transform.expand(free) if np.isfinite(mse) else None
    if params is None:
        _LOGGER.warning("restart %d rejected: %s", index, result.message)
    return RestartResult(
        index=int(index),
        start=start_tuple,
        params=params,
        mse=float(mse),
        converged=bool(result.success),
        n_evaluations=int(getattr(result, "nfev", 0) or 0),
        message=str(result.message),
    )


def _prefer(a: RestartResult, b: RestartResult) -> RestartResult:
    return a if (a.mse, a.index) <= (b.mse, b.index) else b


def select_best(results: Iterable[RestartResult]) -> RestartResult:
    """Fold restart results to the minimum-MSE entry.

    Raises ``CalibrationFailedError`` when no restart is finite.
    """

    items = list(results)
    if not items:
        raise CalibrationFailedError("No restarts were run.")
    best = reduce(_prefer, items)
    if best.failed or best.params is None:
        raise CalibrationFailedError(f"All {len(items)} restarts failed.")
    return best


def _restart_worker(
    payload: tuple[CalibrationProblem, int, NDArray[np.float64], str, int, float],
) -> RestartResult:
    problem, index, start, method, maxiter, ftol = payload
    return run_restart(problem, index, start, method=method, maxiter=maxiter, ftol=ftol)


def _check_bounds(bounds: ParameterBounds) -> None:
    if tuple(bounds.names) != FREE_PARAMETERS:
        raise InvalidBoundsError(
            f"Bounds must cover {FREE_PARAMETERS} in order; got {tuple(bounds.names)}."
        )
    retention, sensitivity, decay = zip(bounds.lower, bounds.upper)
    if not (0.0 < retention[0] and retention[1] < 1.0):
        raise InvalidBoundsError("retention bounds must lie strictly inside (0, 1).")
    if sensitivity[0] < 0.0:
        raise InvalidBoundsError("error_sensitivity lower bound must be non-negative.")
    if decay[0] < 1.0:
        raise InvalidBoundsError("decay lower bound must be at least 1.")


def calibrate(
    observed: Sequence[float] | NDArray[np.float64],
    schedule: TrialSchedule,
    bounds: ParameterBounds | None = None,
    *,
    n_starts: int = 200,
    seed: int | np.random.SeedSequence | np.random.Generator | None = None,
    method: str = "L-BFGS-B",
    maxiter: int = 1000,
    ftol: float = 1e-12,
    initial_state: float = 0.0,
    workers: int | None = None,
) -> FitResult:
    """Fit retention, error sensitivity and decay to ``observed``.

    Missing observations (NaN) are excluded from the cost. The initial state
    is held at ``initial_state``.
    """

    y = np.asarray(observed, dtype=np.float64).ravel()
    if y.size != len(schedule):
        raise ValueError(f"observed has {y.size} samples but schedule has {len(schedule)} trials.")
    bounds = bounds or ParameterBounds.default()
    _check_bounds(bounds)
    if n_starts <= 0:
        raise ValueError("n_starts must be positive.")
    _optimizer_options(method, maxiter, ftol)
    n_observed = count_observed(y)
    if n_observed == 0:
        raise CalibrationFailedError("No observed samples to fit.")

    rng = seed if isinstance(seed, np.random.Generator) else np.random.default_rng(seed)
    starts = sample_uniform(bounds, rng, size=n_starts)
    problem = CalibrationProblem(
        observed=y,
        schedule=schedule,
        bounds=bounds,
        transform=FixedInitialState(initial_state=float(initial_state)),
    )
    payloads = [
        (problem, idx, starts[idx], str(method), int(maxiter), float(ftol))
        for idx in range(n_starts)
    ]

    max_workers = max(1, workers or 1)
    if max_workers == 1 or n_starts == 1:
        results = [_restart_worker(payload) for payload in payloads]
    else:
        with ProcessPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(_restart_worker, payloads))

    best = select_best(results)
    params = best.params
    if params is None:
        raise CalibrationFailedError(f"Best restart {best.index} has no parameters.")
    predicted = np.asarray(simulate(params, schedule).output, dtype=np.float64)
    return FitResult(
        params=params,
        mse=float(best.mse),
        best_index=int(best.index),
        restarts=tuple(sorted(results, key=lambda item: item.index)),
        predicted=predicted,
        r_squared=r_squared_raw(y, predicted),
        n_observed=n_observed,
    )


def _unit_worker(
    payload: tuple[str, NDArray[np.float64], TrialSchedule, dict[str, Any]],
) -> UnitFit:
    unit, observed, schedule, kwargs = payload
    if count_observed(observed) == 0:
        _LOGGER.warning("unit %s has no observed samples; skipping", unit)
        return UnitFit(unit=unit, status=FitStatus.NO_OBSERVATIONS, error="no observed samples")
    try:
        fit = calibrate(observed, schedule, **kwargs)
    except CalibrationFailedError as exc:
        _LOGGER.warning("calibration failed for unit %s: %s", unit, exc)
        return UnitFit(unit=unit, status=FitStatus.CALIBRATION_FAILED, error=str(exc))
    _LOGGER.info(
        "unit %s: A=%.4f b=%.4f d=%.4f mse=%.4g",
        unit,
        fit.params.retention,
        fit.params.error_sensitivity,
        fit.params.decay,
        fit.mse,
    )
    return UnitFit(unit=unit, status=FitStatus.OK, fit=fit)


def iter_calibrate_units(
    units: Sequence[tuple[str, Sequence[float]]],
    schedule: TrialSchedule,
    bounds: ParameterBounds | None = None,
    *,
    n_starts: int = 200,
    seed: int | None = None,
    method: str = "L-BFGS-B",
    maxiter: int = 1000,
    ftol: float = 1e-12,
    initial_state: float = 0.0,
    workers: int | None = None,
) -> Iterator[UnitFit]:
    """Calibrate each ``(unit_id, observed)`` pair independently, yielding in input order.

    Every series must match the schedule length; this is checked before any
    unit is fitted. Fit failures are recorded per unit and never abort the
    batch. Each unit gets its own child seed, so outcomes do not depend on
    ``workers``.
    """

    bounds = bounds or ParameterBounds.default()
    _check_bounds(bounds)
    series = [(str(unit), np.asarray(observed, dtype=np.float64).ravel()) for unit, observed in units]
    mismatched = [unit for unit, y in series if y.size != len(schedule)]
    if mismatched:
        raise ValueError(
            f"{len(mismatched)} unit(s) do not match the {len(schedule)}-trial schedule: "
            + ", ".join(mismatched[:5])
        )
    children = np.random.SeedSequence(seed).spawn(len(units))
    payloads = [
        (
            unit,
            observed,
            schedule,
            {
                "bounds": bounds,
                "n_starts": int(n_starts),
                "seed": child,
                "method": str(method),
                "maxiter": int(maxiter),
                "ftol": float(ftol),
                "initial_state": float(initial_state),
                "workers": 1,
            },
        )
        for (unit, observed), child in zip(series, children)
    ]

    max_workers = max(1, workers or 1)
    if max_workers == 1 or len(payloads) <= 1:
        for payload in payloads:
            yield _unit_worker(payload)
        return
    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        yield from executor.map(_unit_worker, payloads)


def calibrate_units(
    units: Sequence[tuple[str, Sequence[float]]],
    schedule: TrialSchedule,
    bounds: ParameterBounds | None = None,
    **kwargs: Any,
) -> list[UnitFit]:
    """Eager form of :func:`iter_calibrate_units`."""

    return list(iter_calibrate_units(units, schedule, bounds, **kwargs))
