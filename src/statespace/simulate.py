from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np
from numpy.typing import NDArray

from statespace.params import ModelParameters
from statespace.schedule import TrialSchedule

__all__ = ["SimulationResult", "iter_states", "simulate", "simulate_noisy"]


@dataclass(frozen=True)
class SimulationResult:
    """State and motor output trajectories, one entry per trial."""

    state: NDArray[np.float64]
    output: NDArray[np.float64]


def iter_states(params: ModelParameters, schedule: TrialSchedule) -> Iterator[float]:
    """Yield the noise-free state trial by trial.

    Output equals state in the single-state model. Undefined perturbations or
    outputs propagate as NaN into every later trial.
    """

    a = float(params.retention)
    a_break = a ** float(params.decay)
    b = float(params.error_sensitivity)

    x = float(params.initial_state)
    yield x
    for n in range(1, len(schedule)):
        prev = n - 1
        if schedule.is_clamp[prev]:
            error = float(schedule.clamp_value[prev])
        else:
            error = float(schedule.perturbation[prev]) - x
        retention = a_break if schedule.is_set_break[prev] else a
        x = retention * x + b * error
        yield x


def simulate(params: ModelParameters, schedule: TrialSchedule) -> SimulationResult:
    """Run the deterministic recursion over the full schedule."""

    state = np.fromiter(iter_states(params, schedule), dtype=np.float64, count=len(schedule))
    state.setflags(write=False)
    return SimulationResult(state=state, output=state)


def simulate_noisy(
    params: ModelParameters,
    schedule: TrialSchedule,
    rng: np.random.Generator | int | None = None,
) -> SimulationResult:
    """Simulate and add observation noise with SD ``params.noise_sd``.

    Noise is applied to every output sample after the recursion and never
    feeds back into the state.
    """

    clean = simulate(params, schedule)
    generator = rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)
    noise = generator.normal(loc=0.0, scale=float(params.noise_sd), size=clean.output.shape)
    return SimulationResult(state=clean.state, output=clean.output + noise)
