"""Single-state adaptation model: simulation and multi-start calibration."""

from .calibrate import (
    CalibrationFailedError,
    CalibrationProblem,
    FitResult,
    FitStatus,
    RestartResult,
    UnitFit,
    calibrate,
    calibrate_units,
    iter_calibrate_units,
    mse_cost,
    select_best,
)
from .config import CalibrationSettings, load_calibration_settings, settings_from_mapping
from .fit_stats import r_squared_raw
from .params import (
    FixedInitialState,
    InvalidBoundsError,
    ModelParameters,
    ParameterBounds,
    sample_uniform,
)
from .schedule import TrialSchedule, cycle_schedule
from .simulate import SimulationResult, iter_states, simulate, simulate_noisy

__all__ = [
    "CalibrationFailedError",
    "CalibrationProblem",
    "CalibrationSettings",
    "FitResult",
    "FitStatus",
    "FixedInitialState",
    "InvalidBoundsError",
    "ModelParameters",
    "ParameterBounds",
    "RestartResult",
    "SimulationResult",
    "TrialSchedule",
    "UnitFit",
    "calibrate",
    "calibrate_units",
    "iter_calibrate_units",
    "cycle_schedule",
    "iter_states",
    "load_calibration_settings",
    "mse_cost",
    "r_squared_raw",
    "sample_uniform",
    "select_best",
    "settings_from_mapping",
    "simulate",
    "simulate_noisy",
]
