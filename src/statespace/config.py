"""
Configuration helpers for multi-start calibration defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Sequence

import yaml

from statespace.params import ParameterBounds

__all__ = [
    "CalibrationSettings",
    "get_calibration_settings",
    "override_calibration_settings",
    "load_calibration_settings",
    "settings_from_mapping",
]

DEFAULT_CONFIG_PATH = Path("configs/calibration.yaml")


def _default_bounds() -> dict[str, tuple[float, float]]:
    bounds = ParameterBounds.default()
    return {name: (lo, hi) for name, lo, hi in zip(bounds.names, bounds.lower, bounds.upper)}


@dataclass(frozen=True)
class CalibrationSettings:
    """Resolved calibration defaults used by the fitting pipeline."""

    bounds: Mapping[str, tuple[float, float]] = field(default_factory=_default_bounds)
    n_starts: int = 200
    method: str = "L-BFGS-B"
    maxiter: int = 1000
    ftol: float = 1e-12
    initial_state: float = 0.0
    seed: int | None = 0
    workers: int | None = None
    cycles: tuple[int, int] = (1, 51)

    def __post_init__(self) -> None:
        if self.n_starts <= 0:
            raise ValueError("n_starts must be positive.")
        if self.maxiter <= 0:
            raise ValueError("maxiter must be positive.")
        lo, hi = self.cycles
        if lo < 1 or hi < lo:
            raise ValueError("cycles must be a 1-based (first, last) pair with first <= last.")

    def parameter_bounds(self) -> ParameterBounds:
        return ParameterBounds.from_mapping(self.bounds)

    def cycle_range(self) -> range:
        return range(int(self.cycles[0]), int(self.cycles[1]) + 1)

    def with_overrides(self, **kwargs: object) -> "CalibrationSettings":
        return replace(self, **kwargs)

    def to_dict(self) -> dict[str, object]:
        return {
            "bounds": {name: [float(lo), float(hi)] for name, (lo, hi) in self.bounds.items()},
            "n_starts": int(self.n_starts),
            "method": str(self.method),
            "maxiter": int(self.maxiter),
            "ftol": float(self.ftol),
            "initial_state": float(self.initial_state),
            "seed": self.seed,
            "workers": self.workers,
            "cycles": [int(self.cycles[0]), int(self.cycles[1])],
        }


_SETTINGS_CACHE: CalibrationSettings | None = None


def get_calibration_settings(force_reload: bool = False) -> CalibrationSettings:
    """Return cached calibration settings, reloading from disk when requested."""

    global _SETTINGS_CACHE
    if force_reload or _SETTINGS_CACHE is None:
        _SETTINGS_CACHE = load_calibration_settings()
    return _SETTINGS_CACHE


def override_calibration_settings(settings: CalibrationSettings | None) -> None:
    """Override the cached calibration settings (primarily for tests)."""

    global _SETTINGS_CACHE
    _SETTINGS_CACHE = settings


def load_calibration_settings(
    *,
    config_path: Path | None = None,
    overrides: Mapping[str, object] | None = None,
) -> CalibrationSettings:
    """
    Load calibration defaults from YAML, then apply ``overrides``.
    """

    config_data = _read_yaml_dict(config_path or DEFAULT_CONFIG_PATH)
    if overrides:
        config_data = config_data | {k: v for k, v in overrides.items() if v is not None}
    return settings_from_mapping(config_data)


def settings_from_mapping(config_data: Mapping[str, object]) -> CalibrationSettings:
    """Build settings from a (possibly partial) mapping; unknown keys are ignored."""

    defaults = CalibrationSettings()
    merged = {
        key: config_data.get(key, getattr(defaults, key))
        for key in defaults.__dataclass_fields__
    }

    # Normalise types
    merged["bounds"] = _normalise_bounds(merged["bounds"], defaults.bounds)
    merged["n_starts"] = int(merged["n_starts"])
    merged["method"] = str(merged["method"]).strip()
    merged["maxiter"] = int(merged["maxiter"])
    merged["ftol"] = float(merged["ftol"])
    merged["initial_state"] = float(merged["initial_state"])
    if merged.get("seed") is not None:
        merged["seed"] = int(merged["seed"])
    if merged.get("workers") is not None:
        merged["workers"] = int(merged["workers"])
    merged["cycles"] = _normalise_cycles(merged["cycles"])

    return CalibrationSettings(**merged)


def _read_yaml_dict(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        loaded = yaml.safe_load(handle) or {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Calibration config at {path} must be a mapping.")
    return loaded


def _normalise_bounds(
    raw: object,
    defaults: Mapping[str, tuple[float, float]],
) -> dict[str, tuple[float, float]]:
    if not isinstance(raw, Mapping):
        raise ValueError("bounds must be a mapping of parameter name to [lower, upper].")
    merged = dict(defaults)
    for name, pair in raw.items():
        if not isinstance(pair, Sequence) or len(pair) != 2:
            raise ValueError(f"bounds for {name!r} must be a [lower, upper] pair.")
        merged[str(name)] = (float(pair[0]), float(pair[1]))
    # Validate ordering eagerly so bad configs fail before any fitting starts.
    ParameterBounds.from_mapping(merged)
    return merged


def _normalise_cycles(raw: object) -> tuple[int, int]:
    if isinstance(raw, str):
        parts = [part for part in raw.replace(":", "-").split("-") if part.strip()]
        values = [int(part) for part in parts]
    elif isinstance(raw, Sequence):
        values = [int(item) for item in raw]
    else:
        raise ValueError("cycles must be a [first, last] pair or 'first-last' string.")
    if len(values) != 2:
        raise ValueError("cycles must contain exactly two values.")
    return values[0], values[1]
