from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from statespace.config import CalibrationSettings, get_calibration_settings, settings_from_mapping

DEFAULT_CONFIG_PATH = Path(__file__).with_name("config.yaml")

# CLI keys routed into the calibration section.
CALIBRATION_KEYS = ("n_starts", "method", "maxiter", "ftol", "initial_state", "seed", "workers", "cycles")


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _deep_merge(merged[key], value)  # type: ignore[arg-type]
        else:
            merged[key] = value
    return merged


def _load_yaml(path: Path | None) -> dict[str, Any]:
    if path is None or not path.exists():
        return {}
    payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError(f"Modeling config at {path} must be a mapping.")
    return payload


DEFAULTS: dict[str, Any] = {
    "out_dir": "reports/modeling-latest",
    "id_col": "id",
    "group_col": "group",
    "cycle_col": "cycle",
    "value_col": "ha",
    "group_order": None,
    "plots": False,
    "label": None,
}


@dataclass(slots=True)
class ModelingConfig:
    data: Path
    out_dir: Path
    id_col: str
    group_col: str
    cycle_col: str
    value_col: str
    group_order: tuple[str, ...] | None
    plots: bool
    label: str | None
    calibration: CalibrationSettings
    config_path: Path | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "data": str(self.data),
            "out_dir": str(self.out_dir),
            "id_col": self.id_col,
            "group_col": self.group_col,
            "cycle_col": self.cycle_col,
            "value_col": self.value_col,
            "group_order": list(self.group_order) if self.group_order is not None else None,
            "plots": bool(self.plots),
            "label": self.label,
            "calibration": self.calibration.to_dict(),
            "config_path": str(self.config_path) if self.config_path is not None else None,
        }


@dataclass(slots=True)
class ResolveResult:
    config: ModelingConfig
    resolved: dict[str, Any]


def resolve_modeling_config(args: Mapping[str, Any]) -> ResolveResult:
    """Layer defaults, the YAML config and CLI values (later layers win)."""

    config_path = args.get("config")
    config_path_obj = Path(config_path) if config_path else None
    yaml_path = config_path_obj or DEFAULT_CONFIG_PATH
    if config_path_obj is not None and not config_path_obj.exists():
        raise FileNotFoundError(f"Config file not found: {config_path_obj}")

    # Calibration defaults come from configs/calibration.yaml via the settings cache.
    layers: list[dict[str, Any]] = [{**DEFAULTS, "calibration": get_calibration_settings().to_dict()}]
    yaml_data = _load_yaml(yaml_path)
    if yaml_data:
        layers.append(yaml_data)

    cli_data: dict[str, Any] = {}
    calibration_cli: dict[str, Any] = {}
    for key, value in args.items():
        if key == "config" or value is None:
            continue
        if key in CALIBRATION_KEYS:
            calibration_cli[key] = value
        else:
            cli_data[key] = value
    if calibration_cli:
        cli_data["calibration"] = calibration_cli
    if cli_data:
        layers.append(cli_data)

    merged: dict[str, Any] = {}
    for layer in layers:
        merged = _deep_merge(merged, layer)

    data = merged.get("data")
    if data is None:
        raise ValueError("data must be provided via CLI or configuration.")

    group_order_raw = merged.get("group_order")
    if isinstance(group_order_raw, str):
        group_order = tuple(part.strip() for part in group_order_raw.split(",") if part.strip())
    elif group_order_raw is not None:
        group_order = tuple(str(item) for item in group_order_raw)
    else:
        group_order = None

    calibration = settings_from_mapping(merged.get("calibration") or {})

    config = ModelingConfig(
        data=Path(data),
        out_dir=Path(merged.get("out_dir") or DEFAULTS["out_dir"]),
        id_col=str(merged.get("id_col", DEFAULTS["id_col"])),
        group_col=str(merged.get("group_col", DEFAULTS["group_col"])),
        cycle_col=str(merged.get("cycle_col", DEFAULTS["cycle_col"])),
        value_col=str(merged.get("value_col", DEFAULTS["value_col"])),
        group_order=group_order or None,
        plots=bool(merged.get("plots", DEFAULTS["plots"])),
        label=str(merged["label"]) if merged.get("label") else None,
        calibration=calibration,
        config_path=yaml_path if yaml_path.exists() else None,
    )
    return ResolveResult(config=config, resolved=config.to_dict())
