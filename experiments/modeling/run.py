from __future__ import annotations

import argparse
import json
import logging
import time
from pathlib import Path
from typing import Any, Sequence

import pandas as pd
from tqdm import tqdm

from data.loader import SubjectSeries, TrialTableConfig, load_trial_table, subject_series
from data.windows import STUDY_WINDOWS, missing_summary
from experiments.modeling.config import ModelingConfig, resolve_modeling_config
from meta import runtime
from meta.run_meta import write_run_meta
from report.plots import plot_group_curves, plot_model_fit, plot_parameter_scatter
from report.tables import fits_frame, late_learning_frame, predictions_frame, table_fits
from statespace.calibrate import FitStatus, UnitFit, iter_calibrate_units
from statespace.fit_stats import parameter_correlations, parameter_summary
from statespace.schedule import cycle_schedule

_LOGGER = logging.getLogger(__name__)


def _parse_cycles(value: str) -> tuple[int, int]:
    parts = [part for part in value.replace(":", "-").split("-") if part.strip()]
    if len(parts) != 2:
        raise argparse.ArgumentTypeError("cycles must be formatted as first-last (e.g. 1-51).")
    try:
        return int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def parse_args(argv: Sequence[str] | None = None) -> tuple[ModelingConfig, dict[str, Any]]:
    parser = argparse.ArgumentParser(description="Fit the single-state model to every subject.")
    parser.set_defaults(plots=None)
    parser.add_argument("--data", type=Path, default=None, help="Long-format trial table (CSV or Parquet).")
    parser.add_argument("--config", type=Path, default=None, help="Optional YAML config layered over defaults.")
    parser.add_argument("--out-dir", type=Path, default=None, help="Output directory for tables and figures.")
    parser.add_argument("--id-col", type=str, default=None, help="Subject id column (default: id).")
    parser.add_argument("--group-col", type=str, default=None, help="Group column (default: group).")
    parser.add_argument("--cycle-col", type=str, default=None, help="1-based cycle column (default: cycle).")
    parser.add_argument("--value-col", type=str, default=None, help="Hand-angle column (default: ha).")
    parser.add_argument(
        "--group-order",
        type=str,
        default=None,
        help="Comma separated group order used for sorting and plots.",
    )
    parser.add_argument("--n-starts", type=int, default=None, help="Random restarts per subject (default: 200).")
    parser.add_argument("--method", type=str, default=None, help="scipy.optimize.minimize method.")
    parser.add_argument("--maxiter", type=int, default=None, help="Iteration cap per restart.")
    parser.add_argument("--seed", type=int, default=None, help="Base random seed for reproducibility.")
    parser.add_argument("--workers", type=int, default=None, help="Worker processes across subjects.")
    parser.add_argument(
        "--cycles",
        type=_parse_cycles,
        default=None,
        help="1-based cycle window to fit, formatted first-last (default: 1-51).",
    )
    parser.add_argument("--label", type=str, default=None, help="Optional run label recorded in run.json.")
    parser.add_argument("--plots", dest="plots", action="store_true", help="Write per-subject and group figures.")
    parser.add_argument("--no-plots", dest="plots", action="store_false", help="Skip figures.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the planned fit and exit without calibrating.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log per-subject fit summaries.")
    args = parser.parse_args(argv)

    options = vars(args).copy()
    dry_run = bool(options.pop("dry_run"))
    verbose = bool(options.pop("verbose"))
    result = resolve_modeling_config(options)
    resolved = dict(result.resolved)
    resolved["dry_run"] = dry_run
    resolved["verbose"] = verbose
    return result.config, resolved


def _write_figures(
    config: ModelingConfig,
    fits: list[UnitFit],
    fits_df: pd.DataFrame,
    subjects: Sequence[SubjectSeries],
    cycles: list[int],
) -> list[Path]:
    figures_dir = config.out_dir / "figures"
    lookup = {subject.id: subject for subject in subjects}
    paths: list[Path] = []
    for item in fits:
        if item.fit is None:
            continue
        observed = lookup[item.unit].observed[[c - 1 for c in cycles]]
        paths.append(
            plot_model_fit(
                item.unit,
                cycles,
                observed,
                item.fit.predicted,
                output_dir=figures_dir,
                r_squared=item.fit.r_squared,
            )
        )
    if fits_df["retention"].notna().any():
        paths.append(plot_parameter_scatter(fits_df, output_dir=figures_dir))
        paths.append(
            plot_group_curves(
                fits_df,
                cycle_schedule(),
                output_dir=figures_dir,
                initial_state=config.calibration.initial_state,
            )
        )
    return paths


def run_modeling(config: ModelingConfig, *, dry_run: bool = False, resolved: dict[str, Any] | None = None) -> Path:
    settings = config.calibration
    table = load_trial_table(
        config.data,
        config=TrialTableConfig(
            id_col=config.id_col,
            group_col=config.group_col,
            cycle_col=config.cycle_col,
            value_col=config.value_col,
            group_order=config.group_order,
        ),
    )
    full_schedule = cycle_schedule()
    cycles = list(settings.cycle_range())
    if cycles[-1] > len(full_schedule):
        raise ValueError(f"cycles end at {cycles[-1]} but the schedule has {len(full_schedule)} cycles.")
    schedule = full_schedule.window(cycles)
    subjects = subject_series(table, n_cycles=len(full_schedule))
    groups = {subject.id: subject.group for subject in subjects}

    if dry_run:
        print("[dry-run] single-state model calibration plan")
        print(f"  data: {config.data}")
        print(f"  output: {config.out_dir}")
        print(f"  subjects: {len(subjects)} across {len(set(groups.values()))} groups")
        print(f"  cycles: {cycles[0]}-{cycles[-1]} ({len(cycles)} fitted samples)")
        print(f"  restarts per subject: {settings.n_starts} ({settings.method})")
        return config.out_dir

    exec_settings = runtime.configure_exec(settings.workers)
    config.out_dir.mkdir(parents=True, exist_ok=True)

    units = [(subject.id, subject.observed[[c - 1 for c in cycles]]) for subject in subjects]
    fits: list[UnitFit] = []
    progress_start = time.perf_counter()
    iterator = iter_calibrate_units(
        units,
        schedule,
        settings.parameter_bounds(),
        n_starts=settings.n_starts,
        seed=settings.seed,
        method=settings.method,
        maxiter=settings.maxiter,
        ftol=settings.ftol,
        initial_state=settings.initial_state,
        workers=exec_settings.workers,
    )
    for item in tqdm(iterator, total=len(units), desc="Calibrating", unit="subject"):
        fits.append(item)
        elapsed = time.perf_counter() - progress_start
        progress_event = {
            "event": "modeling_progress",
            "subject": item.unit,
            "status": str(item.status),
            "current": len(fits),
            "total": len(units),
            "elapsed_seconds": elapsed,
            "eta_seconds": elapsed / len(fits) * (len(units) - len(fits)),
        }
        print(json.dumps(progress_event), flush=True)

    fits_df = fits_frame(fits, groups)
    table_fits(fits_df, output_dir=config.out_dir)
    predictions_frame(fits, subjects, cycles).to_csv(config.out_dir / "predictions.csv", index=False)
    missing_summary(subjects, cycles).to_csv(config.out_dir / "missing.csv", index=False)

    late_lo, late_hi = STUDY_WINDOWS["late_learning"]
    if cycles[0] <= late_lo and late_hi <= cycles[-1]:
        late_learning_frame(fits, subjects, cycles).to_csv(config.out_dir / "late_learning.csv", index=False)
    else:
        _LOGGER.warning("late-learning window %d-%d outside fitted cycles; skipping export", late_lo, late_hi)

    ok = fits_df[fits_df["status"] == str(FitStatus.OK)]
    if not ok.empty:
        parameter_correlations(ok).to_csv(config.out_dir / "correlations.csv", index=False)
        parameter_summary(ok).to_csv(config.out_dir / "parameter_summary.csv", index=False)

    if config.plots:
        _write_figures(config, fits, fits_df, subjects, cycles)

    n_failed = sum(1 for item in fits if item.status is not FitStatus.OK)
    write_run_meta(
        config.out_dir,
        config=resolved if resolved is not None else config.to_dict(),
        label=config.label,
        n_subjects=len(fits),
        n_failed=n_failed,
        execution=runtime.exec_metadata(exec_settings),
    )
    print(
        json.dumps(
            {
                "event": "modeling_complete",
                "out_dir": str(config.out_dir),
                "subjects": len(fits),
                "failed": n_failed,
            }
        ),
        flush=True,
    )
    return config.out_dir


def main(argv: Sequence[str] | None = None) -> Path:
    config, resolved = parse_args(argv)
    if resolved.get("verbose"):
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return run_modeling(config, dry_run=bool(resolved.get("dry_run")), resolved=resolved)


if __name__ == "__main__":  # pragma: no cover
    main()
