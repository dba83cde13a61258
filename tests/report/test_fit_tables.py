from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from contrasts.draws import PosteriorDrawSet
from contrasts.summary import contrast_report
from data.loader import SubjectSeries
from report.tables import (
    FIT_COLUMNS,
    contrasts_frame,
    fits_frame,
    late_learning_frame,
    predictions_frame,
    table_contrasts,
    table_fits,
)
from statespace.calibrate import FitResult, FitStatus, UnitFit
from statespace.params import ModelParameters

pytestmark = pytest.mark.unit

CYCLES = list(range(1, 52))


def _unit_fits() -> tuple[list[UnitFit], list[SubjectSeries]]:
    predicted = np.linspace(0.0, 20.0, len(CYCLES))
    fit = FitResult(
        params=ModelParameters(retention=0.9, error_sensitivity=0.1, decay=1.2),
        mse=0.25,
        best_index=3,
        restarts=(),
        predicted=predicted,
        r_squared=0.97,
        n_observed=51,
    )
    observed = np.concatenate([predicted + 1.0, np.full(40, np.nan)])
    subjects = [
        SubjectSeries(id="s1", group="ST", observed=observed),
        SubjectSeries(id="s2", group="DT", observed=np.full(91, np.nan)),
    ]
    fits = [
        UnitFit(unit="s1", status=FitStatus.OK, fit=fit),
        UnitFit(unit="s2", status=FitStatus.NO_OBSERVATIONS, error="no observed samples"),
    ]
    return fits, subjects


def test_fits_frame_keeps_failed_subjects() -> None:
    fits, subjects = _unit_fits()
    frame = fits_frame(fits, {s.id: s.group for s in subjects})
    assert list(frame.columns) == list(FIT_COLUMNS)
    assert frame["status"].tolist() == ["ok", "no_observations"]
    assert frame.loc[0, "retention"] == pytest.approx(0.9)
    assert np.isnan(frame.loc[1, "retention"])
    assert frame.loc[1, "error"] == "no observed samples"
    assert frame.loc[1, "group"] == "DT"


def test_table_fits_writes_csv_and_markdown(tmp_path: Path) -> None:
    fits, subjects = _unit_fits()
    frame = fits_frame(fits, {s.id: s.group for s in subjects})
    csv_path, md_path = table_fits(frame, output_dir=tmp_path / "tables")
    assert csv_path.exists() and md_path.exists()
    assert pd.read_csv(csv_path)["id"].tolist() == ["s1", "s2"]
    header = md_path.read_text(encoding="utf-8").splitlines()[0]
    assert "retention" in header and "error |" not in header
    with pytest.raises(ValueError):
        table_fits(frame.iloc[0:0], output_dir=tmp_path)


def test_predictions_and_late_learning_exports() -> None:
    fits, subjects = _unit_fits()
    predictions = predictions_frame(fits, subjects, CYCLES)
    assert len(predictions) == len(CYCLES)
    assert (predictions["observed"] - predictions["predicted"]).round(8).eq(1.0).all()

    late = late_learning_frame(fits, subjects, CYCLES)
    assert late["id"].tolist() == ["s1"]
    row = late.iloc[0]
    assert row["observed_mean"] - row["predicted_mean"] == pytest.approx(1.0)
    assert row["retention"] == pytest.approx(0.9)

    with pytest.raises(ValueError):
        late_learning_frame(fits, subjects, list(range(1, 40)))


def test_table_contrasts(tmp_path: Path) -> None:
    rng = np.random.default_rng(0)
    mu = np.column_stack([rng.normal(0.0, 1.0, 200), rng.normal(3.0, 1.0, 200)])
    groups = np.tile([0, 0, 0, 1, 1, 1], (200, 1))
    y_sim = mu[np.arange(200)[:, None], groups] + rng.normal(size=groups.shape)
    draws = PosteriorDrawSet(true_means=mu, sim_outcomes=y_sim, sim_groups=groups)
    frame = contrasts_frame([contrast_report(draws, 1, 0, names=["ST", "DT"])])
    csv_path, md_path = table_contrasts(frame, output_dir=tmp_path)
    assert pd.read_csv(csv_path)["contrast"].tolist() == ["DT - ST"]
    text = md_path.read_text(encoding="utf-8")
    assert "Type M HDI" in text and "DT - ST" in text
