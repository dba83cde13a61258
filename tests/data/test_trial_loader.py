from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from data.loader import TrialTableConfig, load_trial_table, subject_series

pytestmark = pytest.mark.unit


def _toy_table() -> pd.DataFrame:
    records = [
        ("s2", "DT", 1, 0.5),
        ("s2", "DT", 2, 4.0),
        ("s2", "DT", 3, 7.5),
        ("s1", "ST", 1, 0.0),
        ("s1", "ST", 3, 9.0),
        ("s1", "ST", 2, None),
    ]
    return pd.DataFrame(records, columns=["subject", "condition", "cycle_num", "hand_angle"])


def _config(**kwargs: object) -> TrialTableConfig:
    return TrialTableConfig(
        id_col="subject",
        group_col="condition",
        cycle_col="cycle_num",
        value_col="hand_angle",
        **kwargs,
    )


def test_load_trial_table_normalises_columns() -> None:
    table = load_trial_table(_toy_table(), config=_config())
    assert list(table.columns) == ["id", "group", "cycle", "ha"]
    assert table["cycle"].dtype.kind == "i"
    assert table["ha"].isna().sum() == 1
    assert table.iloc[0]["group"] == "DT"


def test_group_order_controls_sorting() -> None:
    table = load_trial_table(_toy_table(), config=_config(group_order=["ST", "DT"]))
    assert table["id"].drop_duplicates().tolist() == ["s1", "s2"]
    with pytest.raises(ValueError):
        load_trial_table(_toy_table(), config=_config(group_order=["ST"]))


def test_load_trial_table_from_csv(tmp_path: Path) -> None:
    path = tmp_path / "trials.csv"
    frame = _toy_table().rename(
        columns={"subject": "id", "condition": "group", "cycle_num": "cycle", "hand_angle": "ha"}
    )
    frame.to_csv(path, index=False)
    table = load_trial_table(path)
    assert len(table) == 6
    assert set(table["id"]) == {"s1", "s2"}


def test_load_trial_table_validation() -> None:
    frame = _toy_table()
    with pytest.raises(ValueError, match="missing columns"):
        load_trial_table(frame.drop(columns=["hand_angle"]), config=_config())
    duplicated = pd.concat([frame, frame.iloc[[0]]], ignore_index=True)
    with pytest.raises(ValueError, match="duplicate"):
        load_trial_table(duplicated, config=_config())
    zero_based = frame.assign(cycle_num=frame["cycle_num"] - 1)
    with pytest.raises(ValueError, match="1-based"):
        load_trial_table(zero_based, config=_config())
    regrouped = frame.copy()
    regrouped.loc[0, "condition"] = "ST"
    with pytest.raises(ValueError, match="more than one group"):
        load_trial_table(regrouped, config=_config())


def test_unsupported_extension(tmp_path: Path) -> None:
    path = tmp_path / "trials.xlsx"
    path.write_text("", encoding="utf-8")
    with pytest.raises(ValueError):
        load_trial_table(path)


def test_subject_series_fills_missing_cycles() -> None:
    table = load_trial_table(_toy_table(), config=_config())
    series = {item.id: item for item in subject_series(table, n_cycles=4)}
    np.testing.assert_allclose(series["s2"].observed, [0.5, 4.0, 7.5, np.nan])
    assert series["s1"].group == "ST"
    assert series["s1"].n_missing == 2
    assert np.isnan(series["s1"].observed[1])


def test_subject_series_rejects_empty_table() -> None:
    empty = pd.DataFrame(columns=["id", "group", "cycle", "ha"])
    with pytest.raises(ValueError):
        subject_series(empty)
