from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from contrasts.draws import PosteriorDrawSet, load_draws_npz, save_draws_npz

pytestmark = pytest.mark.unit


def test_simulated_group_means_follow_labels() -> None:
    draws = PosteriorDrawSet(
        true_means=np.array([[0.0, 0.0]]),
        sim_outcomes=np.array([[1.0, 3.0, 10.0]]),
        sim_groups=np.array([[1, 1, 2]]),
        group_labels=(1, 2),
    )
    np.testing.assert_allclose(draws.simulated_group_means(0), [2.0])
    np.testing.assert_allclose(draws.simulated_difference(1, 0), [8.0])
    assert draws.label_of(1) == 2


def test_shape_validation() -> None:
    with pytest.raises(ValueError):
        PosteriorDrawSet(
            true_means=np.zeros((3, 2)),
            sim_outcomes=np.zeros((2, 4)),
            sim_groups=np.zeros((2, 4), dtype=int),
        )
    with pytest.raises(ValueError):
        PosteriorDrawSet(
            true_means=np.zeros((2, 2)),
            sim_outcomes=np.zeros((2, 4)),
            sim_groups=np.zeros((2, 3), dtype=int),
        )
    with pytest.raises(ValueError):
        PosteriorDrawSet(
            true_means=np.zeros((2, 2)),
            sim_outcomes=np.zeros((2, 2)),
            sim_groups=np.full((2, 2), 0.5),
        )
    with pytest.raises(ValueError):
        PosteriorDrawSet(
            true_means=np.zeros((1, 2)),
            sim_outcomes=np.zeros((1, 2)),
            sim_groups=np.zeros((1, 2), dtype=int),
            group_labels=(1, 1),
        )


def test_group_index_out_of_range() -> None:
    draws = PosteriorDrawSet(
        true_means=np.zeros((1, 2)),
        sim_outcomes=np.zeros((1, 2)),
        sim_groups=np.array([[0, 1]]),
    )
    with pytest.raises(IndexError):
        draws.true_difference(0, 2)


def test_npz_round_trip(tmp_path: Path) -> None:
    rng = np.random.default_rng(0)
    draws = PosteriorDrawSet(
        true_means=rng.normal(size=(5, 3)),
        sim_outcomes=rng.normal(size=(5, 6)),
        sim_groups=np.tile([4, 4, 5, 5, 6, 6], (5, 1)),
        group_labels=(4, 5, 6),
        sigma=np.ones((5, 3)),
    )
    path = save_draws_npz(draws, tmp_path / "nested" / "draws.npz")
    loaded = load_draws_npz(path)
    assert loaded.group_labels == (4, 5, 6)
    np.testing.assert_array_equal(loaded.true_means, draws.true_means)
    np.testing.assert_array_equal(loaded.sim_groups, draws.sim_groups)
    assert loaded.sigma is not None


def test_npz_defaults_to_one_based_labels(tmp_path: Path) -> None:
    path = tmp_path / "stan.npz"
    np.savez(
        path,
        mu=np.array([[1.0, 0.0]]),
        y_sim=np.array([[2.0, 0.0]]),
        group_sim=np.array([[1.0, 2.0]]),
    )
    draws = load_draws_npz(path)
    assert draws.group_labels == (1, 2)
    assert draws.sigma is None
    np.testing.assert_allclose(draws.simulated_difference(0, 1), [2.0])


def test_npz_missing_arrays(tmp_path: Path) -> None:
    path = tmp_path / "partial.npz"
    np.savez(path, mu=np.zeros((1, 2)))
    with pytest.raises(KeyError):
        load_draws_npz(path)
