from __future__ import annotations

import numpy as np
import pytest

from contrasts.draws import PosteriorDrawSet
from contrasts.type_errors import (
    collect_defined,
    type_m_error,
    type_m_ratios,
    type_s_error,
    type_s_indicators,
)

pytestmark = pytest.mark.unit


def _toy_draws() -> PosteriorDrawSet:
    # Draw-wise true differences: 1, 1, 2, 0; simulated differences: 2, -1, 1, 0.
    true_means = np.array([[1.0, 0.0], [1.0, 0.0], [2.0, 0.0], [0.0, 0.0]])
    sim_outcomes = np.array(
        [
            [2.0, 2.0, 0.0, 0.0],
            [0.0, 0.0, 1.0, 1.0],
            [1.0, 1.0, 0.0, 0.0],
            [3.0, 3.0, 3.0, 3.0],
        ]
    )
    sim_groups = np.tile([0, 0, 1, 1], (4, 1))
    return PosteriorDrawSet(true_means=true_means, sim_outcomes=sim_outcomes, sim_groups=sim_groups)


def test_collect_defined_drops_none_only() -> None:
    assert collect_defined([None, 0.0, False, None, 2.5]) == [0.0, False, 2.5]


def test_type_s_rate_over_defined_draws() -> None:
    result = type_s_error(_toy_draws())
    assert result.indicators == (False, True, False, None)
    assert result.n_defined == 3
    assert result.n_draws == 4
    assert result.rate == pytest.approx(1.0 / 3.0)
    assert result.defined


def test_type_m_ratios_and_summary() -> None:
    draws = _toy_draws()
    assert type_m_ratios(draws) == [2.0, 1.0, 0.5, None]
    result = type_m_error(draws, cred_mass=0.5)
    assert result.mean == pytest.approx(7.0 / 6.0)
    assert result.median == pytest.approx(1.0)
    assert result.n_defined == 3
    # floor(0.5 * 3) = 1 point per window, so the narrowest window is degenerate.
    assert result.hdi == (0.5, 0.5)


def test_type_m_threshold_is_inclusive() -> None:
    draws = _toy_draws()
    at_one = type_m_error(draws, threshold=1.0)
    assert at_one.n_defined == 3
    above = type_m_error(draws, threshold=1.5)
    assert above.n_defined == 1
    assert above.mean == pytest.approx(0.5)
    assert above.ratios == (0.5,)


def test_type_m_rejects_negative_threshold() -> None:
    with pytest.raises(ValueError):
        type_m_ratios(_toy_draws(), threshold=-0.1)


def test_zero_simulated_difference_counts_as_sign_error() -> None:
    draws = PosteriorDrawSet(
        true_means=np.array([[1.0, 0.0]]),
        sim_outcomes=np.array([[0.5, 0.5]]),
        sim_groups=np.array([[0, 1]]),
    )
    assert type_s_error(draws).rate == 1.0
    assert type_m_error(draws).mean == 0.0


def test_draw_without_simulated_members_is_undefined() -> None:
    draws = PosteriorDrawSet(
        true_means=np.array([[1.0, 0.0], [1.0, 0.0]]),
        sim_outcomes=np.array([[1.0, 2.0], [3.0, 1.0]]),
        sim_groups=np.array([[0, 0], [0, 1]]),
    )
    assert type_s_indicators(draws) == [None, False]
    assert type_m_ratios(draws) == [None, 2.0]


def test_all_draws_excluded_gives_undefined_aggregates() -> None:
    draws = PosteriorDrawSet(
        true_means=np.zeros((3, 2)),
        sim_outcomes=np.ones((3, 4)),
        sim_groups=np.tile([0, 1, 0, 1], (3, 1)),
    )
    type_s = type_s_error(draws)
    type_m = type_m_error(draws)
    assert type_s.rate is None and not type_s.defined
    assert type_s.n_defined == 0
    assert type_m.mean is None and type_m.median is None and type_m.hdi is None
    assert type_m.to_dict()["type_m_hdi_lower"] is None


def test_swapping_groups_preserves_both_diagnostics() -> None:
    draws = _toy_draws()
    assert type_s_error(draws, 0, 1).rate == type_s_error(draws, 1, 0).rate
    assert type_m_error(draws, 0, 1).ratios == type_m_error(draws, 1, 0).ratios


def test_stan_style_labels_map_to_columns() -> None:
    draws = PosteriorDrawSet(
        true_means=np.array([[0.0, 1.0, 3.0]]),
        sim_outcomes=np.array([[0.0, 1.0, 5.0, 5.0]]),
        sim_groups=np.array([[1, 2, 3, 3]]),
        group_labels=(1, 2, 3),
    )
    # Column 2 (label 3) vs column 0 (label 1): true 3, simulated 5.
    assert type_m_ratios(draws, 2, 0) == [pytest.approx(5.0 / 3.0)]
    assert type_s_indicators(draws, 2, 0) == [False]


def test_draws_are_processed_independently() -> None:
    draws = _toy_draws()
    subset = PosteriorDrawSet(
        true_means=draws.true_means[[1]],
        sim_outcomes=draws.sim_outcomes[[1]],
        sim_groups=draws.sim_groups[[1]],
    )
    assert type_s_indicators(subset) == [type_s_indicators(draws)[1]]


def _matched_draws(*, flip: bool, n_draws: int = 50, seed: int = 0) -> PosteriorDrawSet:
    # Two simulated members per group, each equal to its group's true mean.
    rng = np.random.default_rng(seed)
    mu0 = rng.normal(5.0, 1.0, n_draws)
    mu1 = mu0 - rng.uniform(0.5, 2.0, n_draws)
    first, second = (mu1, mu0) if flip else (mu0, mu1)
    sim_outcomes = np.column_stack([first, first, second, second])
    sim_groups = np.tile([0, 0, 1, 1], (n_draws, 1))
    return PosteriorDrawSet(
        true_means=np.column_stack([mu0, mu1]),
        sim_outcomes=sim_outcomes,
        sim_groups=sim_groups,
    )


def test_type_s_rate_is_zero_when_signs_always_agree() -> None:
    result = type_s_error(_matched_draws(flip=False))
    assert result.n_defined == 50
    assert result.rate == 0.0


def test_type_s_rate_is_one_when_signs_always_flip() -> None:
    result = type_s_error(_matched_draws(flip=True))
    assert result.n_defined == 50
    assert result.rate == 1.0


def test_type_m_is_one_when_simulated_matches_true_difference() -> None:
    result = type_m_error(_matched_draws(flip=False))
    assert result.n_defined == 50
    assert result.mean == pytest.approx(1.0)
    assert result.median == pytest.approx(1.0)
    assert result.hdi == (pytest.approx(1.0), pytest.approx(1.0))
