from __future__ import annotations

import numpy as np
import pytest

from statespace.params import ModelParameters
from statespace.schedule import CYCLE_BREAKS, TrialSchedule, cycle_schedule
from statespace.simulate import iter_states, simulate, simulate_noisy

pytestmark = pytest.mark.unit


def test_veridical_feedback_matches_hand_recursion() -> None:
    params = ModelParameters(retention=0.9, error_sensitivity=0.2)
    schedule = TrialSchedule.from_arrays([10.0, 10.0, 10.0])
    result = simulate(params, schedule)
    # x2 = 0.2 * 10, x3 = 0.9 * 2 + 0.2 * (10 - 2)
    np.testing.assert_allclose(result.state, [0.0, 2.0, 3.4])
    np.testing.assert_array_equal(result.output, result.state)


def test_clamp_error_ignores_output() -> None:
    params = ModelParameters(retention=0.9, error_sensitivity=0.2)
    schedule = TrialSchedule.from_arrays(
        [np.nan, np.nan, np.nan],
        is_clamp=[True, True, True],
        clamp_value=[45.0, 45.0, 45.0],
    )
    state = simulate(params, schedule).state
    np.testing.assert_allclose(state, [0.0, 9.0, 17.1])


def test_first_trial_equals_initial_state() -> None:
    params = ModelParameters(retention=0.5, error_sensitivity=0.1, initial_state=7.5)
    schedule = TrialSchedule.from_arrays(np.zeros(5))
    assert simulate(params, schedule).output[0] == pytest.approx(7.5)
    assert len(simulate(params, schedule).output) == len(schedule)


def test_set_break_applies_decayed_retention_once() -> None:
    params = ModelParameters(retention=0.9, error_sensitivity=0.0, initial_state=10.0, decay=2.0)
    schedule = TrialSchedule.from_arrays(
        [np.nan] * 3,
        is_clamp=[True] * 3,
        clamp_value=[0.0] * 3,
        is_set_break=[True, False, False],
    )
    state = simulate(params, schedule).state
    np.testing.assert_allclose(state, [10.0, 8.1, 7.29])


def test_decay_of_one_is_a_no_op() -> None:
    schedule = cycle_schedule()
    base = ModelParameters(retention=0.85, error_sensitivity=0.15, decay=1.0)
    no_breaks = TrialSchedule.from_arrays(
        schedule.perturbation,
        is_clamp=schedule.is_clamp,
        clamp_value=schedule.clamp_value,
    )
    np.testing.assert_allclose(simulate(base, schedule).output, simulate(base, no_breaks).output)


def test_undefined_perturbation_propagates() -> None:
    params = ModelParameters(retention=0.9, error_sensitivity=0.2)
    schedule = TrialSchedule.from_arrays([np.nan, 0.0, 0.0])
    state = simulate(params, schedule).state
    assert state[0] == 0.0
    assert np.isnan(state[1]) and np.isnan(state[2])


def test_iter_states_is_lazy_and_ordered() -> None:
    params = ModelParameters(retention=0.9, error_sensitivity=0.2)
    schedule = TrialSchedule.from_arrays([10.0, 10.0, 10.0])
    states = iter_states(params, schedule)
    assert next(states) == 0.0
    assert next(states) == pytest.approx(2.0)


def test_simulation_output_is_read_only() -> None:
    params = ModelParameters(retention=0.9, error_sensitivity=0.2)
    output = simulate(params, cycle_schedule()).output
    with pytest.raises(ValueError):
        output[0] = 1.0


def test_noise_is_added_after_recursion() -> None:
    params = ModelParameters(retention=0.9, error_sensitivity=0.2, noise_sd=2.0)
    schedule = cycle_schedule()
    clean = simulate(params, schedule)
    noisy = simulate_noisy(params, schedule, rng=3)
    np.testing.assert_array_equal(noisy.state, clean.state)
    assert not np.allclose(noisy.output, clean.output)

    again = simulate_noisy(params, schedule, rng=np.random.default_rng(3))
    np.testing.assert_array_equal(noisy.output, again.output)


def test_zero_noise_matches_clean_output() -> None:
    params = ModelParameters(retention=0.9, error_sensitivity=0.2)
    schedule = cycle_schedule()
    np.testing.assert_array_equal(
        simulate_noisy(params, schedule, rng=0).output,
        simulate(params, schedule).output,
    )


def test_cycle_schedule_layout() -> None:
    schedule = cycle_schedule()
    assert len(schedule) == 91
    assert not schedule.is_clamp[:10].any()
    np.testing.assert_array_equal(schedule.perturbation[:10], 0.0)
    assert schedule.is_clamp[10:50].all()
    np.testing.assert_array_equal(schedule.clamp_value[10:50], 45.0)
    assert schedule.is_clamp[50] and schedule.clamp_value[50] == 0.0
    assert not schedule.is_clamp[51:71].any()
    assert schedule.is_clamp[71:].all()
    assert np.flatnonzero(schedule.is_set_break).tolist() == [c - 1 for c in CYCLE_BREAKS]


def test_schedule_window_uses_one_based_cycles() -> None:
    schedule = cycle_schedule().window(range(1, 52))
    assert len(schedule) == 51
    assert schedule.is_clamp[50]
    assert np.flatnonzero(schedule.is_set_break).tolist() == [9, 29, 49]
    with pytest.raises(ValueError):
        cycle_schedule().window([0, 1])


def test_schedule_rejects_mismatched_lengths() -> None:
    with pytest.raises(ValueError):
        TrialSchedule.from_arrays([0.0, 0.0], is_clamp=[True])


def test_schedule_rejects_undefined_clamp_values() -> None:
    with pytest.raises(ValueError):
        TrialSchedule.from_arrays([np.nan], is_clamp=[True])
