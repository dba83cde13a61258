from __future__ import annotations

import math

import numpy as np
import pytest

from contrasts.hdi import hdi

pytestmark = pytest.mark.unit


def test_hdi_on_evenly_spaced_values() -> None:
    lower, upper = hdi(np.arange(1.0, 11.0), cred_mass=0.5)
    assert (lower, upper) == (1.0, 5.0)
    assert upper - lower == pytest.approx(4.0)


def test_hdi_is_order_invariant() -> None:
    values = np.array([5.0, 3.0, 9.0, 1.0, 7.0, 2.0, 8.0])
    rng = np.random.default_rng(0)
    shuffled = rng.permutation(values)
    assert hdi(values, 0.6) == hdi(shuffled, 0.6)


def test_hdi_picks_the_dense_region() -> None:
    sample = np.concatenate([np.linspace(0.0, 1.0, 90), np.linspace(10.0, 50.0, 10)])
    lower, upper = hdi(sample, cred_mass=0.89)
    assert 0.0 <= lower < 0.05
    assert upper <= 1.0


@pytest.mark.parametrize("cred_mass", [0.5, 0.89, 0.95])
def test_hdi_contains_requested_mass(cred_mass: float) -> None:
    sample = np.random.default_rng(42).gamma(2.0, size=1000)
    lower, upper = hdi(sample, cred_mass=cred_mass)
    inside = np.count_nonzero((sample >= lower) & (sample <= upper))
    assert lower <= upper
    assert inside >= math.floor(cred_mass * sample.size)


def test_hdi_narrower_than_equal_tailed_interval_for_skewed_draws() -> None:
    sample = np.random.default_rng(1).exponential(size=2000)
    lower, upper = hdi(sample, cred_mass=0.89)
    q_lo, q_hi = np.quantile(sample, [0.055, 0.945])
    assert upper - lower <= q_hi - q_lo


def test_hdi_degenerate_samples() -> None:
    assert hdi([3.0]) == (3.0, 3.0)
    assert hdi([2.0, 2.0, 2.0], cred_mass=0.5) == (2.0, 2.0)


@pytest.mark.parametrize("cred_mass", [0.0, 1.0, -0.1, 1.5])
def test_hdi_rejects_invalid_mass(cred_mass: float) -> None:
    with pytest.raises(ValueError):
        hdi([1.0, 2.0, 3.0], cred_mass=cred_mass)


def test_hdi_rejects_empty_or_undefined_samples() -> None:
    with pytest.raises(ValueError):
        hdi([])
    with pytest.raises(ValueError):
        hdi([1.0, np.nan])
