"""
Posterior draw containers produced by an external sampler.

The sampler is expected to export, per draw ``d``:

* ``mu[d, g]``: the sampled mean of group ``g``;
* ``y_sim[d, i]`` / ``group_sim[d, i]``: a simulated replication of the
  study (outcome and group label per simulated observation);
* optionally ``sigma[d, g]``: the sampled scale of group ``g``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

__all__ = ["PosteriorDrawSet", "load_draws_npz", "save_draws_npz"]


@dataclass(frozen=True, eq=False)
class PosteriorDrawSet:
    """Draw-aligned posterior means and simulated replications.

    ``group_labels[j]`` is the label used in ``sim_groups`` for column ``j``
    of ``true_means``. Stan exports use 1-based labels, so pass
    ``group_labels=(1, 2, 3)`` for a three-group fit.
    """

    true_means: NDArray[np.float64]
    sim_outcomes: NDArray[np.float64]
    sim_groups: NDArray[np.int64]
    group_labels: tuple[int, ...] | None = None
    sigma: NDArray[np.float64] | None = None

    def __post_init__(self) -> None:
        mu = np.atleast_2d(np.asarray(self.true_means, dtype=np.float64))
        y_sim = np.atleast_2d(np.asarray(self.sim_outcomes, dtype=np.float64))
        raw_groups = np.atleast_2d(np.asarray(self.sim_groups))
        if not np.issubdtype(raw_groups.dtype, np.integer):
            if not np.all(np.equal(np.mod(raw_groups, 1), 0)):
                raise ValueError("sim_groups must contain integer labels.")
        groups = raw_groups.astype(np.int64)

        n_draws, n_groups = mu.shape
        if y_sim.shape != groups.shape:
            raise ValueError(
                f"sim_outcomes {y_sim.shape} and sim_groups {groups.shape} must share a shape."
            )
        if y_sim.shape[0] != n_draws:
            raise ValueError(
                f"Draw count mismatch: true_means has {n_draws} draws, simulations have {y_sim.shape[0]}."
            )

        labels = (
            tuple(range(n_groups))
            if self.group_labels is None
            else tuple(int(label) for label in self.group_labels)
        )
        if len(labels) != n_groups:
            raise ValueError(f"Expected {n_groups} group labels, got {len(labels)}.")
        if len(set(labels)) != len(labels):
            raise ValueError("group_labels must be unique.")

        sigma = None
        if self.sigma is not None:
            sigma = np.atleast_2d(np.asarray(self.sigma, dtype=np.float64))
            if sigma.shape != mu.shape:
                raise ValueError(f"sigma {sigma.shape} must match true_means {mu.shape}.")

        object.__setattr__(self, "true_means", mu)
        object.__setattr__(self, "sim_outcomes", y_sim)
        object.__setattr__(self, "sim_groups", groups)
        object.__setattr__(self, "group_labels", labels)
        object.__setattr__(self, "sigma", sigma)

    @property
    def n_draws(self) -> int:
        return int(self.true_means.shape[0])

    @property
    def n_groups(self) -> int:
        return int(self.true_means.shape[1])

    def label_of(self, group: int) -> int:
        if not 0 <= int(group) < self.n_groups:
            raise IndexError(f"group index {group} out of range for {self.n_groups} groups.")
        if self.group_labels is None:
            raise ValueError("group_labels were not resolved.")
        return int(self.group_labels[int(group)])

    def true_difference(self, group1: int, group2: int) -> NDArray[np.float64]:
        self.label_of(group1)
        self.label_of(group2)
        return self.true_means[:, int(group1)] - self.true_means[:, int(group2)]

    def simulated_group_means(self, group: int) -> NDArray[np.float64]:
        """Per-draw mean of simulated outcomes labelled ``group``.

        Draws without any simulated member of the group yield NaN.
        """

        mask = self.sim_groups == self.label_of(group)
        counts = mask.sum(axis=1)
        totals = np.where(mask, self.sim_outcomes, 0.0).sum(axis=1)
        with np.errstate(invalid="ignore", divide="ignore"):
            means = totals / counts
        return np.where(counts > 0, means, np.nan)

    def simulated_difference(self, group1: int, group2: int) -> NDArray[np.float64]:
        return self.simulated_group_means(group1) - self.simulated_group_means(group2)


def load_draws_npz(
    path: str | Path,
    *,
    group_labels: Sequence[int] | None = None,
) -> PosteriorDrawSet:
    """Load ``mu``, ``y_sim``, ``group_sim`` (and ``sigma`` if present) from an ``.npz``.

    When ``group_labels`` is omitted and the file has no ``group_labels``
    array, labels default to ``1..G`` (the Stan convention).
    """

    with np.load(Path(path), allow_pickle=False) as payload:
        missing = [key for key in ("mu", "y_sim", "group_sim") if key not in payload.files]
        if missing:
            raise KeyError(f"{path} is missing required arrays: {', '.join(missing)}")
        mu = np.asarray(payload["mu"], dtype=np.float64)
        y_sim = np.asarray(payload["y_sim"], dtype=np.float64)
        group_sim = np.asarray(payload["group_sim"])
        sigma = np.asarray(payload["sigma"], dtype=np.float64) if "sigma" in payload.files else None
        stored_labels = payload["group_labels"] if "group_labels" in payload.files else None

    if group_labels is None:
        if stored_labels is not None:
            group_labels = [int(v) for v in np.asarray(stored_labels).ravel()]
        else:
            group_labels = list(range(1, np.atleast_2d(mu).shape[1] + 1))
    return PosteriorDrawSet(
        true_means=mu,
        sim_outcomes=y_sim,
        sim_groups=group_sim,
        group_labels=tuple(group_labels),
        sigma=sigma,
    )


def save_draws_npz(draws: PosteriorDrawSet, path: str | Path) -> Path:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    arrays: dict[str, NDArray] = {
        "mu": draws.true_means,
        "y_sim": draws.sim_outcomes,
        "group_sim": draws.sim_groups,
        "group_labels": np.asarray(draws.group_labels, dtype=np.int64),
    }
    if draws.sigma is not None:
        arrays["sigma"] = draws.sigma
    np.savez_compressed(output_path, **arrays)
    return output_path
