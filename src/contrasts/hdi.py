from __future__ import annotations

import math
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

__all__ = ["hdi"]


def hdi(
    sample: Sequence[float] | NDArray[np.float64],
    cred_mass: float = 0.89,
) -> tuple[float, float]:
    """Highest density interval of ``sample``.

    Slides a window of ``floor(cred_mass * n)`` consecutive sorted points
    (at least one) and returns the narrowest ``(lower, upper)``; ties go to
    the lowest start index. A window covering every point returns the full
    range. The window holds exactly ``floor(cred_mass * n)`` points, not one
    more, so the interval for 1..10 at 0.5 is (1, 5).
    """

    if not 0.0 < float(cred_mass) < 1.0:
        raise ValueError("cred_mass must lie in (0, 1).")
    values = np.asarray(sample, dtype=np.float64).ravel()
    if values.size == 0:
        raise ValueError("hdi requires at least one sample.")
    if not np.all(np.isfinite(values)):
        raise ValueError("hdi sample must be finite; drop undefined values first.")

    ordered = np.sort(values, kind="stable")
    n = ordered.size
    count = min(n, max(1, int(math.floor(float(cred_mass) * n))))
    widths = ordered[count - 1 :] - ordered[: n - count + 1]
    start = int(np.argmin(widths))
    return float(ordered[start]), float(ordered[start + count - 1])
