from __future__ import annotations

from .plots import group_mean_parameters, plot_group_curves, plot_model_fit, plot_parameter_scatter
from .tables import (
    contrasts_frame,
    fits_frame,
    late_learning_frame,
    predictions_frame,
    table_contrasts,
    table_fits,
)

__all__ = [
    "contrasts_frame",
    "fits_frame",
    "group_mean_parameters",
    "late_learning_frame",
    "plot_group_curves",
    "plot_model_fit",
    "plot_parameter_scatter",
    "predictions_frame",
    "table_contrasts",
    "table_fits",
]
