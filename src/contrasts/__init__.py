"""Posterior contrast diagnostics: HDI, Type S and Type M error."""

from .draws import PosteriorDrawSet, load_draws_npz, save_draws_npz
from .hdi import hdi
from .summary import (
    ContrastReport,
    IntervalSummary,
    cohens_d_draws,
    contrast_report,
    contrast_summary,
    directional_probability,
    group_mean_summary,
    median_hdi,
)
from .type_errors import (
    TypeMResult,
    TypeSResult,
    collect_defined,
    type_m_error,
    type_m_ratios,
    type_s_error,
    type_s_indicators,
)

__all__ = [
    "ContrastReport",
    "IntervalSummary",
    "PosteriorDrawSet",
    "TypeMResult",
    "TypeSResult",
    "cohens_d_draws",
    "collect_defined",
    "contrast_report",
    "contrast_summary",
    "directional_probability",
    "group_mean_summary",
    "hdi",
    "load_draws_npz",
    "median_hdi",
    "save_draws_npz",
    "type_m_error",
    "type_m_ratios",
    "type_s_error",
    "type_s_indicators",
]
