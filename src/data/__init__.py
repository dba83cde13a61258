"""
Data utilities for per-subject trial tables.
"""

from .loader import SubjectSeries, TrialTableConfig, load_trial_table, subject_series
from .windows import (
    STUDY_WINDOWS,
    group_summary,
    missing_summary,
    window_mean,
    window_means,
    window_values,
)

__all__ = [
    "STUDY_WINDOWS",
    "SubjectSeries",
    "TrialTableConfig",
    "group_summary",
    "load_trial_table",
    "missing_summary",
    "subject_series",
    "window_mean",
    "window_means",
    "window_values",
]
