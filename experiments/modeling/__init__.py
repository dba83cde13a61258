"""Subject-level calibration driver for the single-state adaptation model."""
