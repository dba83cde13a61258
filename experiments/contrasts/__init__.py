"""Posterior contrast diagnostics driver (Type S, Type M, HDI)."""
