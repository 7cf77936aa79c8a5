"""Tracking error types."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """A tracking configuration value is out of range; the previous value stays in force."""


class CostMatrixError(ValueError):
    """The cost matrix handed to the assignment solver is malformed."""
