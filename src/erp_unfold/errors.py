"""
Exception types raised by the unfolding pipeline.

Validation failures (NaN in the condensed output) are not exceptions; they
are reported through the subject outcome in ``pipeline``.
"""


class ConfigurationError(ValueError):
    """Malformed or inconsistent user configuration, formula or factor reference."""


class FitError(RuntimeError):
    """The regression could not be solved for a subject."""
