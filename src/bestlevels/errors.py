from __future__ import annotations


class BestLevelsError(Exception):
    """Base class for errors raised by bestlevels."""


class ConfigurationError(BestLevelsError, ValueError):
    """Invalid arguments or inputs that do not fit the requested selection."""


class DataQualityError(BestLevelsError, ValueError):
    """The data cannot be scored under the configured policies."""


class EmptyResultWarning(UserWarning):
    """Fewer eligible groups than requested; the selection is smaller than n_levels."""
