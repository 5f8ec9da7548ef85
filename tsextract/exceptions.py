"""Exceptions raised by time-series extraction.

Every error is fatal for the extraction call. Each class also derives from
the closest builtin so callers catching ``TypeError``/``ValueError``/``IOError``
keep working.
"""


class TsExtractError(Exception):
    """Base class for all extraction errors."""


class InvalidStackError(TsExtractError, TypeError):
    """Raster input is not a dated raster stack, or its dates are unusable."""


class InvalidFeaturesError(TsExtractError, TypeError):
    """Spatial input is not a supported feature collection or geometry kind."""


class DateRangeError(TsExtractError, ValueError):
    """Start date falls after end date."""


class DateFormatError(TsExtractError, ValueError):
    """A date argument could not be coerced to a date."""


class VectorLoadError(TsExtractError, IOError):
    """A vector dataset path could not be read."""
