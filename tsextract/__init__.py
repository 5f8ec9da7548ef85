__version__ = "0.1.0"

import tsextract.core.io as io

from .processing import RasterTimeStack
from .extractor import (
    ExtractionConfig,
    extract_time_series,
    extract_time_series_with_config,
)
from .exceptions import (
    TsExtractError,
    InvalidStackError,
    InvalidFeaturesError,
    DateRangeError,
    DateFormatError,
    VectorLoadError,
)

__all__ = [
    "__version__",
    "io",
    # processing
    "RasterTimeStack",
    # extraction
    "ExtractionConfig",
    "extract_time_series",
    "extract_time_series_with_config",
    # errors
    "TsExtractError",
    "InvalidStackError",
    "InvalidFeaturesError",
    "DateRangeError",
    "DateFormatError",
    "VectorLoadError",
]
