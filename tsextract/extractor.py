"""Per-date, per-feature time series extraction from a dated raster stack.

``extract_time_series`` is the entry point. It validates its inputs, aligns
and crops the features to the stack, runs the point/line or polygon path and
assembles one column per input feature, whatever happened to the feature on
the way (sampled, re-extracted as a small polygon, or outside the extent).
"""

import warnings
import numpy as np
import pandas as pd
import geopandas as gpd
from datetime import date, datetime
from pathlib import Path
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from tsextract.config import config
from tsextract.core.io.data_store import DataStore
from tsextract.core.io.local_data_store import LocalDataStore
from tsextract.core.io.readers import read_vector_dataset
from tsextract.exceptions import (
    DateFormatError,
    DateRangeError,
    InvalidFeaturesError,
    InvalidStackError,
)
from tsextract.processing.aggregation import aggregator_name, resolve_aggregator
from tsextract.processing.geo import (
    align_to_raster,
    crop_to_bounds,
    geometry_kind,
    tag_features,
)
from tsextract.processing.raster_stack import RasterTimeStack
from tsextract.processing.sampling import extract_points_lines
from tsextract.processing.zonal import extract_polygons

LOGGER = config.get_logger("TimeSeriesExtractor")

OUT_FORMATS = ("table", "timeseries")
SMALL_METHODS = ("centroid", "full")
SMALL_METHOD_ALIASES = {"centroids": "centroid"}

DateLike = Union[str, date, datetime, np.datetime64, pd.Timestamp, None]
Features = Union[gpd.GeoDataFrame, gpd.GeoSeries, str, Path]


def _warn(message: str) -> None:
    LOGGER.warning(message)
    warnings.warn(message, UserWarning, stacklevel=3)


class ExtractionConfig(BaseModel):
    """Options of a single extraction call.

    Attributes:
        start_date: First date to extract; the first stack date when omitted.
        end_date: Last date to extract; the last stack date when omitted.
        id_field: Attribute naming the output columns; values must be unique.
        fun: Aggregation over the pixels of a polygon/line, by name or callable.
        out_format: 'table' adds a leading date column, 'timeseries' indexes
            rows by date.
        small: Also extract polygons too small to own a raster cell.
        small_method: 'centroid' or 'full', see ``extract_polygons``.
        skip_missing: Ignore missing pixels when aggregating.
        verbose: Report progress through the logger.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    start_date: Optional[Any] = None
    end_date: Optional[Any] = None
    id_field: Optional[str] = None
    fun: Union[str, Callable] = "mean"
    out_format: str = Field(default_factory=lambda: config.DEFAULT_OUT_FORMAT)
    small: bool = True
    small_method: str = Field(default_factory=lambda: config.DEFAULT_SMALL_METHOD)
    skip_missing: bool = True
    verbose: bool = False

    @field_validator("out_format", mode="before")
    def reset_unknown_out_format(cls, value: Any) -> str:
        if value not in OUT_FORMATS:
            _warn(
                f"Unknown 'out_format' value {value!r} - resetting to "
                f"'{config.DEFAULT_OUT_FORMAT}'"
            )
            return config.DEFAULT_OUT_FORMAT
        return value

    @field_validator("small_method", mode="before")
    def reset_unknown_small_method(cls, value: Any) -> str:
        value = SMALL_METHOD_ALIASES.get(value, value)
        if value not in SMALL_METHODS:
            _warn(
                f"Unknown 'small_method' value {value!r} - resetting to "
                f"'{config.DEFAULT_SMALL_METHOD}'"
            )
            return config.DEFAULT_SMALL_METHOD
        return value


def coerce_date(value: DateLike, name: str) -> Optional[pd.Timestamp]:
    """Coerce a date-like value to a naive ``pandas.Timestamp``."""
    if value is None:
        return None
    # pandas reads bare numbers as epoch nanoseconds
    if isinstance(value, (bool, int, float, np.number)):
        raise DateFormatError(f"{name} is a number, not a date: {value!r}")
    try:
        timestamp = pd.Timestamp(value)
    except (ValueError, TypeError, OverflowError) as e:
        raise DateFormatError(
            f"{name} is not a date or a string coercible to a date: {value!r}"
        ) from e
    if timestamp is pd.NaT:
        raise DateFormatError(f"{name} is not a date: {value!r}")
    if timestamp.tzinfo is not None:
        timestamp = timestamp.tz_convert(None)
    return timestamp


def resolve_date_window(
    stack: RasterTimeStack,
    start_date: DateLike = None,
    end_date: DateLike = None,
    verbose: bool = False,
) -> Tuple[pd.Timestamp, pd.Timestamp]:
    """Resolve the inclusive extraction window, defaulting to the stack's date range."""
    start = coerce_date(start_date, "start_date")
    end = coerce_date(end_date, "end_date")

    if start is None:
        start = stack.dates.min()
        if verbose:
            LOGGER.info("Starting date not provided - using the first date in the stack")
    if end is None:
        end = stack.dates.max()
        if verbose:
            LOGGER.info("Ending date not provided - using the last date in the stack")

    # the window is made of whole calendar days
    start, end = start.normalize(), end.normalize()
    if start > end:
        raise DateRangeError(
            f"start_date ({start.date()}) is later than end_date ({end.date()})"
        )
    return start, end


def load_features(
    features: Features, data_store: Optional[DataStore] = None
) -> gpd.GeoDataFrame:
    """Return the features as a GeoDataFrame, reading them first when given a path."""
    if isinstance(features, (str, Path)):
        return read_vector_dataset(data_store or LocalDataStore(), features)
    if isinstance(features, gpd.GeoDataFrame):
        return features
    if isinstance(features, gpd.GeoSeries):
        return gpd.GeoDataFrame(geometry=features)
    raise InvalidFeaturesError(
        f"Unsupported spatial input type: {type(features).__name__}. "
        "Expected a GeoDataFrame, a GeoSeries or the path of a vector dataset."
    )


def validate_id_field(gdf: gpd.GeoDataFrame, id_field: Optional[str]) -> Optional[str]:
    """
    Keep ``id_field`` only if it names an attribute with unique, non-missing values.

    An unusable field is dropped with a warning; output columns are then
    named by feature number.
    """
    if id_field is None:
        return None
    if id_field not in gdf.columns or id_field == gdf.geometry.name:
        _warn(
            f"Invalid 'id_field' value {id_field!r} - names of output columns "
            "will be the record number of the features"
        )
        return None
    values = gdf[id_field]
    if values.isna().any() or not values.is_unique:
        _warn(
            f"'id_field' {id_field!r} has missing or duplicated values - names of "
            "output columns will be the record number of the features"
        )
        return None
    return id_field


def assemble_output(
    values: Dict[int, np.ndarray],
    feature_ids: List[int],
    column_names: List[Any],
    dates: pd.DatetimeIndex,
    out_format: str,
    columns_name: Optional[str] = None,
) -> pd.DataFrame:
    """
    Materialize extracted values as one column per feature, in original
    feature order. Features without values are all-missing columns.
    """
    n_dates = len(dates)
    data = {
        position: values.get(fid, np.full(n_dates, np.nan))
        for position, fid in enumerate(feature_ids)
    }
    frame = pd.DataFrame(data, index=pd.DatetimeIndex(dates, name="date"), dtype="float64")
    frame.columns = pd.Index(column_names, name=columns_name)

    if out_format == "table":
        # a feature may itself be named "date"
        frame.insert(0, "date", frame.index, allow_duplicates=True)
        frame = frame.reset_index(drop=True)
    return frame


def extract_time_series_with_config(
    stack: RasterTimeStack,
    features: Features,
    extraction_config: ExtractionConfig,
    data_store: Optional[DataStore] = None,
) -> Optional[pd.DataFrame]:
    """Run an extraction described by an ``ExtractionConfig``."""
    opts = extraction_config

    if not isinstance(stack, RasterTimeStack):
        raise InvalidStackError(
            f"Input is not a RasterTimeStack (got {type(stack).__name__})"
        )
    aggregate = resolve_aggregator(opts.fun, opts.skip_missing)
    start, end = resolve_date_window(stack, opts.start_date, opts.end_date, opts.verbose)

    gdf = load_features(features, data_store)
    kind = geometry_kind(gdf)
    id_field = validate_id_field(gdf, opts.id_field)

    date_indices = stack.select_dates(start, end)
    if not date_indices:
        _warn(
            "Selected time range does not overlap with the one of the raster stack!"
        )
        return None
    dates = stack.dates[date_indices]

    id_column = config.FEATURE_ID_FIELD
    tagged = tag_features(gdf, id_column)
    feature_ids = tagged[id_column].astype(int).tolist()
    column_names = tagged[id_field].tolist() if id_field else list(feature_ids)

    aligned = align_to_raster(tagged, stack.crs)
    cropped, outside = crop_to_bounds(aligned, stack.bounds, id_column)

    LOGGER.info(
        f"Extracting {kind} time series for {len(feature_ids)} feature(s) on "
        f"{len(date_indices)} date(s) ({start.date()} - {end.date()}) "
        f"with '{aggregator_name(opts.fun)}'"
    )

    values: Dict[int, np.ndarray] = {}
    if cropped.empty:
        LOGGER.info("No feature intersects the raster extent")
    elif kind == "polygon":
        values = extract_polygons(
            stack,
            cropped,
            date_indices,
            aggregate,
            id_column=id_column,
            small=opts.small,
            small_method=opts.small_method,
            skip_missing=opts.skip_missing,
            verbose=opts.verbose,
        )
    else:
        values = extract_points_lines(
            stack,
            cropped,
            date_indices,
            aggregate,
            id_column=id_column,
            verbose=opts.verbose,
        )

    if opts.verbose:
        LOGGER.info(
            f"Extraction completed: {len(values)} feature(s) extracted, "
            f"{len(outside)} outside the raster extent"
        )

    return assemble_output(
        values, feature_ids, column_names, dates, opts.out_format, id_field
    )


def extract_time_series(
    stack: RasterTimeStack,
    features: Features,
    start_date: DateLike = None,
    end_date: DateLike = None,
    id_field: Optional[str] = None,
    fun: Union[str, Callable] = "mean",
    out_format: str = None,
    small: bool = True,
    small_method: str = None,
    skip_missing: bool = True,
    verbose: bool = False,
    data_store: Optional[DataStore] = None,
) -> Optional[pd.DataFrame]:
    """
    Extract per-date values of a raster stack at point, line or polygon features.

    Points take the value of the pixel containing them. Lines and polygons are
    summarized with ``fun`` over the pixels they touch (lines) or own
    (polygons, by pixel-centre rasterization). Features outside the raster
    extent yield missing values.

    Args:
        stack: Dated raster stack.
        features: GeoDataFrame, GeoSeries, or path of a vector dataset, all of
            one geometry kind.
        start_date: First date to extract (inclusive); defaults to the first
            stack date. Dates, datetimes and ISO strings are accepted.
        end_date: Last date to extract (inclusive); defaults to the last stack date.
        id_field: Attribute with unique values used as column names. Falls back
            to feature numbers (1..N) with a warning if missing or not unique.
        fun: Aggregation name ('mean', 'median', 'sum', 'min', 'max', 'std',
            'var', 'count') or a callable taking a 1-D array. A callable with a
            ``skipna`` parameter receives ``skip_missing``; other callables
            get missing pixels removed first when ``skip_missing`` is set.
        out_format: 'table' for a frame with a leading ``date`` column,
            'timeseries' (default) for a frame indexed by date.
        small: Also extract polygons that own no raster cell.
        small_method: 'centroid' (default) or 'full'.
        skip_missing: Ignore missing pixels when aggregating.
        verbose: Report progress through the logger.
        data_store: Store used to read ``features`` when it is a path.

    Returns:
        One row per selected date (ascending) and one column per input
        feature, or None if no stack date falls in the window.

    Raises:
        InvalidStackError: ``stack`` is not a RasterTimeStack.
        InvalidFeaturesError: ``features`` is of an unsupported type or
            geometry kind.
        DateFormatError: A date cannot be parsed.
        DateRangeError: ``start_date`` is after ``end_date``.
        VectorLoadError: ``features`` is a path that cannot be read.
    """
    options = {
        "start_date": start_date,
        "end_date": end_date,
        "id_field": id_field,
        "fun": fun,
        "small": small,
        "skip_missing": skip_missing,
        "verbose": verbose,
    }
    if out_format is not None:
        options["out_format"] = out_format
    if small_method is not None:
        options["small_method"] = small_method

    return extract_time_series_with_config(
        stack, features, ExtractionConfig(**options), data_store=data_store
    )
