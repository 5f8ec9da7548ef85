import warnings
import numpy as np
import geopandas as gpd
from pyproj import CRS
from shapely.geometry import box
from typing import List, Literal, Tuple

from tsextract.config import config
from tsextract.exceptions import InvalidFeaturesError

LOGGER = config.get_logger("TsExtractProcessing")

GeometryKind = Literal["point", "line", "polygon"]

GEOMETRY_KINDS = {
    "Point": "point",
    "MultiPoint": "point",
    "LineString": "line",
    "LinearRing": "line",
    "MultiLineString": "line",
    "Polygon": "polygon",
    "MultiPolygon": "polygon",
}


def geometry_kind(gdf: gpd.GeoDataFrame) -> GeometryKind:
    """
    Determine whether a feature set holds points, lines or polygons.

    Multi-part geometries count as their single-part kind.

    Raises:
    ------
    InvalidFeaturesError
        If the set is empty, holds missing/empty geometries, unsupported
        geometry types, or mixes kinds.
    """
    if gdf.empty:
        raise InvalidFeaturesError("Spatial feature set is empty")

    geom_types = gdf.geometry.geom_type
    if geom_types.isna().any() or gdf.geometry.is_empty.any():
        raise InvalidFeaturesError("Spatial feature set contains missing or empty geometries")

    unsupported = sorted(set(geom_types) - set(GEOMETRY_KINDS))
    if unsupported:
        raise InvalidFeaturesError(
            f"Unsupported geometry type(s): {', '.join(unsupported)}. "
            "Expected points, lines or polygons."
        )

    kinds = sorted({GEOMETRY_KINDS[t] for t in geom_types})
    if len(kinds) > 1:
        raise InvalidFeaturesError(
            f"Spatial feature set mixes geometry kinds: {', '.join(kinds)}"
        )
    return kinds[0]


def align_to_raster(gdf: gpd.GeoDataFrame, raster_crs) -> gpd.GeoDataFrame:
    """Reproject features to the raster CRS, only when the two differ."""
    if raster_crs is None:
        return gdf
    raster_crs = CRS.from_user_input(raster_crs)

    if gdf.crs is None:
        message = (
            "Spatial feature set has no CRS; assuming it matches the raster CRS "
            f"({raster_crs})."
        )
        LOGGER.warning(message)
        warnings.warn(message, UserWarning, stacklevel=2)
        return gdf.set_crs(raster_crs)

    if gdf.crs == raster_crs:
        return gdf

    LOGGER.info(f"Reprojecting features from {gdf.crs} to {raster_crs}")
    return gdf.to_crs(raster_crs)


def tag_features(gdf: gpd.GeoDataFrame, id_column: str = None) -> gpd.GeoDataFrame:
    """
    Attach a sequential synthetic identifier (1..N, original row order) to
    every feature. Must run before any step that can drop features.
    """
    id_column = id_column or config.FEATURE_ID_FIELD
    if id_column in gdf.columns:
        raise InvalidFeaturesError(
            f"Spatial feature set already has a column named '{id_column}'"
        )
    tagged = gdf.copy()
    tagged[id_column] = np.arange(1, len(tagged) + 1, dtype="int64")
    return tagged.reset_index(drop=True)


def crop_to_bounds(
    gdf: gpd.GeoDataFrame, bounds: Tuple[float, float, float, float], id_column: str = None
) -> Tuple[gpd.GeoDataFrame, List[int]]:
    """
    Clip tagged features to a rectangular extent.

    Features straddling the extent are cut to their inside part; features with
    nothing left inside are dropped.

    Returns:
    -------
    tuple
        (cropped GeoDataFrame ordered by synthetic id, sorted synthetic ids of
        the dropped "outside" features)
    """
    id_column = id_column or config.FEATURE_ID_FIELD
    extent = box(*bounds)

    cropped = gpd.clip(gdf, extent, keep_geom_type=True)
    cropped = cropped[~cropped.geometry.is_empty & cropped.geometry.notna()]
    cropped = cropped.sort_values(id_column).reset_index(drop=True)

    outside = sorted(set(gdf[id_column].tolist()) - set(cropped[id_column].tolist()))

    partially_outside = ~gdf.geometry.covered_by(extent)
    if outside or partially_outside.any():
        message = (
            "Some features are outside or partially outside the raster extent. "
            f"{len(outside)} feature(s) fully outside will be set to missing values; "
            "features partially inside use only the available pixels."
        )
        LOGGER.warning(message)
        warnings.warn(message, UserWarning, stacklevel=2)

    return cropped, [int(i) for i in outside]
