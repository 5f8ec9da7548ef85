"""Polygon extraction through a rasterized zone grid.

Polygons are burned into a single-band ZoneRaster on the stack grid, each
pixel holding the synthetic id of the polygon owning it. Every date is then
aggregated per zone in one pass. Polygons too small to own a pixel are
optionally re-extracted directly from their geometry.
"""

import os
import shutil
import tempfile
import numpy as np
import pandas as pd
import geopandas as gpd
import rasterio
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, Literal, Sequence, Tuple
from rasterio.features import rasterize

from tsextract.config import config
from tsextract.core.io.local_data_store import LocalDataStore
from tsextract.core.io.readers import read_vector_dataset
from tsextract.core.io.writers import write_vector_dataset
from tsextract.processing.aggregation import resolve_aggregator
from tsextract.processing.raster_stack import RasterTimeStack
from tsextract.processing.sampling import point_pixels, touched_pixels

LOGGER = config.get_logger("TsExtractProcessing")

ZONE_FIELD = "zone_id"


def zone_dtype(max_id: int) -> str:
    """Smallest unsigned integer type able to hold every zone id."""
    if max_id <= np.iinfo("uint8").max:
        return "uint8"
    if max_id <= np.iinfo("uint16").max:
        return "uint16"
    return "uint32"


@contextmanager
def temporary_workspace(prefix: str = "tsextract_") -> Iterator[Path]:
    """Process-unique scratch directory, removed on exit whatever happens."""
    temp_dir = tempfile.mkdtemp(prefix=prefix, dir=config.ensure_temp_dir_exists())
    try:
        yield Path(temp_dir)
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)
        LOGGER.debug(f"Removed temporary workspace {temp_dir}")


def build_zone_raster(
    stack: RasterTimeStack,
    polygons: gpd.GeoDataFrame,
    workspace: Path,
    id_column: str = None,
) -> np.ndarray:
    """
    Rasterize polygon synthetic ids onto the stack grid.

    The polygons are written to a temporary shapefile and read back before
    rasterizing, and the ZoneRaster is persisted as a temporary GeoTIFF.
    Both live in ``workspace``.

    Returns:
        2-D array on the stack grid; 0 marks pixels owned by no polygon.
    """
    id_column = id_column or config.FEATURE_ID_FIELD
    token = os.urandom(8).hex()

    LOGGER.debug("Writing temporary zone shapefile")
    zones = polygons[[id_column, "geometry"]].rename(columns={id_column: ZONE_FIELD})
    vector_path = write_vector_dataset(zones, workspace / f"zones_{token}.shp")
    zones = read_vector_dataset(LocalDataStore(), vector_path)

    dtype = zone_dtype(int(zones[ZONE_FIELD].max()))
    LOGGER.debug(f"Rasterizing {len(zones)} polygon(s) as {dtype}")
    burned = rasterize(
        ((geom, int(fid)) for geom, fid in zip(zones.geometry, zones[ZONE_FIELD])),
        out_shape=stack.shape,
        transform=stack.transform,
        fill=0,
        all_touched=False,
        dtype=dtype,
    )

    raster_path = workspace / f"zones_{token}.tif"
    with rasterio.open(
        raster_path,
        "w",
        driver="GTiff",
        height=stack.height,
        width=stack.width,
        count=1,
        dtype=dtype,
        crs=stack.crs,
        transform=stack.transform,
        nodata=0,
    ) as dst:
        dst.write(burned, 1)

    with rasterio.open(raster_path) as src:
        return src.read(1)


def owned_pixels(zone_raster: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Flat positions of pixels owned by a zone, and the owning zone ids."""
    zones = zone_raster.ravel()
    owned = np.flatnonzero(zones != 0)
    return owned, zones[owned].astype("int64")


def aggregate_zones(
    values: np.ndarray, zone_ids: np.ndarray, aggregate: Callable[[np.ndarray], float]
) -> pd.Series:
    """One aggregated value per zone, indexed by zone id in ascending order."""
    return pd.Series(values).groupby(zone_ids, sort=True).agg(aggregate)


def extract_polygons(
    stack: RasterTimeStack,
    polygons: gpd.GeoDataFrame,
    date_indices: Sequence[int],
    aggregate: Callable[[np.ndarray], float],
    id_column: str = None,
    small: bool = True,
    small_method: Literal["centroid", "full"] = "centroid",
    skip_missing: bool = True,
    verbose: bool = False,
) -> Dict[int, np.ndarray]:
    """
    Aggregate polygon zones on every selected date.

    Args:
        stack: The dated raster stack.
        polygons: Cropped polygons in the raster CRS, carrying synthetic ids.
        date_indices: Layer indices in output row order.
        aggregate: Reducer applied to the pixels of each zone.
        id_column: Synthetic identifier column.
        small: Re-extract polygons that own no pixel of the zone grid.
        small_method: 'centroid' samples the pixel under the polygon centroid;
            'full' averages every pixel the polygon touches.
        skip_missing: Ignore NaN pixels when averaging small polygons.
        verbose: Report progress.

    Returns:
        Mapping of synthetic id to one value per selected date. Small polygons
        are absent when ``small`` is False.
    """
    id_column = id_column or config.FEATURE_ID_FIELD
    n_dates = len(date_indices)

    with temporary_workspace() as workspace:
        if verbose:
            LOGGER.info("Rasterizing shape")
        zone_raster = build_zone_raster(stack, polygons, workspace, id_column)
        positions, zone_ids = owned_pixels(zone_raster)

        realized = [int(z) for z in np.unique(zone_ids)]
        missing = sorted(set(int(i) for i in polygons[id_column]) - set(realized))

        results = {fid: np.full(n_dates, np.nan) for fid in realized}

        small_index = {}
        if missing:
            if small:
                LOGGER.info(
                    f"{len(missing)} polygon(s) own no raster cell; "
                    f"extracting them with the '{small_method}' method"
                )
                small_index = _small_polygon_pixels(
                    stack, polygons, missing, id_column, small_method
                )
                results.update({fid: np.full(n_dates, np.nan) for fid in small_index})
            else:
                LOGGER.info(
                    f"{len(missing)} polygon(s) own no raster cell and will be "
                    "set to missing values"
                )

        average = resolve_aggregator("mean", skip_missing)

        for position, _, data in stack.iter_layers(date_indices, show_progress=verbose):
            if positions.size:
                per_zone = aggregate_zones(data.ravel()[positions], zone_ids, aggregate)
                for fid, value in per_zone.items():
                    results[int(fid)][position] = value

            for fid, (rows, cols) in small_index.items():
                if rows.size == 0:
                    continue
                values = data[rows, cols]
                results[fid][position] = (
                    values[0] if small_method == "centroid" else average(values)
                )

    return results


def _small_polygon_pixels(
    stack: RasterTimeStack,
    polygons: gpd.GeoDataFrame,
    small_ids: Sequence[int],
    id_column: str,
    small_method: str,
) -> Dict[int, Tuple[np.ndarray, np.ndarray]]:
    subset = polygons[polygons[id_column].isin(small_ids)]
    pixel_index = {}
    for fid, geometry in zip(subset[id_column], subset.geometry):
        if small_method == "centroid":
            pixel_index[int(fid)] = point_pixels(stack, geometry.centroid)
        else:
            pixel_index[int(fid)] = touched_pixels(stack, geometry)
    return pixel_index
