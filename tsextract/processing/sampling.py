import numpy as np
import geopandas as gpd
from typing import Callable, Dict, List, Sequence, Tuple
from rasterio.features import geometry_mask
from rasterio.windows import Window, transform as window_transform
from shapely.geometry import Point, MultiPoint
from shapely.geometry.base import BaseGeometry

from tsextract.config import config
from tsextract.processing.raster_stack import RasterTimeStack

LOGGER = config.get_logger("TsExtractProcessing")

PixelIndex = Tuple[np.ndarray, np.ndarray]


def point_pixels(stack: RasterTimeStack, geometry: BaseGeometry) -> PixelIndex:
    """
    Grid positions of the pixels containing a Point or each part of a MultiPoint.

    Parts sharing a pixel each keep their own entry; parts off the grid are dropped.
    """
    parts = geometry.geoms if isinstance(geometry, MultiPoint) else [geometry]
    xs = [p.x for p in parts]
    ys = [p.y for p in parts]
    rows, cols = stack.index(xs, ys)

    inside = (rows >= 0) & (rows < stack.height) & (cols >= 0) & (cols < stack.width)
    return rows[inside], cols[inside]


def touched_pixels(stack: RasterTimeStack, geometry: BaseGeometry) -> PixelIndex:
    """
    Grid positions of every pixel touched by a geometry.

    The geometry is rasterized with ``all_touched=True`` inside a window
    covering its bounds, so large grids are never masked as a whole.
    """
    minx, miny, maxx, maxy = geometry.bounds
    rows, cols = stack.index([minx, maxx], [maxy, miny])

    row_start = max(int(rows.min()) - 1, 0)
    row_stop = min(int(rows.max()) + 2, stack.height)
    col_start = max(int(cols.min()) - 1, 0)
    col_stop = min(int(cols.max()) + 2, stack.width)
    if row_start >= row_stop or col_start >= col_stop:
        return np.array([], dtype=int), np.array([], dtype=int)

    window = Window(col_start, row_start, col_stop - col_start, row_stop - row_start)
    inside = geometry_mask(
        [geometry],
        out_shape=(int(window.height), int(window.width)),
        transform=window_transform(window, stack.transform),
        all_touched=True,
        invert=True,
    )
    local_rows, local_cols = np.nonzero(inside)
    return local_rows + row_start, local_cols + col_start


def extract_points_lines(
    stack: RasterTimeStack,
    features: gpd.GeoDataFrame,
    date_indices: Sequence[int],
    aggregate: Callable[[np.ndarray], float],
    id_column: str = None,
    verbose: bool = False,
) -> Dict[int, np.ndarray]:
    """
    Sample point or line features on every selected date.

    A single point takes the value of the pixel containing it. Lines and
    multi-points are reduced with ``aggregate`` over every pixel they touch.

    Args:
        stack: The dated raster stack.
        features: Cropped features in the raster CRS, carrying synthetic ids.
        date_indices: Layer indices in output row order.
        aggregate: Reducer for multi-pixel geometries.
        id_column: Synthetic identifier column.
        verbose: Report per-date progress.

    Returns:
        Mapping of synthetic id to one value per selected date.
    """
    id_column = id_column or config.FEATURE_ID_FIELD

    pixel_index: Dict[int, PixelIndex] = {}
    single_pixel: List[int] = []
    for fid, geometry in zip(features[id_column], features.geometry):
        fid = int(fid)
        if isinstance(geometry, Point):
            pixel_index[fid] = point_pixels(stack, geometry)
            single_pixel.append(fid)
        elif isinstance(geometry, MultiPoint):
            pixel_index[fid] = point_pixels(stack, geometry)
        else:
            pixel_index[fid] = touched_pixels(stack, geometry)

    single_pixel = set(single_pixel)
    results = {fid: np.full(len(date_indices), np.nan) for fid in pixel_index}

    for position, _, data in stack.iter_layers(date_indices, show_progress=verbose):
        for fid, (rows, cols) in pixel_index.items():
            if rows.size == 0:
                continue
            values = data[rows, cols]
            if fid in single_pixel:
                results[fid][position] = values[0]
            else:
                results[fid][position] = aggregate(values)

    LOGGER.debug(f"Sampled {len(results)} point/line feature(s) on {len(date_indices)} date(s)")
    return results
