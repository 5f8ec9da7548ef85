import geopandas as gpd
from pathlib import Path
from typing import Union


def write_vector_dataset(
    gdf: gpd.GeoDataFrame, path: Union[str, Path], **kwargs
) -> Path:
    """
    Write a GeoDataFrame to a local vector file, choosing the OGR driver
    from the file suffix.

    Parameters:
    ----------
    gdf : geopandas.GeoDataFrame
        The features to write.
    path : str or Path
        Local destination path.
    **kwargs : dict
        Additional arguments passed to ``GeoDataFrame.to_file``.

    Returns:
    -------
    Path
        The written path.

    Raises:
    ------
    ValueError
        If the suffix is unsupported or the write fails.
    """
    GEO_DRIVERS = {
        ".shp": "ESRI Shapefile",
        ".gpkg": "GPKG",
        ".geojson": "GeoJSON",
    }

    path = Path(path)
    suffix = path.suffix.lower()

    if suffix not in GEO_DRIVERS:
        supported_formats = sorted(GEO_DRIVERS.keys())
        raise ValueError(
            f"Unsupported file type for GeoDataFrame: {suffix}\n"
            f"Supported formats: {', '.join(supported_formats)}"
        )

    try:
        gdf.to_file(path, driver=GEO_DRIVERS[suffix], **kwargs)
    except Exception as e:
        raise ValueError(f"Error writing GeoDataFrame: {str(e)}")

    return path
