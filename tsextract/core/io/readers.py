import geopandas as gpd
from pathlib import Path
import io

from .data_store import DataStore
from tsextract.exceptions import VectorLoadError


def read_vector_dataset(data_store: DataStore, path, **kwargs) -> gpd.GeoDataFrame:
    """
    Read a vector dataset (shapefile, GeoPackage, GeoJSON, zipped shapefile,
    GeoParquet) from a DataStore.

    Parameters:
    ----------
    data_store : DataStore
        Instance of DataStore for accessing data storage.
    path : str, Path
        Path to the dataset in data storage. For ESRI shapefiles, the path of
        the ``.shp`` member; sidecar files must sit next to it.
    **kwargs : dict
        Additional arguments passed to the geopandas reader.

    Returns:
    -------
    geopandas.GeoDataFrame

    Raises:
    ------
    VectorLoadError
        If the file doesn't exist or cannot be parsed as a vector dataset.
    """

    GEO_READERS = {
        ".shp": gpd.read_file,
        ".zip": gpd.read_file,
        ".geojson": gpd.read_file,
        ".json": gpd.read_file,
        ".gpkg": gpd.read_file,
        ".kml": gpd.read_file,
        ".parquet": gpd.read_parquet,
    }

    path = str(path)
    file_extension = Path(path).suffix.lower()

    if file_extension not in GEO_READERS:
        supported_formats = sorted(GEO_READERS.keys())
        raise VectorLoadError(
            f"Unsupported vector file type: '{file_extension}'. "
            f"Supported formats: {', '.join(supported_formats)}"
        )

    if not data_store.file_exists(path):
        raise VectorLoadError(f"Vector dataset '{path}' not found")

    local_path = data_store.local_path(path)
    if local_path is None and file_extension == ".shp":
        raise VectorLoadError(
            "ESRI shapefiles can only be read from local storage; "
            "use a zipped shapefile or a GeoPackage instead"
        )

    try:
        if local_path is not None:
            # shapefiles need their sidecar files, so let GDAL open the path itself
            gdf = GEO_READERS[file_extension](local_path, **kwargs)
        else:
            gdf = GEO_READERS[file_extension](
                io.BytesIO(data_store.read_file(path)), **kwargs
            )
    except Exception as e:
        raise VectorLoadError(f"Could not read vector dataset '{path}': {e}") from e

    if not isinstance(gdf, gpd.GeoDataFrame):
        raise VectorLoadError(f"'{path}' does not contain a geometry column")

    return gdf
