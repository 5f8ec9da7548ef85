from pathlib import Path
from typing import List, Optional

import numpy as np
import pytest
import rasterio
from affine import Affine
from rasterio.transform import from_origin

from tsextract.core.io import DataStore

# 4x4 grid of one-unit pixels covering x in [0, 4], y in [0, 4]
TRANSFORM = from_origin(0, 4, 1, 1)
BASE = np.arange(16, dtype="float32").reshape(4, 4)
DATES = ["2010-01-01", "2010-01-02", "2010-01-03"]


def make_layers(n: int) -> List[np.ndarray]:
    """Layer k holds the pixel number (row * 4 + col) plus 100 * k."""
    return [BASE + 100 * k for k in range(n)]


def write_stack(
    path: Path,
    layers: List[np.ndarray],
    dates: Optional[List[str]] = None,
    descriptions: Optional[List[str]] = None,
    crs: str = "EPSG:4326",
    transform: Affine = TRANSFORM,
    nodata: Optional[float] = None,
) -> Path:
    """
    Helper function to write a multi-band GeoTIFF stack for testing.

    Args:
      path: Path to write the GeoTIFF
      layers: One 2-D array per band
      dates: Optional per-band DATE tags
      descriptions: Optional per-band descriptions
      crs: Coordinate reference system
      transform: Affine transform
      nodata: Optional nodata value
    """
    height, width = layers[0].shape
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=len(layers),
        dtype="float32",
        crs=crs,
        transform=transform,
        nodata=nodata,
    ) as dst:
        for band, layer in enumerate(layers, start=1):
            dst.write(layer.astype("float32"), band)
            if dates is not None:
                dst.update_tags(band, DATE=dates[band - 1])
            if descriptions is not None:
                dst.set_band_description(band, descriptions[band - 1])
    return path


@pytest.fixture
def stack_path(tmp_path: Path) -> Path:
    """Three-date stack with DATE band tags."""
    return write_stack(tmp_path / "stack.tif", make_layers(3), dates=DATES)


@pytest.fixture
def stack(stack_path: Path):
    from tsextract import RasterTimeStack

    return RasterTimeStack(str(stack_path))


@pytest.fixture
def scratch_dir(tmp_path: Path, monkeypatch) -> Path:
    """Point temporary extraction artifacts at a directory the test can inspect."""
    from tsextract.config import config

    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(config, "TEMP_DIR", scratch)
    return scratch


class BytesDataStore(DataStore):
    """Serves files from memory, like a remote store without local paths."""

    def __init__(self, files):
        self.files = files

    def read_file(self, path: str) -> bytes:
        return self.files[path]

    def file_exists(self, path: str) -> bool:
        return path in self.files
