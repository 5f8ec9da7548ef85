import logging
import numpy as np
import pandas as pd
from typing import Iterator, List, Optional, Sequence, Tuple, Union, Any, Dict
from pydantic import ConfigDict
from pydantic.dataclasses import dataclass
from contextlib import contextmanager
from pathlib import Path
import rasterio
from rasterio.transform import rowcol
from tqdm import tqdm

from tsextract.core.io.data_store import DataStore
from tsextract.core.io.local_data_store import LocalDataStore
from tsextract.config import config
from tsextract.exceptions import InvalidStackError


@dataclass(config=ConfigDict(arbitrary_types_allowed=True))
class RasterTimeStack:
    """
    A dated stack of single-band raster layers sharing one grid.

    The stack is either a single multi-band raster (one band per date) or a
    list of single-band rasters (one file per date). Dates are taken from
    ``band_dates`` when given, otherwise from the per-band ``BAND_DATE_TAG``
    metadata tag, otherwise from the band descriptions.
    """

    dataset_path: Union[Path, str, List[Union[Path, str]]]
    band_dates: Optional[Any] = None
    data_store: Optional[DataStore] = None
    date_tag: Optional[str] = None

    def __post_init__(self):
        """Validate inputs, index layers and parse dates."""
        self.data_store = self.data_store or LocalDataStore()
        self.date_tag = self.date_tag or config.BAND_DATE_TAG
        self.logger = config.get_logger(self.__class__.__name__)
        self._cache = {}

        if isinstance(self.dataset_path, (list, tuple)):
            self.dataset_paths = [Path(p) for p in self.dataset_path]
        else:
            self.dataset_paths = [Path(self.dataset_path)]

        if not self.dataset_paths:
            raise InvalidStackError("Raster stack needs at least one dataset path")

        for path in self.dataset_paths:
            if not self.data_store.file_exists(str(path)):
                raise FileNotFoundError(f"Dataset not found at {path}")

        self._load_metadata()
        self._dates = self._parse_dates(self._collect_raw_dates())

    @contextmanager
    def open_dataset(self, path: Union[Path, str, None] = None):
        """Context manager for accessing one of the stack's files."""
        path = str(path or self.dataset_paths[0])
        local_path = self.data_store.local_path(path)
        if local_path is not None:
            with rasterio.open(local_path) as src:
                yield src
        else:
            with rasterio.MemoryFile(self.data_store.read_file(path)) as memfile:
                with memfile.open() as src:
                    yield src

    @contextmanager
    def open_layer(self, index: int):
        """Yield ``(dataset, band_index)`` for the layer at ``index`` (0-based)."""
        path, band = self._layers[index]
        with self.open_dataset(path) as src:
            yield src, band

    def read_layer(self, index: int) -> np.ndarray:
        """Read one layer as float64 with nodata (and masked) pixels set to NaN."""
        with self.open_layer(index) as (src, band):
            data = src.read(band, masked=True)
        return np.ma.filled(data.astype("float64"), np.nan)

    def index(self, xs, ys) -> Tuple[np.ndarray, np.ndarray]:
        """Row/column of the pixels containing the given coordinates (raster CRS)."""
        rows, cols = rowcol(self.transform, xs, ys)
        return np.atleast_1d(np.asarray(rows, dtype=int)), np.atleast_1d(
            np.asarray(cols, dtype=int)
        )

    def select_dates(
        self, start_date: pd.Timestamp, end_date: pd.Timestamp
    ) -> List[int]:
        """
        Layer indices whose calendar day lies in ``[start_date, end_date]``, in
        ascending date order. Times of day are ignored on both sides. Layers
        sharing a date keep their order in the stack.
        """
        dates = self.dates
        days = dates.normalize()
        in_window = np.flatnonzero(
            (days >= start_date.normalize()) & (days <= end_date.normalize())
        )
        order = np.argsort(dates[in_window].values, kind="stable")
        return [int(i) for i in in_window[order]]

    def iter_layers(
        self,
        indices: Sequence[int],
        show_progress: bool = False,
        desc: str = "Extracting dates",
    ) -> Iterator[Tuple[int, int, np.ndarray]]:
        """
        Read the given layers one at a time, in the order given.

        Yields ``(position, layer_index, values)`` where ``position`` is the
        output row the layer belongs to.
        """
        iterator = tqdm(
            indices,
            desc=desc,
            disable=not show_progress,
            file=config.get_tqdm_logger_stream(self.logger),
        )
        level = logging.INFO if show_progress else logging.DEBUG
        for position, index in enumerate(iterator):
            self.logger.log(
                level, f"Extracting data from date: {self.dates[index].date()}"
            )
            yield position, index, self.read_layer(index)

    def get_raster_info(self) -> Dict[str, Any]:
        """Get comprehensive raster information."""
        return {
            "count": self.count,
            "width": self.width,
            "height": self.height,
            "crs": self.crs,
            "bounds": self.bounds,
            "transform": self.transform,
            "dtype": self.dtype,
            "nodata": self.nodata,
            "start_date": self.dates.min(),
            "end_date": self.dates.max(),
            "source_count": len(self.dataset_paths),
        }

    def _load_metadata(self):
        """Read grid metadata and index every (file, band) layer of the stack."""
        layers = []
        try:
            for i, path in enumerate(self.dataset_paths):
                with self.open_dataset(path) as src:
                    if i == 0:
                        self._cache["transform"] = src.transform
                        self._cache["crs"] = src.crs
                        self._cache["bounds"] = src.bounds
                        self._cache["width"] = src.width
                        self._cache["height"] = src.height
                        self._cache["resolution"] = (
                            abs(src.transform.a),
                            abs(src.transform.e),
                        )
                        self._cache["nodata"] = src.nodata
                        self._cache["dtype"] = src.dtypes[0]
                    else:
                        self._validate_same_grid(i, src)
                    layers.extend((path, band) for band in range(1, src.count + 1))
        except rasterio.errors.RasterioIOError as e:
            raise InvalidStackError(f"Could not read raster metadata: {e}") from e

        if not layers:
            raise InvalidStackError("Raster stack contains no bands")
        self._layers = layers

    def _validate_same_grid(self, i: int, src, tolerance: float = 1e-9):
        """All files of a stack must share extent, resolution and CRS."""
        if src.crs != self._cache["crs"]:
            raise InvalidStackError(
                f"Dataset {i} has CRS {src.crs}, expected {self._cache['crs']}"
            )
        if (src.width, src.height) != (self._cache["width"], self._cache["height"]):
            raise InvalidStackError(
                f"Dataset {i} has shape {(src.height, src.width)}, expected "
                f"{(self._cache['height'], self._cache['width'])}"
            )
        if not src.transform.almost_equals(self._cache["transform"], precision=tolerance):
            raise InvalidStackError(
                f"Dataset {i} is not aligned with the first dataset of the stack"
            )
        if src.nodata != self._cache["nodata"]:
            self.logger.warning(
                f"Dataset {i} has different nodata value: {src.nodata} vs {self._cache['nodata']}"
            )

    def _collect_raw_dates(self) -> List[Any]:
        if self.band_dates is not None:
            return list(self.band_dates)

        raw = []
        for path, band in self._layers:
            with self.open_dataset(path) as src:
                value = src.tags(band).get(self.date_tag)
                if value is None and len(self.dataset_paths) > 1:
                    value = src.tags().get(self.date_tag)
                if value is None:
                    value = src.descriptions[band - 1]
            raw.append(value)
        return raw

    def _parse_dates(self, raw_dates: List[Any]) -> pd.DatetimeIndex:
        if len(raw_dates) != len(self._layers):
            raise InvalidStackError(
                f"Got {len(raw_dates)} dates for a stack of {len(self._layers)} layers"
            )
        if any(d is None or (isinstance(d, str) and not d.strip()) for d in raw_dates):
            raise InvalidStackError(
                f"Raster stack doesn't contain valid dates: every band needs a "
                f"'{self.date_tag}' tag or a date description"
            )
        try:
            dates = pd.DatetimeIndex(pd.to_datetime(raw_dates))
        except (ValueError, TypeError, OverflowError) as e:
            raise InvalidStackError(f"Raster stack dates are not parseable: {e}") from e
        if dates.tz is not None:
            dates = dates.tz_convert(None)
        if dates.hasnans:
            raise InvalidStackError("Raster stack dates contain missing values")
        return dates

    @property
    def dates(self) -> pd.DatetimeIndex:
        """Acquisition date of each layer, in stack order."""
        return self._dates

    @property
    def transform(self):
        """Get the affine transform shared by all layers"""
        return self._cache["transform"]

    @property
    def crs(self):
        """Get the coordinate reference system of the stack"""
        return self._cache["crs"]

    @property
    def bounds(self):
        """Get the bounds of the stack grid"""
        return self._cache["bounds"]

    @property
    def resolution(self) -> Tuple[float, float]:
        """Get the x and y pixel size"""
        return self._cache["resolution"]

    @property
    def count(self) -> int:
        """Number of dated layers in the stack"""
        return len(self._layers)

    @property
    def nodata(self):
        """Get the value representing no data in the rasters"""
        return self._cache["nodata"]

    @property
    def dtype(self):
        return self._cache["dtype"]

    @property
    def width(self):
        return self._cache["width"]

    @property
    def height(self):
        return self._cache["height"]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width

    def __len__(self):
        return self.count
