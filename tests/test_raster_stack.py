from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from rasterio.transform import from_origin

from conftest import BASE, DATES, BytesDataStore, make_layers, write_stack
from tsextract import InvalidStackError, RasterTimeStack


def test_dates_are_read_from_band_tags(stack: RasterTimeStack) -> None:
    assert list(stack.dates) == list(pd.to_datetime(DATES))
    assert stack.count == len(stack) == 3
    assert stack.shape == (4, 4)
    assert stack.resolution == (1.0, 1.0)


def test_dates_fall_back_to_band_descriptions(tmp_path: Path) -> None:
    path = write_stack(tmp_path / "desc.tif", make_layers(2), descriptions=DATES[:2])
    stack = RasterTimeStack(str(path))
    assert list(stack.dates) == list(pd.to_datetime(DATES[:2]))


def test_explicit_dates_take_precedence(stack_path: Path) -> None:
    stack = RasterTimeStack(str(stack_path), band_dates=["2020-05-01", "2020-05-02", "2020-05-03"])
    assert stack.dates[0] == pd.Timestamp("2020-05-01")


def test_missing_dates_raise(tmp_path: Path) -> None:
    path = write_stack(tmp_path / "nodates.tif", make_layers(2))
    with pytest.raises(InvalidStackError, match="valid dates"):
        RasterTimeStack(str(path))


def test_unparseable_dates_raise(tmp_path: Path) -> None:
    path = write_stack(tmp_path / "bad.tif", make_layers(2), dates=["2010-01-01", "someday"])
    with pytest.raises(InvalidStackError, match="not parseable"):
        RasterTimeStack(str(path))


def test_date_count_must_match_layers(stack_path: Path) -> None:
    with pytest.raises(InvalidStackError):
        RasterTimeStack(str(stack_path), band_dates=["2010-01-01"])


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        RasterTimeStack(str(tmp_path / "absent.tif"))


def test_stack_from_single_band_files(tmp_path: Path) -> None:
    paths = [
        write_stack(tmp_path / f"layer_{i}.tif", [layer])
        for i, layer in enumerate(make_layers(2))
    ]
    stack = RasterTimeStack([str(p) for p in paths], band_dates=DATES[:2])

    assert stack.count == 2
    np.testing.assert_allclose(stack.read_layer(1), BASE + 100)


def test_misaligned_files_are_rejected(tmp_path: Path) -> None:
    first = write_stack(tmp_path / "a.tif", [BASE])
    shifted = write_stack(tmp_path / "b.tif", [BASE], transform=from_origin(10, 4, 1, 1))
    with pytest.raises(InvalidStackError, match="not aligned"):
        RasterTimeStack([str(first), str(shifted)], band_dates=DATES[:2])


def test_read_layer_masks_nodata(tmp_path: Path) -> None:
    layer = BASE.copy()
    layer[0, 0] = -9999
    path = write_stack(tmp_path / "nodata.tif", [layer], dates=DATES[:1], nodata=-9999)
    data = RasterTimeStack(str(path)).read_layer(0)

    assert np.isnan(data[0, 0])
    assert data[0, 1] == 1.0


def test_select_dates_is_inclusive_and_sorted(tmp_path: Path) -> None:
    unordered = ["2010-01-03", "2010-01-01", "2010-01-02"]
    path = write_stack(tmp_path / "unordered.tif", make_layers(3), dates=unordered)
    stack = RasterTimeStack(str(path))

    assert stack.select_dates(pd.Timestamp("2010-01-01"), pd.Timestamp("2010-01-03")) == [1, 2, 0]
    assert stack.select_dates(pd.Timestamp("2010-01-02"), pd.Timestamp("2010-01-02")) == [2]
    assert stack.select_dates(pd.Timestamp("2011-01-01"), pd.Timestamp("2011-02-01")) == []


def test_index_maps_coordinates_to_pixels(stack: RasterTimeStack) -> None:
    rows, cols = stack.index([1.5, 3.9], [2.5, 0.1])
    assert rows.tolist() == [1, 3]
    assert cols.tolist() == [1, 3]


def test_stack_is_read_from_bytes_store(stack_path: Path) -> None:
    store = BytesDataStore({"stack.tif": stack_path.read_bytes()})
    stack = RasterTimeStack("stack.tif", data_store=store)

    assert list(stack.dates) == list(pd.to_datetime(DATES))
    np.testing.assert_allclose(stack.read_layer(2), BASE + 200)


def test_select_dates_ignores_time_of_day(tmp_path: Path) -> None:
    path = write_stack(
        tmp_path / "timed.tif",
        make_layers(2),
        dates=["2010-01-01T23:00:00", "2010-01-02T06:00:00"],
    )
    stack = RasterTimeStack(str(path))

    assert stack.select_dates(pd.Timestamp("2010-01-01"), pd.Timestamp("2010-01-01")) == [0]
    assert stack.select_dates(
        pd.Timestamp("2010-01-01T23:30:00"), pd.Timestamp("2010-01-02")
    ) == [0, 1]


def test_get_raster_info(stack: RasterTimeStack) -> None:
    info = stack.get_raster_info()

    assert stack.dtype == "float32"
    assert info["dtype"] == "float32"
    assert info["count"] == 3
    assert (info["width"], info["height"]) == (4, 4)
    assert info["crs"].to_epsg() == 4326
    assert info["start_date"] == pd.Timestamp("2010-01-01")
    assert info["end_date"] == pd.Timestamp("2010-01-03")
    assert info["source_count"] == 1
