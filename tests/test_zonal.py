import geopandas as gpd
import numpy as np
import pytest
from shapely.geometry import box

from tsextract.processing import zonal
from tsextract.processing.aggregation import resolve_aggregator
from tsextract.processing.geo import tag_features
from tsextract.processing.zonal import (
    aggregate_zones,
    build_zone_raster,
    extract_polygons,
    owned_pixels,
    zone_dtype,
)


@pytest.fixture
def tagged_polygons() -> gpd.GeoDataFrame:
    polygons = gpd.GeoDataFrame(
        geometry=[box(0, 2, 2, 4), box(3, 0, 4, 2), box(2.2, 0.2, 2.4, 0.4)],
        crs="EPSG:4326",
    )
    return tag_features(polygons, "_tsx_fid")


@pytest.mark.parametrize(
    "max_id, expected",
    [(1, "uint8"), (255, "uint8"), (256, "uint16"), (65535, "uint16"), (65536, "uint32")],
)
def test_zone_dtype(max_id, expected) -> None:
    assert zone_dtype(max_id) == expected


def test_build_zone_raster(stack, tagged_polygons, tmp_path) -> None:
    zones = build_zone_raster(stack, tagged_polygons, tmp_path, "_tsx_fid")

    expected = np.zeros((4, 4), dtype="uint8")
    expected[0:2, 0:2] = 1
    expected[2:4, 3] = 2
    np.testing.assert_array_equal(zones, expected)
    assert zones.dtype == np.uint8


def test_owned_pixels_skips_background() -> None:
    positions, zone_ids = owned_pixels(np.array([[0, 2], [1, 0]], dtype="uint8"))

    assert positions.tolist() == [1, 2]
    assert zone_ids.tolist() == [2, 1]


def test_aggregate_zones_orders_by_zone_id() -> None:
    values = np.array([1.0, 2.0, 3.0, 4.0])
    result = aggregate_zones(values, np.array([2, 1, 2, 1]), resolve_aggregator("mean"))

    assert result.index.tolist() == [1, 2]
    assert result.tolist() == [3.0, 2.0]


def test_extract_polygons_reconciles_small_polygons(stack, tagged_polygons, scratch_dir) -> None:
    aggregate = resolve_aggregator("mean")

    with_small = extract_polygons(stack, tagged_polygons, [0, 2], aggregate, "_tsx_fid")
    without_small = extract_polygons(
        stack, tagged_polygons, [0, 2], aggregate, "_tsx_fid", small=False
    )

    np.testing.assert_allclose(with_small[1], [2.5, 202.5])
    np.testing.assert_allclose(with_small[2], [13.0, 213.0])
    np.testing.assert_allclose(with_small[3], [14.0, 214.0])
    assert sorted(without_small) == [1, 2]


def test_workspace_is_removed_when_extraction_fails(
    stack, tagged_polygons, scratch_dir, monkeypatch
) -> None:
    def failing(*args, **kwargs):
        raise RuntimeError("aggregation failed")

    monkeypatch.setattr(zonal, "aggregate_zones", failing)

    with pytest.raises(RuntimeError, match="aggregation failed"):
        extract_polygons(stack, tagged_polygons, [0], resolve_aggregator("mean"), "_tsx_fid")

    assert list(scratch_dir.iterdir()) == []
