import geopandas as gpd
import pytest
from shapely.geometry import LineString, MultiPoint, MultiPolygon, Point, box

from tsextract import InvalidFeaturesError
from tsextract.processing.geo import (
    align_to_raster,
    crop_to_bounds,
    geometry_kind,
    tag_features,
)


@pytest.mark.parametrize(
    "geometries, expected",
    [
        ([Point(0, 0), MultiPoint([(0, 0), (1, 1)])], "point"),
        ([LineString([(0, 0), (1, 1)])], "line"),
        ([box(0, 0, 1, 1), MultiPolygon([box(2, 2, 3, 3)])], "polygon"),
    ],
)
def test_geometry_kind(geometries, expected) -> None:
    assert geometry_kind(gpd.GeoDataFrame(geometry=geometries)) == expected


def test_geometry_kind_rejects_mixed_and_empty_sets() -> None:
    with pytest.raises(InvalidFeaturesError, match="mixes"):
        geometry_kind(gpd.GeoDataFrame(geometry=[Point(0, 0), box(0, 0, 1, 1)]))
    with pytest.raises(InvalidFeaturesError, match="empty"):
        geometry_kind(gpd.GeoDataFrame(geometry=[]))


def test_tag_features_numbers_rows_in_order() -> None:
    gdf = gpd.GeoDataFrame(geometry=[Point(0, 0), Point(1, 1)], index=[10, 5])
    tagged = tag_features(gdf, "fid")

    assert tagged["fid"].tolist() == [1, 2]
    assert tagged.index.tolist() == [0, 1]
    assert "fid" not in gdf.columns

    with pytest.raises(InvalidFeaturesError):
        tag_features(tagged, "fid")


def test_crop_to_bounds_reports_outside_features() -> None:
    gdf = tag_features(
        gpd.GeoDataFrame(
            geometry=[box(10, 10, 11, 11), box(3, 0, 5, 2), box(0, 0, 1, 1)],
            crs="EPSG:4326",
        ),
        "fid",
    )

    with pytest.warns(UserWarning, match="1 feature"):
        cropped, outside = crop_to_bounds(gdf, (0, 0, 4, 4), "fid")

    assert outside == [1]
    assert cropped["fid"].tolist() == [2, 3]
    assert cropped.geometry.iloc[0].bounds == (3.0, 0.0, 4.0, 2.0)


def test_align_to_raster() -> None:
    gdf = gpd.GeoDataFrame(geometry=[Point(1, 1)], crs="EPSG:4326")
    assert align_to_raster(gdf, "EPSG:4326") is gdf
    assert align_to_raster(gdf, "EPSG:3857").crs.to_epsg() == 3857

    with pytest.warns(UserWarning, match="no CRS"):
        assumed = align_to_raster(gpd.GeoDataFrame(geometry=[Point(1, 1)]), "EPSG:4326")
    assert assumed.crs.to_epsg() == 4326
