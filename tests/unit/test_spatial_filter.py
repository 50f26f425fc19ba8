"""Tests for the spatial filter activity.

Covers:
- Region polygon construction and validation
- Crop: parts outside the region are removed, output is reprojected
- Missing / mismatched CRS fail with ``CoordinateSystemError``
- Exclusion zone: buffered, dissolved, projected CRS only
- Exclusion filter is idempotent
"""

from __future__ import annotations

import geopandas as gpd
import pytest
from shapely.geometry import LineString, box

from blackout_pipeline.activities.spatial_filter import (
    build_exclusion_zone,
    crop_to_region,
    filter_blackout_polygons,
    region_polygon,
    remove_near_exclusions,
)
from blackout_pipeline.core.exceptions import CoordinateSystemError, GeometryValidityError

SQUARE = [(-96.0, 29.0), (-96.0, 30.0), (-95.0, 30.0), (-95.0, 29.0)]


def _projected_polygons() -> gpd.GeoDataFrame:
    """Two 100 m squares: one 150 m from the highway, one 750 m away."""
    return gpd.GeoDataFrame(
        {"name": ["near", "far"]},
        geometry=[box(1000, 1000, 1100, 1100), box(1000, 2000, 1100, 2100)],
        crs="EPSG:3083",
    )


def _highway(y: float = 1250.0) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame(
        {"fclass": ["motorway"]},
        geometry=[LineString([(0, y), (3000, y)])],
        crs="EPSG:3083",
    )


class TestRegionPolygon:
    """Region of interest ring."""

    def test_ring_closed(self) -> None:
        region = region_polygon(SQUARE)
        assert region.is_valid
        assert list(region.exterior.coords)[0] == list(region.exterior.coords)[-1]
        assert region.area == pytest.approx(1.0)

    def test_already_closed_ring(self) -> None:
        assert region_polygon([*SQUARE, SQUARE[0]]).equals(region_polygon(SQUARE))

    def test_too_few_vertices(self) -> None:
        with pytest.raises(GeometryValidityError, match="at least 3"):
            region_polygon([(0, 0), (1, 1)])

    def test_self_intersecting_ring(self) -> None:
        with pytest.raises(GeometryValidityError, match="not a valid"):
            region_polygon([(0, 0), (2, 2), (2, 0), (0, 2)])


class TestCropToRegion:
    """Region crop then reprojection."""

    def test_clips_and_reprojects(self) -> None:
        polygons = gpd.GeoDataFrame(
            {"cell_count": [1, 1]},
            geometry=[box(-95.5, 29.5, -95.4, 29.6), box(-94.9, 29.5, -94.8, 29.6)],
            crs="EPSG:4326",
        )

        cropped = crop_to_region(polygons, region_polygon(SQUARE), target_crs="EPSG:3083")

        assert len(cropped) == 1
        assert cropped.crs.to_epsg() == 3083
        assert cropped.geometry.is_valid.all()

    def test_straddling_polygon_is_trimmed(self) -> None:
        polygons = gpd.GeoDataFrame(
            geometry=[box(-95.1, 29.5, -94.9, 29.6)],
            crs="EPSG:4326",
        )
        expected = gpd.GeoSeries([box(-95.1, 29.5, -95.0, 29.6)], crs="EPSG:4326").to_crs("EPSG:3083")

        cropped = crop_to_region(polygons, region_polygon(SQUARE), target_crs="EPSG:3083")

        assert cropped.geometry.iloc[0].area == pytest.approx(expected.iloc[0].area, rel=1e-6)

    def test_projected_target_required(self) -> None:
        polygons = gpd.GeoDataFrame(geometry=[box(-95.5, 29.5, -95.4, 29.6)], crs="EPSG:4326")
        with pytest.raises(CoordinateSystemError, match="not projected"):
            crop_to_region(polygons, region_polygon(SQUARE), target_crs="EPSG:4326")

    def test_missing_crs(self) -> None:
        polygons = gpd.GeoDataFrame(geometry=[box(-95.5, 29.5, -95.4, 29.6)])
        with pytest.raises(CoordinateSystemError, match="no CRS") as exc_info:
            crop_to_region(polygons, region_polygon(SQUARE))
        assert exc_info.value.stage == "spatial_filter"

    def test_mismatched_crs(self) -> None:
        with pytest.raises(CoordinateSystemError, match="CRS mismatch"):
            crop_to_region(_projected_polygons(), region_polygon(SQUARE), region_crs="EPSG:4326")

    def test_empty_input(self) -> None:
        empty = gpd.GeoDataFrame({"cell_count": []}, geometry=[], crs="EPSG:4326")
        cropped = crop_to_region(empty, region_polygon(SQUARE))
        assert len(cropped) == 0
        assert cropped.crs.to_epsg() == 3083


class TestExclusionZone:
    """Buffered, dissolved exclusion zone."""

    def test_buffer_and_dissolve(self) -> None:
        roads = gpd.GeoDataFrame(
            geometry=[LineString([(0, 0), (1000, 0)]), LineString([(500, 0), (500, 1000)])],
            crs="EPSG:3083",
        )
        zone = build_exclusion_zone(roads, distance_m=200.0)
        assert zone.geom_type == "Polygon"
        assert zone.contains(box(400, 100, 600, 900))

    def test_geographic_crs_rejected(self) -> None:
        roads = gpd.GeoDataFrame(geometry=[LineString([(-95, 29), (-94, 29)])], crs="EPSG:4326")
        with pytest.raises(CoordinateSystemError, match="not projected"):
            build_exclusion_zone(roads)

    def test_missing_crs_rejected(self) -> None:
        roads = gpd.GeoDataFrame(geometry=[LineString([(0, 0), (1, 0)])])
        with pytest.raises(CoordinateSystemError, match="no CRS"):
            build_exclusion_zone(roads)

    def test_negative_distance(self) -> None:
        with pytest.raises(ValueError, match=">= 0"):
            build_exclusion_zone(_highway(), distance_m=-1.0)

    def test_no_features_gives_empty_zone(self) -> None:
        empty = gpd.GeoDataFrame(geometry=[], crs="EPSG:3083")
        assert build_exclusion_zone(empty).is_empty


class TestRemoveNearExclusions:
    """Disjoint filtering."""

    def test_removes_polygon_within_buffer(self) -> None:
        zone = build_exclusion_zone(_highway(), distance_m=200.0)
        kept = remove_near_exclusions(_projected_polygons(), zone)
        assert kept["name"].tolist() == ["far"]

    def test_zero_buffer_keeps_disjoint(self) -> None:
        zone = build_exclusion_zone(_highway(), distance_m=0.0)
        kept = remove_near_exclusions(_projected_polygons(), zone)
        assert kept["name"].tolist() == ["near", "far"]

    def test_zero_buffer_removes_crossed_polygon(self) -> None:
        zone = build_exclusion_zone(_highway(y=1050.0), distance_m=0.0)
        assert zone.geom_type == "LineString"

        kept = remove_near_exclusions(_projected_polygons(), zone)

        assert kept["name"].tolist() == ["far"]

    def test_idempotent(self) -> None:
        zone = build_exclusion_zone(_highway(y=2050.0), distance_m=200.0)
        once = remove_near_exclusions(_projected_polygons(), zone)
        twice = remove_near_exclusions(once, zone)
        assert once["name"].tolist() == twice["name"].tolist() == ["near"]
        assert not twice.geometry.intersects(zone).any()

    def test_empty_zone_keeps_everything(self) -> None:
        empty = gpd.GeoDataFrame(geometry=[], crs="EPSG:3083")
        kept = remove_near_exclusions(_projected_polygons(), build_exclusion_zone(empty))
        assert len(kept) == 2


class TestFilterBlackoutPolygons:
    """Crop + reproject + exclusion in one call."""

    def test_exclusions_reprojected_before_buffering(self) -> None:
        polygons = gpd.GeoDataFrame(
            {"cell_count": [1]},
            geometry=[box(-95.401, 29.799, -95.400, 29.800)],
            crs="EPSG:4326",
        )
        highway = gpd.GeoDataFrame(
            geometry=[LineString([(-95.402, 29.7995), (-95.399, 29.7995)])],
            crs="EPSG:4326",
        )

        kept = filter_blackout_polygons(polygons, highway, region_vertices=SQUARE)

        assert len(kept) == 0
        assert kept.crs.to_epsg() == 3083

    def test_exclusions_without_crs(self) -> None:
        polygons = gpd.GeoDataFrame(geometry=[box(-95.5, 29.5, -95.4, 29.6)], crs="EPSG:4326")
        highway = gpd.GeoDataFrame(geometry=[LineString([(0, 0), (1, 0)])])
        with pytest.raises(CoordinateSystemError, match="exclusion features"):
            filter_blackout_polygons(polygons, highway, region_vertices=SQUARE)
