"""Shared pytest fixtures for the blackout pipeline test suite.

All data is synthetic and written under ``tmp_path``:

- a two-cell night-lights grid just inside the Houston region of
  interest, whose first cell loses 250 radiance units and second 50
- roads, buildings and census layers placed around that grid
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import numpy as np
import pytest

from blackout_pipeline.core.config import PipelineInputs
from blackout_pipeline.models.raster import RasterGrid

# ---------------------------------------------------------------------------
# Synthetic grid geometry
# ---------------------------------------------------------------------------

#: North-west corner of the synthetic grid (lon, lat).
ORIGIN = (-95.400, 29.800)
#: Cell size in degrees (~100 m).
CELL = 0.001

#: Before / after radiance for the 1x2 grid: drops of 250 and 50 units.
BEFORE_VALUES = np.array([[300.0, 100.0]], dtype="float32")
AFTER_VALUES = np.array([[50.0, 50.0]], dtype="float32")

BEFORE_TILE = "VNP46A1.A2021038.h08v05.001.2021039064328.tif"
AFTER_TILE = "VNP46A1.A2021047.h08v05.001.2021048071510.tif"

TRACT_IN = "14000US48201000100"
TRACT_NEXT = "14000US48201000200"
TRACT_NO_INCOME = "14000US48201000300"


def make_grid(
    data: np.ndarray,
    *,
    origin: tuple[float, float] = ORIGIN,
    cell: float = CELL,
    crs: str = "EPSG:4326",
    nodata: float | None = None,
) -> RasterGrid:
    """Build an in-memory ``RasterGrid`` with a north-up transform."""
    from rasterio.transform import from_origin

    return RasterGrid(
        data=np.asarray(data),
        transform=from_origin(origin[0], origin[1], cell, cell),
        crs=crs,
        nodata=nodata,
    )


@pytest.fixture()
def grid_factory() -> Callable[..., RasterGrid]:
    """Return ``make_grid`` for building in-memory grids."""
    return make_grid


@pytest.fixture()
def write_raster(tmp_path: Path) -> Callable[..., Path]:
    """Return a callable writing a single-band GeoTIFF under ``tmp_path``."""
    import rasterio
    from rasterio.transform import from_origin

    def _write(
        name: str,
        data: np.ndarray,
        *,
        origin: tuple[float, float] = ORIGIN,
        cell: float = CELL,
        crs: str = "EPSG:4326",
        nodata: float | None = None,
    ) -> Path:
        path = tmp_path / name
        array = np.asarray(data)
        with rasterio.open(
            path,
            "w",
            driver="GTiff",
            height=array.shape[0],
            width=array.shape[1],
            count=1,
            dtype=array.dtype.name,
            crs=crs,
            transform=from_origin(origin[0], origin[1], cell, cell),
            nodata=nodata,
        ) as dst:
            dst.write(array, 1)
        return path

    return _write


# ---------------------------------------------------------------------------
# Synthetic vector layers
# ---------------------------------------------------------------------------


def _cell_center(col: int) -> tuple[float, float]:
    return (ORIGIN[0] + (col + 0.5) * CELL, ORIGIN[1] - 0.5 * CELL)


def _write_roads(path: Path, *, highway_near: bool) -> None:
    import geopandas as gpd
    from shapely.geometry import LineString

    cx, cy = _cell_center(0)
    if highway_near:
        motorway = LineString([(cx - CELL, cy), (cx + CELL, cy)])
    else:
        motorway = LineString([(-95.30, 29.70), (-95.29, 29.70)])
    # A non-motorway road through the affected cell; excluded at the source.
    primary = LineString([(cx, cy - CELL), (cx, cy + CELL)])
    roads = gpd.GeoDataFrame(
        {"osm_id": ["1", "2"], "fclass": ["motorway", "primary"]},
        geometry=[motorway, primary],
        crs="EPSG:4326",
    )
    roads.to_file(path, layer="gis_osm_roads_free_1", driver="GPKG")


def _write_buildings(path: Path) -> None:
    import geopandas as gpd
    from shapely.geometry import box

    home_x, home_y = _cell_center(0)
    far_x, far_y = _cell_center(1)
    half = 0.0001
    buildings = gpd.GeoDataFrame(
        {
            "osm_id": ["10", "11", "12"],
            "type": [None, "house", "commercial"],
            "name": [None, None, "Galleria"],
        },
        geometry=[
            box(home_x - half, home_y - half, home_x + half, home_y + half),
            box(far_x - half, far_y - half, far_x + half, far_y + half),
            box(home_x - half / 2, home_y - half / 2, home_x + half / 2, home_y + half / 2),
        ],
        crs="EPSG:4326",
    )
    buildings.to_file(path, layer="gis_osm_buildings_a_free_1", driver="GPKG")


def _write_census(path: Path) -> None:
    import geopandas as gpd
    from shapely.geometry import Point, box

    tracts = gpd.GeoDataFrame(
        {
            "GEOID_Data": [TRACT_IN, TRACT_NEXT, TRACT_NO_INCOME],
            "NAMELSAD": ["Census Tract 1", "Census Tract 2", "Census Tract 3"],
        },
        geometry=[
            box(-95.41, 29.79, -95.399, 29.81),
            box(-95.399, 29.79, -95.38, 29.81),
            box(-95.38, 29.79, -95.36, 29.81),
        ],
        crs="EPSG:4269",
    )
    tracts.to_file(path, layer="ACS_2019_5YR_TRACT_48_TEXAS", driver="GPKG")

    income = gpd.GeoDataFrame(
        {"GEOID": [TRACT_IN, TRACT_NEXT], "B19013e1": [45000.0, 82000.0]},
        geometry=[Point(0, 0), Point(0, 0)],
        crs="EPSG:4269",
    )
    income.to_file(path, layer="X19_INCOME", driver="GPKG")


@pytest.fixture()
def study_inputs(tmp_path: Path, write_raster: Callable[..., Path]) -> Callable[..., PipelineInputs]:
    """Return a callable writing a complete synthetic study area.

    ``highway_near=True`` places a motorway through the affected cell.
    """

    def _build(*, highway_near: bool) -> PipelineInputs:
        before = write_raster(BEFORE_TILE, BEFORE_VALUES)
        after = write_raster(AFTER_TILE, AFTER_VALUES)
        roads = tmp_path / "roads.gpkg"
        buildings = tmp_path / "buildings.gpkg"
        census = tmp_path / "census.gpkg"
        _write_roads(roads, highway_near=highway_near)
        _write_buildings(buildings)
        _write_census(census)
        return PipelineInputs(
            before_tiles=(before,),
            after_tiles=(after,),
            roads_path=roads,
            buildings_path=buildings,
            census_path=census,
            roads_layer="gis_osm_roads_free_1",
            buildings_layer="gis_osm_buildings_a_free_1",
        )

    return _build
