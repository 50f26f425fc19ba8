"""Vectorisation activity: change mask to blackout polygons.

Each connected region of affected cells becomes one polygon feature
(``rasterio.features.shapes`` restricted to affected cells, so absent
cells are never polygonised).  Every polygon is checked and, if needed,
repaired with ``make_valid`` so the output is 100% valid.  The output
CRS is the raster CRS.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from blackout_pipeline.core.constants import CONNECTIVITIES, DEFAULT_CONNECTIVITY
from blackout_pipeline.core.exceptions import GeometryValidityError
from blackout_pipeline.core.geometry import repair_geometry

if TYPE_CHECKING:
    import geopandas as gpd

    from blackout_pipeline.models.raster import ChangeMask

logger = logging.getLogger("blackout_pipeline.activities.vectorize")

#: Attribute column holding the number of cells in each region.
CELL_COUNT_COLUMN = "cell_count"


def vectorize_mask(
    mask: ChangeMask,
    *,
    connectivity: int = DEFAULT_CONNECTIVITY,
) -> gpd.GeoDataFrame:
    """Convert affected regions of ``mask`` into valid polygons.

    Args:
        mask: Output of the Change Detector.
        connectivity: 4 (edge neighbours) or 8 (edge and corner neighbours).

    Returns:
        GeoDataFrame with ``geometry`` and ``cell_count`` columns in the
        mask CRS; empty when no cell is affected.

    Raises:
        ValueError: If ``connectivity`` is not 4 or 8.
        GeometryValidityError: If a polygon cannot be repaired.
    """
    import geopandas as gpd
    from rasterio.features import shapes
    from shapely.geometry import shape

    if connectivity not in CONNECTIVITIES:
        msg = f"connectivity must be 4 or 8, got {connectivity}"
        raise ValueError(msg)

    crs = _frame_crs(mask.crs)
    affected = mask.affected

    if not affected.any():
        logger.warning("Vectorize: mask has no affected cells, returning no polygons")
        return gpd.GeoDataFrame({CELL_COUNT_COLUMN: []}, geometry=[], crs=crs)

    cell_area = abs(mask.transform.a * mask.transform.e)
    geometries = []
    cell_counts: list[int] = []
    repaired = 0

    for idx, (geojson, _value) in enumerate(
        shapes(mask.mask, mask=affected, connectivity=connectivity, transform=mask.transform)
    ):
        geom = shape(geojson)
        if not geom.is_valid:
            repaired += 1
        geom = repair_geometry(geom, label=f"blackout region {idx}")
        geometries.append(geom)
        cell_counts.append(round(geom.area / cell_area) if cell_area else 0)

    polygons = gpd.GeoDataFrame({CELL_COUNT_COLUMN: cell_counts}, geometry=geometries, crs=crs)

    invalid = int((~polygons.geometry.is_valid).sum())
    if invalid:
        msg = f"{invalid} vectorised polygon(s) remain invalid after repair"
        raise GeometryValidityError(msg)

    logger.info(
        "Mask vectorised | polygons=%d | repaired=%d | connectivity=%d",
        len(polygons),
        repaired,
        connectivity,
    )
    return polygons


def _frame_crs(crs: object) -> object:
    """CRS value accepted by geopandas (rasterio CRS → WKT)."""
    if crs is None or isinstance(crs, str):
        return crs
    to_wkt = getattr(crs, "to_wkt", None)
    return to_wkt() if to_wkt is not None else crs
