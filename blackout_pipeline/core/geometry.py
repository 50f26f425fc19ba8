"""Shared geometry validation and CRS helpers.

Used by the vectoriser (repair), the spatial filter (CRS checks before
clipping, reprojecting and buffering) and the socioeconomic joiner.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from blackout_pipeline.core.exceptions import CoordinateSystemError, GeometryValidityError

if TYPE_CHECKING:
    import geopandas as gpd
    from pyproj import CRS
    from shapely.geometry.base import BaseGeometry

logger = logging.getLogger("blackout_pipeline.core.geometry")

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")


# ---------------------------------------------------------------------------
# CRS checks
# ---------------------------------------------------------------------------


def require_crs(frame: gpd.GeoDataFrame | gpd.GeoSeries, name: str, *, stage: str = "") -> CRS:
    """Return the CRS of ``frame`` or fail if it is unset.

    Raises:
        CoordinateSystemError: If ``frame.crs`` is ``None``.
    """
    if frame.crs is None:
        msg = f"{name} has no CRS; refusing to reproject or measure distances"
        raise CoordinateSystemError(msg, **_stage(stage))
    return frame.crs


def require_projected(frame: gpd.GeoDataFrame | gpd.GeoSeries, name: str, *, stage: str = "") -> CRS:
    """Return the CRS of ``frame`` or fail unless it is a projected CRS.

    Buffering in geographic coordinates would turn metres into degrees.

    Raises:
        CoordinateSystemError: If the CRS is unset or geographic.
    """
    crs = require_crs(frame, name, stage=stage)
    if not crs.is_projected:
        msg = f"{name} CRS {crs.to_string()} is not projected; distances would be in degrees"
        raise CoordinateSystemError(msg, **_stage(stage))
    return crs


def require_same_crs(
    left: gpd.GeoDataFrame | gpd.GeoSeries,
    right: gpd.GeoDataFrame | gpd.GeoSeries,
    left_name: str,
    right_name: str,
    *,
    stage: str = "",
) -> CRS:
    """Fail unless both frames carry the same, set CRS.

    Raises:
        CoordinateSystemError: If either CRS is unset or they differ.
    """
    left_crs = require_crs(left, left_name, stage=stage)
    right_crs = require_crs(right, right_name, stage=stage)
    if not crs_equal(left_crs, right_crs):
        msg = (
            f"CRS mismatch: {left_name} is {left_crs.to_string()} but "
            f"{right_name} is {right_crs.to_string()}"
        )
        raise CoordinateSystemError(msg, **_stage(stage))
    return left_crs


def crs_equal(left: Any, right: Any) -> bool:
    """Compare two CRS-like values (strings, pyproj or rasterio CRS)."""
    from pyproj import CRS

    if left is None or right is None:
        return left is None and right is None
    left_crs = CRS.from_user_input(_crs_input(left))
    right_crs = CRS.from_user_input(_crs_input(right))
    if left_crs == right_crs:
        return True
    # WKT round-trips can differ in axis metadata only
    left_epsg = left_crs.to_epsg()
    return left_epsg is not None and left_epsg == right_crs.to_epsg()


def _crs_input(value: Any) -> Any:
    # rasterio.crs.CRS is accepted by pyproj only through its WKT
    to_wkt = getattr(value, "to_wkt", None)
    if to_wkt is not None and not isinstance(value, str):
        return to_wkt()
    return value


def _stage(stage: str) -> dict[str, str]:
    return {"stage": stage} if stage else {}


# ---------------------------------------------------------------------------
# Geometry repair
# ---------------------------------------------------------------------------


def polygonal_part(geom: BaseGeometry) -> BaseGeometry:
    """Keep only the polygonal components of ``geom``.

    ``make_valid`` and clipping can return a ``GeometryCollection`` mixing
    polygons with lines or points along shared edges; only area counts.
    """
    from shapely.geometry import MultiPolygon, Polygon

    if geom.geom_type in POLYGONAL_TYPES:
        return geom
    if geom.geom_type == "GeometryCollection":
        polygons: list[Polygon] = []
        for part in geom.geoms:
            if part.geom_type == "Polygon":
                polygons.append(part)
            elif part.geom_type == "MultiPolygon":
                polygons.extend(part.geoms)
        if len(polygons) == 1:
            return polygons[0]
        return MultiPolygon(polygons)
    return Polygon()


def repair_geometry(geom: BaseGeometry, *, label: str = "geometry") -> BaseGeometry:
    """Return a valid polygonal version of ``geom``.

    Valid polygons are returned unchanged.  Invalid ones go through
    ``shapely.make_valid`` (deterministic, area preserving for
    self-intersections) and are reduced to their polygonal parts.  Valid
    collections mixing polygons with lines are reduced without repair.

    Raises:
        GeometryValidityError: If the repaired geometry is empty or still
            invalid.
    """
    from shapely.validation import make_valid

    if geom is None:
        msg = f"{label} is missing"
        raise GeometryValidityError(msg)

    if geom.is_valid and geom.geom_type in POLYGONAL_TYPES:
        return geom

    if geom.is_valid:
        logger.warning("Non-polygonal %s (%s), keeping polygonal parts", label, geom.geom_type)
        repaired = polygonal_part(geom)
    else:
        logger.warning("Invalid %s (%s), attempting make_valid()", label, geom.geom_type)
        repaired = polygonal_part(make_valid(geom))

    if repaired.is_empty:
        msg = f"{label} is empty after repair"
        raise GeometryValidityError(msg)
    if not repaired.is_valid:
        msg = f"{label} is still invalid after make_valid()"
        raise GeometryValidityError(msg)

    logger.info("Geometry repaired | label=%s | type=%s", label, repaired.geom_type)
    return repaired
