"""Spatial filter activity: region crop and highway exclusion.

Two sequential sub-operations (order matters):

1. **Region crop**: intersect every blackout polygon with the region of
   interest in the raster CRS, then reproject the survivors to the
   projected target CRS.  Buffering is only meaningful in metres, so the
   reprojection happens before step 2.
2. **Exclusion filter**: buffer every highway by a fixed distance,
   dissolve the buffers into one zone, and keep only polygons disjoint
   from that zone.  Reduced traffic light near highways would otherwise
   be misread as a power outage.

Any layer with an unset or mismatched CRS fails the run with
``CoordinateSystemError`` instead of silently using wrong distances.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from blackout_pipeline.core.constants import (
    DEFAULT_EXCLUSION_BUFFER_M,
    DEFAULT_REGION_CRS,
    DEFAULT_TARGET_CRS,
)
from blackout_pipeline.core.exceptions import GeometryValidityError
from blackout_pipeline.core.geometry import (
    polygonal_part,
    require_crs,
    require_projected,
    require_same_crs,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    import geopandas as gpd
    from shapely.geometry import Polygon
    from shapely.geometry.base import BaseGeometry

logger = logging.getLogger("blackout_pipeline.activities.spatial_filter")

STAGE = "spatial_filter"

# Minimum distinct vertices for a region ring
MIN_REGION_VERTICES = 3


# ---------------------------------------------------------------------------
# Region of interest
# ---------------------------------------------------------------------------


def region_polygon(vertices: Sequence[tuple[float, float]]) -> Polygon:
    """Build the region-of-interest polygon from an ordered ring.

    The ring is closed if the last vertex differs from the first.

    Raises:
        GeometryValidityError: If the ring has too few vertices or is
            self-intersecting.
    """
    from shapely.geometry import Polygon

    ring = [(float(x), float(y)) for x, y in vertices]
    if len(set(ring)) < MIN_REGION_VERTICES:
        msg = (
            f"Region of interest needs at least {MIN_REGION_VERTICES} distinct "
            f"vertices, got {len(set(ring))}"
        )
        raise GeometryValidityError(msg, stage=STAGE)
    if ring[0] != ring[-1]:
        ring.append(ring[0])

    polygon = Polygon(ring)
    if not polygon.is_valid or polygon.area == 0:
        msg = "Region of interest ring is not a valid, non-degenerate polygon"
        raise GeometryValidityError(msg, stage=STAGE)
    return polygon


def crop_to_region(
    polygons: gpd.GeoDataFrame,
    region: Polygon,
    *,
    region_crs: str = DEFAULT_REGION_CRS,
    target_crs: str = DEFAULT_TARGET_CRS,
) -> gpd.GeoDataFrame:
    """Clip polygons to the region of interest and reproject them.

    Args:
        polygons: Blackout polygons in the raster CRS.
        region: Region of interest, in ``region_crs``.
        region_crs: CRS of ``region``; must equal the polygons' CRS.
        target_crs: Projected CRS of the returned frame.

    Returns:
        Polygons (parts inside the region only) in ``target_crs``.

    Raises:
        CoordinateSystemError: If the polygons have no CRS or it differs
            from ``region_crs``, or ``target_crs`` is not projected.
    """
    import geopandas as gpd

    region_frame = gpd.GeoSeries([region], crs=region_crs)
    require_same_crs(polygons, region_frame, "blackout polygons", "region of interest", stage=STAGE)

    cropped = polygons.copy()
    if not cropped.empty:
        cropped = cropped.clip(region, keep_geom_type=True)
        cropped = cropped[~cropped.geometry.is_empty].copy()
    if not cropped.empty:
        geometry_column = cropped.geometry.name
        cropped[geometry_column] = cropped.geometry.apply(polygonal_part)
        cropped = cropped[~cropped.geometry.is_empty]

    projected = cropped.to_crs(target_crs)
    require_projected(projected, "target CRS", stage=STAGE)

    logger.info(
        "Cropped to region | polygons_in=%d | polygons_out=%d | target_crs=%s",
        len(polygons),
        len(projected),
        target_crs,
    )
    return projected


# ---------------------------------------------------------------------------
# Exclusion filter
# ---------------------------------------------------------------------------


def build_exclusion_zone(
    features: gpd.GeoDataFrame,
    *,
    distance_m: float = DEFAULT_EXCLUSION_BUFFER_M,
) -> BaseGeometry:
    """Buffer every exclusion feature and dissolve into a single zone.

    Args:
        features: Linear exclusion features (highways) in a projected CRS.
        distance_m: Buffer radius in the CRS's linear units (metres).

    Returns:
        One dissolved geometry; empty when there are no features.  With
        a zero distance the zone is the dissolved features themselves, so
        polygons they cross are still excluded.

    Raises:
        CoordinateSystemError: If the features' CRS is unset or geographic.
        ValueError: If ``distance_m`` is negative.
    """
    from shapely.geometry import Polygon

    if distance_m < 0:
        msg = f"Exclusion buffer must be >= 0 m, got {distance_m}"
        raise ValueError(msg)

    require_projected(features, "exclusion features", stage=STAGE)

    if features.empty:
        logger.warning("No exclusion features, exclusion zone is empty")
        return Polygon()

    if distance_m == 0:
        # a zero-width buffer of a line is empty; the lines themselves exclude
        zone = features.geometry.union_all()
    else:
        zone = features.geometry.buffer(distance_m).union_all()
    logger.info(
        "Exclusion zone built | features=%d | buffer=%.0f m | area=%.0f m2",
        len(features),
        distance_m,
        zone.area,
    )
    return zone


def remove_near_exclusions(
    polygons: gpd.GeoDataFrame,
    zone: BaseGeometry,
) -> gpd.GeoDataFrame:
    """Keep only polygons that do not intersect the exclusion zone.

    Re-applying the filter to its own output returns the same rows.
    """
    if polygons.empty or zone.is_empty:
        return polygons.copy()

    kept = polygons[polygons.geometry.disjoint(zone)].copy()
    logger.info(
        "Exclusion filter applied | polygons_in=%d | polygons_out=%d | removed=%d",
        len(polygons),
        len(kept),
        len(polygons) - len(kept),
    )
    return kept


def filter_blackout_polygons(
    polygons: gpd.GeoDataFrame,
    exclusions: gpd.GeoDataFrame,
    *,
    region_vertices: Sequence[tuple[float, float]],
    region_crs: str = DEFAULT_REGION_CRS,
    target_crs: str = DEFAULT_TARGET_CRS,
    distance_m: float = DEFAULT_EXCLUSION_BUFFER_M,
) -> gpd.GeoDataFrame:
    """Run the region crop and the exclusion filter in order.

    ``exclusions`` may be in any CRS; it is reprojected to ``target_crs``
    before buffering.

    Returns:
        Blackout polygons inside the region and outside every exclusion
        buffer, in ``target_crs``.

    Raises:
        CoordinateSystemError: On any unset or mismatched CRS.
    """
    region = region_polygon(region_vertices)
    cropped = crop_to_region(polygons, region, region_crs=region_crs, target_crs=target_crs)

    require_crs(exclusions, "exclusion features", stage=STAGE)
    zone = build_exclusion_zone(exclusions.to_crs(target_crs), distance_m=distance_m)
    return remove_near_exclusions(cropped, zone)
