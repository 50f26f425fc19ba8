"""Orchestrator for one blackout detection run.

Composes the five stages in order, each feeding the next:

1. Raster Loader/Mosaicker: one mosaic per date
2. Change Detector: strict-threshold change mask
3. Vectorizer: mask → valid polygons
4. Spatial Filter: region crop, reprojection, highway exclusion
5. Socioeconomic Joiner: impacted buildings, tract partition

The run is single pass and single threaded.  Any ``PipelineError`` from a
stage propagates unchanged and fails the whole run; there is no retry
and no partial result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from blackout_pipeline.activities.detect_change import detect_change
from blackout_pipeline.activities.load_rasters import load_mosaic
from blackout_pipeline.activities.load_vectors import read_layer, read_table
from blackout_pipeline.activities.socioeconomic_join import join_socioeconomic
from blackout_pipeline.activities.spatial_filter import filter_blackout_polygons
from blackout_pipeline.activities.vectorize import vectorize_mask
from blackout_pipeline.core.config import PipelineConfig
from blackout_pipeline.core.constants import MEDIAN_INCOME_COLUMN
from blackout_pipeline.models.report import (
    IncomeComparison,
    IncomeStats,
    RunSummary,
    StageCounts,
)

if TYPE_CHECKING:
    from pathlib import Path

    import geopandas as gpd

    from blackout_pipeline.core.config import PipelineInputs
    from blackout_pipeline.models.impact import SocioeconomicResult
    from blackout_pipeline.models.raster import ChangeMask, RasterGrid

logger = logging.getLogger("blackout_pipeline.orchestrators.blackout_run")


# ---------------------------------------------------------------------------
# Run result contract
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True, eq=False)
class PipelineResult:
    """Everything a run derived, stage by stage.

    Attributes:
        config: Configuration the run used.
        change: Change Detector output.
        polygons: Vectorised polygons, raster CRS.
        blackout: Polygons surviving the spatial filter, target CRS.
        socioeconomic: Impacted buildings and tract partition.
    """

    config: PipelineConfig
    change: ChangeMask
    polygons: gpd.GeoDataFrame
    blackout: gpd.GeoDataFrame
    socioeconomic: SocioeconomicResult


# ---------------------------------------------------------------------------
# Stages 2-3
# ---------------------------------------------------------------------------


def detect_blackout(
    before: RasterGrid,
    after: RasterGrid,
    config: PipelineConfig | None = None,
) -> gpd.GeoDataFrame:
    """Change mask → polygons for an aligned before/after mosaic pair.

    Returns:
        Valid blackout polygons in the raster CRS (possibly empty).
    """
    config = config or PipelineConfig()
    change = detect_change(
        before,
        after,
        threshold=config.change_threshold,
        direction=config.change_direction,
    )
    return vectorize_mask(change, connectivity=config.connectivity)


# ---------------------------------------------------------------------------
# Full run
# ---------------------------------------------------------------------------


def run_blackout_pipeline(
    inputs: PipelineInputs,
    config: PipelineConfig | None = None,
) -> PipelineResult:
    """Run all five stages on the given inputs.

    Roads and buildings are filtered at the source (``highway_where``
    and the building policy's ``where_clause``) before loading.

    Raises:
        PipelineError: Any subclass raised by a stage.
    """
    config = config or PipelineConfig()
    logger.info(
        "Blackout run started | before_tiles=%d | after_tiles=%d | threshold=%.1f | direction=%s",
        len(inputs.before_tiles),
        len(inputs.after_tiles),
        config.change_threshold,
        config.change_direction,
    )

    # Stage 1: mosaics
    before = load_mosaic(inputs.before_tiles, method=config.mosaic_method)
    after = load_mosaic(inputs.after_tiles, method=config.mosaic_method)

    # Stages 2-3: change mask and polygons
    change = detect_change(
        before,
        after,
        threshold=config.change_threshold,
        direction=config.change_direction,
    )
    polygons = vectorize_mask(change, connectivity=config.connectivity)

    # Stage 4: spatial filter
    roads = read_layer(
        inputs.roads_path,
        layer=inputs.roads_layer,
        where=config.highway_where or None,
    )
    blackout = filter_blackout_polygons(
        polygons,
        roads,
        region_vertices=config.region_vertices,
        region_crs=config.region_crs,
        target_crs=config.target_crs,
        distance_m=config.exclusion_buffer_m,
    )

    # Stage 5: socioeconomic join
    buildings = read_layer(
        inputs.buildings_path,
        layer=inputs.buildings_layer,
        where=config.building_policy.where_clause() or None,
    )
    tracts = read_layer(inputs.census_path, layer=inputs.tract_layer)
    income = read_table(inputs.census_path, layer=inputs.income_layer)
    socioeconomic = join_socioeconomic(
        blackout,
        buildings,
        tracts,
        income,
        policy=config.building_policy,
        target_crs=config.target_crs,
        tract_key=config.tract_key,
        income_key=config.income_key,
        income_field=config.income_field,
        require_income_match=config.require_income_match,
    )

    result = PipelineResult(
        config=config,
        change=change,
        polygons=polygons,
        blackout=blackout,
        socioeconomic=socioeconomic,
    )
    logger.info(
        "Blackout run completed | affected_cells=%d | polygons=%d | retained=%d | "
        "impacted_buildings=%d | affected_tracts=%d",
        change.affected_count,
        len(polygons),
        len(blackout),
        socioeconomic.impacted_count,
        socioeconomic.partition.affected_count,
    )
    return result


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def summarise(result: PipelineResult) -> RunSummary:
    """Build the JSON-serialisable ``RunSummary`` of a run."""
    partition = result.socioeconomic.partition
    return RunSummary(
        config=result.config.to_dict(),
        counts=StageCounts(
            affected_cells=result.change.affected_count,
            polygons_detected=len(result.polygons),
            polygons_retained=len(result.blackout),
            residential_buildings=result.socioeconomic.residential_count,
            impacted_buildings=result.socioeconomic.impacted_count,
            affected_tracts=partition.affected_count,
            unaffected_tracts=partition.unaffected_count,
        ),
        income=IncomeComparison(
            affected=_income_stats(partition.affected),
            unaffected=_income_stats(partition.unaffected),
        ),
        affected_tract_ids=sorted(partition.affected_ids),
    )


def write_summary(result: PipelineResult, path: Path) -> Path:
    """Summarise ``result`` and write it as JSON to ``path``."""
    summary = summarise(result)
    written = summary.write(path)
    logger.info("Run summary written | path=%s", written)
    return written


def _income_stats(tracts: gpd.GeoDataFrame) -> IncomeStats:
    if MEDIAN_INCOME_COLUMN not in tracts.columns:
        return IncomeStats(tract_count=len(tracts))
    values = tracts[MEDIAN_INCOME_COLUMN].astype("float64")
    return IncomeStats.from_series(values)
