"""Socioeconomic join activity: impacted homes and affected tracts.

Three steps:

a. **Feature selection**: keep residential buildings (``BuildingPolicy``)
   and reproject them to the target CRS.
b. **Impact test**: a residential building is impacted when it intersects
   any blackout polygon left by the spatial filter.
c. **Attribute aggregation**: join median income onto tract geometries by
   identifier (never by proximity), tag each impacted building with the
   tract containing its centroid, and partition all tracts
   into affected / unaffected.

The affected-tract count is derived twice (distinct count of tagged ids,
and the full tract list minus the unaffected set); a disagreement fails
the run with ``AggregationMismatchError``.

Join-key policy: a tract without an income record is kept with a null
income and logged, unless ``require_match`` is set.  A missing key
column or duplicated income key is always an error.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from blackout_pipeline.core.constants import (
    DEFAULT_INCOME_FIELD,
    DEFAULT_INCOME_KEY,
    DEFAULT_TARGET_CRS,
    DEFAULT_TRACT_KEY,
    MEDIAN_INCOME_COLUMN,
    TRACT_ID_COLUMN,
)
from blackout_pipeline.core.exceptions import AggregationMismatchError, JoinKeyError
from blackout_pipeline.core.geometry import require_crs, require_same_crs
from blackout_pipeline.models.building_policy import BuildingPolicy
from blackout_pipeline.models.impact import SocioeconomicResult, TractPartition

if TYPE_CHECKING:
    import geopandas as gpd
    import pandas as pd

logger = logging.getLogger("blackout_pipeline.activities.socioeconomic_join")

STAGE = "socioeconomic_join"

_INCOME_KEY_COLUMN = "_income_key"


# ---------------------------------------------------------------------------
# a. Feature selection
# ---------------------------------------------------------------------------


def select_buildings(
    buildings: gpd.GeoDataFrame,
    policy: BuildingPolicy,
    *,
    target_crs: str = DEFAULT_TARGET_CRS,
) -> gpd.GeoDataFrame:
    """Keep residential buildings and reproject them to ``target_crs``.

    Safe to call on a layer that was already pre-filtered at the source
    with ``policy.where_clause()``.

    Raises:
        CoordinateSystemError: If the buildings have no CRS.
    """
    require_crs(buildings, "buildings", stage=STAGE)
    selected = buildings[policy.matches(buildings)]
    projected = selected.to_crs(target_crs)
    logger.info(
        "Buildings selected | candidates=%d | residential=%d",
        len(buildings),
        len(projected),
    )
    return projected


# ---------------------------------------------------------------------------
# b. Impact test
# ---------------------------------------------------------------------------


def find_impacted(
    buildings: gpd.GeoDataFrame,
    blackout: gpd.GeoDataFrame,
) -> gpd.GeoDataFrame:
    """Buildings intersecting at least one blackout polygon.

    Each building appears at most once.

    Raises:
        CoordinateSystemError: If the two frames' CRS are unset or differ.
    """
    require_same_crs(buildings, blackout, "buildings", "blackout polygons", stage=STAGE)

    if buildings.empty or blackout.empty:
        impacted = buildings.iloc[0:0].copy()
    else:
        zone = blackout.geometry.union_all()
        impacted = buildings[buildings.geometry.intersects(zone)].copy()

    logger.info(
        "Impacted buildings found | buildings=%d | blackout_polygons=%d | impacted=%d",
        len(buildings),
        len(blackout),
        len(impacted),
    )
    return impacted


# ---------------------------------------------------------------------------
# c. Attribute aggregation
# ---------------------------------------------------------------------------


def attach_income(
    tracts: gpd.GeoDataFrame,
    income: pd.DataFrame,
    *,
    tract_key: str = DEFAULT_TRACT_KEY,
    income_key: str = DEFAULT_INCOME_KEY,
    income_field: str = DEFAULT_INCOME_FIELD,
    require_match: bool = False,
) -> gpd.GeoDataFrame:
    """Join the income table onto tract geometries by identifier.

    Adds ``tract_id`` (string copy of ``tract_key``) and ``median_income``.
    Every tract is kept; unmatched tracts get a null income.

    Raises:
        JoinKeyError: If a key column or the income field is missing, a
            key is null or duplicated, or ``require_match`` is set and a
            tract has no income record.
    """
    _require_column(tracts, tract_key, "tract layer")
    _require_column(income, income_key, "income table")
    _require_column(income, income_field, "income table")

    tract_ids = tracts[tract_key]
    if tract_ids.isna().any():
        msg = f"{int(tract_ids.isna().sum())} tract(s) have a null {tract_key}"
        raise JoinKeyError(msg)
    if tract_ids.duplicated().any():
        dupes = sorted(tract_ids[tract_ids.duplicated()].astype(str).unique())
        msg = f"Duplicate tract identifier(s) in {tract_key}: {', '.join(dupes[:5])}"
        raise JoinKeyError(msg)

    income_keys = income[income_key].dropna().astype(str)
    if income_keys.duplicated().any():
        dupes = sorted(income_keys[income_keys.duplicated()].unique())
        msg = f"Duplicate income identifier(s) in {income_key}: {', '.join(dupes[:5])}"
        raise JoinKeyError(msg)

    table = income.loc[income[income_key].notna(), [income_key, income_field]].rename(
        columns={income_key: _INCOME_KEY_COLUMN, income_field: MEDIAN_INCOME_COLUMN}
    )
    table[_INCOME_KEY_COLUMN] = table[_INCOME_KEY_COLUMN].astype(str)

    keyed = tracts.copy()
    keyed[TRACT_ID_COLUMN] = tract_ids.astype(str)
    if MEDIAN_INCOME_COLUMN in keyed.columns:
        keyed = keyed.drop(columns=MEDIAN_INCOME_COLUMN)

    joined = keyed.merge(
        table,
        how="left",
        left_on=TRACT_ID_COLUMN,
        right_on=_INCOME_KEY_COLUMN,
        validate="one_to_one",
        indicator=True,
    )
    unmatched = joined["_merge"] == "left_only"
    joined = joined.drop(columns=[_INCOME_KEY_COLUMN, "_merge"])

    if unmatched.any():
        missing = sorted(joined.loc[unmatched, TRACT_ID_COLUMN])
        if require_match:
            msg = (
                f"{len(missing)} tract(s) have no income record in {income_key}: "
                f"{', '.join(missing[:5])}"
            )
            raise JoinKeyError(msg)
        logger.warning(
            "Tracts without income record kept with null income | count=%d | first=%s",
            len(missing),
            ",".join(missing[:5]),
        )

    logger.info(
        "Income attached | tracts=%d | matched=%d | null_income=%d",
        len(joined),
        int((~unmatched).sum()),
        int(joined[MEDIAN_INCOME_COLUMN].isna().sum()),
    )
    return joined


def tag_tracts(
    impacted: gpd.GeoDataFrame,
    tracts: gpd.GeoDataFrame,
    *,
    tract_column: str = TRACT_ID_COLUMN,
) -> gpd.GeoDataFrame:
    """Tag each impacted building with the tract containing its centroid.

    ``tracts`` must carry ``tract_column`` (see ``attach_income``).
    A centroid on the boundary between tracts goes to the tract with the
    lowest id.  Buildings whose centroid falls in no tract keep a null
    tract id.

    Raises:
        CoordinateSystemError: If the two frames' CRS are unset or differ.
        JoinKeyError: If ``tracts`` has no ``tract_column``.
    """
    import geopandas as gpd

    _require_column(tracts, tract_column, "tract layer")
    require_same_crs(impacted, tracts, "impacted buildings", "tracts", stage=STAGE)

    tagged = impacted.copy()
    if impacted.empty:
        tagged[tract_column] = []
        return tagged

    centroids = gpd.GeoDataFrame(
        index=impacted.index,
        geometry=impacted.geometry.centroid,
        crs=impacted.crs,
    )
    tract_columns = tracts[[tract_column, tracts.geometry.name]]
    joined = gpd.sjoin(centroids, tract_columns, how="left", predicate="intersects")
    # a centroid on a shared edge touches several tracts; lowest id wins
    joined = joined.sort_values(tract_column, kind="stable", na_position="last")
    joined = joined[~joined.index.duplicated(keep="first")]
    tagged[tract_column] = joined[tract_column].reindex(impacted.index)

    untagged = int(tagged[tract_column].isna().sum())
    if untagged:
        logger.warning("Impacted buildings outside every tract | count=%d", untagged)
    return tagged


def partition_tracts(
    tracts: gpd.GeoDataFrame,
    tagged: gpd.GeoDataFrame,
    *,
    tract_column: str = TRACT_ID_COLUMN,
) -> TractPartition:
    """Split tracts into affected / unaffected by tagged tract ids.

    Raises:
        AggregationMismatchError: If the direct distinct count and the
            set-difference count of affected tracts disagree.
        JoinKeyError: If either frame lacks ``tract_column``.
    """
    _require_column(tracts, tract_column, "tract layer")
    _require_column(tagged, tract_column, "impacted buildings")

    tagged_ids = tagged[tract_column].dropna().astype(str)
    direct_count = int(tagged_ids.nunique())

    all_ids = set(tracts[tract_column].astype(str))
    unaffected_ids = all_ids - set(tagged_ids)
    difference_count = len(all_ids) - len(unaffected_ids)

    if direct_count != difference_count:
        msg = (
            f"Affected tract count mismatch: distinct count {direct_count} vs "
            f"set difference {difference_count}"
        )
        raise AggregationMismatchError(msg)

    affected_ids = frozenset(tagged_ids)
    is_affected = tracts[tract_column].astype(str).isin(affected_ids)
    partition = TractPartition(
        affected=tracts[is_affected].copy(),
        unaffected=tracts[~is_affected].copy(),
        affected_ids=affected_ids,
    )
    logger.info(
        "Tracts partitioned | tracts=%d | affected=%d | unaffected=%d",
        len(tracts),
        partition.affected_count,
        partition.unaffected_count,
    )
    return partition


def join_socioeconomic(
    blackout: gpd.GeoDataFrame,
    buildings: gpd.GeoDataFrame,
    tracts: gpd.GeoDataFrame,
    income: pd.DataFrame,
    *,
    policy: BuildingPolicy | None = None,
    target_crs: str = DEFAULT_TARGET_CRS,
    tract_key: str = DEFAULT_TRACT_KEY,
    income_key: str = DEFAULT_INCOME_KEY,
    income_field: str = DEFAULT_INCOME_FIELD,
    require_income_match: bool = False,
) -> SocioeconomicResult:
    """Run feature selection, impact test and tract aggregation.

    Args:
        blackout: Filtered blackout polygons in ``target_crs``.
        buildings: Candidate buildings (any CRS).
        tracts: Tract geometries (any CRS).
        income: Income attribute table keyed by ``income_key``.

    Raises:
        CoordinateSystemError, JoinKeyError, AggregationMismatchError
    """
    residential = select_buildings(buildings, policy or BuildingPolicy(), target_crs=target_crs)
    impacted = find_impacted(residential, blackout)

    require_crs(tracts, "tracts", stage=STAGE)
    tracts_income = attach_income(
        tracts.to_crs(target_crs),
        income,
        tract_key=tract_key,
        income_key=income_key,
        income_field=income_field,
        require_match=require_income_match,
    )
    tagged = tag_tracts(impacted, tracts_income)
    partition = partition_tracts(tracts_income, tagged)

    return SocioeconomicResult(
        residential_count=len(residential),
        impacted_buildings=tagged,
        tracts=tracts_income,
        partition=partition,
    )


def _require_column(frame: pd.DataFrame, column: str, name: str) -> None:
    if column not in frame.columns:
        msg = f"{name} has no column {column!r}; available: {', '.join(map(str, frame.columns))}"
        raise JoinKeyError(msg)
