"""Result models for the socioeconomic join.

``TractPartition`` splits every census tract into affected/unaffected
by membership in the set of tracts containing an impacted building.
``SocioeconomicResult`` bundles the impacted buildings with that
partition.  Both hold GeoDataFrames and are local to one run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import geopandas as gpd


@dataclass(frozen=True, slots=True, eq=False)
class TractPartition:
    """Census tracts partitioned by blackout impact.

    Attributes:
        affected: Tracts containing at least one impacted building, with
            their joined income.
        unaffected: All remaining tracts, with their joined income.
        affected_ids: Distinct identifiers of the affected tracts.
    """

    affected: gpd.GeoDataFrame
    unaffected: gpd.GeoDataFrame
    affected_ids: frozenset[str]

    @property
    def affected_count(self) -> int:
        """Number of distinct affected tracts."""
        return len(self.affected_ids)

    @property
    def unaffected_count(self) -> int:
        """Number of unaffected tracts."""
        return len(self.unaffected)


@dataclass(frozen=True, slots=True, eq=False)
class SocioeconomicResult:
    """Output of the Socioeconomic Joiner.

    Attributes:
        residential_count: Buildings passing the residential policy.
        impacted_buildings: Residential buildings intersecting a blackout
            polygon, tagged with the tract containing their centroid.
        tracts: All tracts with the joined income attribute.
        partition: Affected / unaffected tract split.
    """

    residential_count: int
    impacted_buildings: gpd.GeoDataFrame
    tracts: gpd.GeoDataFrame
    partition: TractPartition

    @property
    def impacted_count(self) -> int:
        """Number of impacted buildings."""
        return len(self.impacted_buildings)
