"""Pydantic run summary model.

The summary is the audit trail of one pipeline run: the configuration
that was used, how many cells / polygons / buildings / tracts survived
each stage, and the income distribution of affected versus unaffected
tracts.  It is the only artefact meant to be persisted, as JSON.

Sections:
- **counts**: per-stage survivor counts
- **income**: per-group income statistics (affected, unaffected)
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from pathlib import Path

    import pandas as pd

# Schema version for forward compatibility
SCHEMA_VERSION = "blackout-summary-v1"


class StageCounts(BaseModel):
    """Survivor counts per pipeline stage.

    Attributes:
        affected_cells: Cells whose change exceeded the threshold.
        polygons_detected: Polygons produced by the vectoriser.
        polygons_retained: Polygons left after the region crop and
            exclusion filter.
        residential_buildings: Buildings passing the residential policy.
        impacted_buildings: Residential buildings intersecting a blackout
            polygon.
        affected_tracts: Distinct tracts containing an impacted building.
        unaffected_tracts: All other tracts.
    """

    affected_cells: int = 0
    polygons_detected: int = 0
    polygons_retained: int = 0
    residential_buildings: int = 0
    impacted_buildings: int = 0
    affected_tracts: int = 0
    unaffected_tracts: int = 0


class IncomeStats(BaseModel):
    """Median household income statistics for a group of tracts.

    Tracts with a null income count towards ``tract_count`` but not
    towards ``with_income`` or the statistics.
    """

    tract_count: int = 0
    with_income: int = 0
    median: float | None = None
    mean: float | None = None

    @classmethod
    def from_series(cls, values: pd.Series) -> IncomeStats:
        """Summarise a Series of incomes; nulls count as tracts only."""
        with_income = int(values.count())
        if not with_income:
            return cls(tract_count=len(values))
        return cls(
            tract_count=len(values),
            with_income=with_income,
            median=float(values.median()),
            mean=float(values.mean()),
        )


class IncomeComparison(BaseModel):
    """Income statistics for affected and unaffected tracts."""

    affected: IncomeStats = Field(default_factory=IncomeStats)
    unaffected: IncomeStats = Field(default_factory=IncomeStats)


class RunSummary(BaseModel):
    """Top-level record of one blackout pipeline run.

    Attributes:
        schema_version: Schema identifier for forward compatibility.
        timestamp: Completion time (ISO 8601, UTC).
        config: The ``PipelineConfig`` used, as plain data.
        counts: Per-stage survivor counts.
        income: Affected vs unaffected tract income statistics.
        affected_tract_ids: Sorted identifiers of the affected tracts.
    """

    schema_version: str = Field(default=SCHEMA_VERSION, alias="$schema")
    timestamp: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    counts: StageCounts = Field(default_factory=StageCounts)
    income: IncomeComparison = Field(default_factory=IncomeComparison)
    affected_tract_ids: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def model_post_init(self, __context: Any) -> None:
        if not self.timestamp:
            self.timestamp = datetime.now(UTC).isoformat()

    def to_json(self) -> str:
        """Serialise with the ``$schema`` alias, pretty-printed."""
        return self.model_dump_json(by_alias=True, indent=2)

    def write(self, path: Path) -> Path:
        """Write the summary as JSON to ``path`` (parents created)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json() + "\n", encoding="utf-8")
        return path
