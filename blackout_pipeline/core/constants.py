"""Shared pipeline constants: single source of truth.

Default values for every tunable of the blackout pipeline.  None of
these are validated constants: they describe the February 2021 Houston
study and are overridden through ``PipelineConfig``.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Change detection
# ---------------------------------------------------------------------------

DEFAULT_CHANGE_THRESHOLD: float = 200.0
"""Radiance drop (nW cm^-2 sr^-1) above which a cell counts as blacked out."""

CHANGE_DECREASE = "decrease"
CHANGE_INCREASE = "increase"
CHANGE_DIRECTIONS: tuple[str, ...] = (CHANGE_DECREASE, CHANGE_INCREASE)

MASK_AFFECTED: int = 1
"""Mask value for an affected cell."""

MASK_ABSENT: int = 0
"""Mask value (and declared nodata) for unaffected or no-data cells."""

# ---------------------------------------------------------------------------
# Mosaicking / vectorisation
# ---------------------------------------------------------------------------

DEFAULT_MOSAIC_METHOD = "first"
MOSAIC_METHODS: tuple[str, ...] = ("first", "last", "min", "max")

DEFAULT_CONNECTIVITY = 4
CONNECTIVITIES: tuple[int, ...] = (4, 8)

# ---------------------------------------------------------------------------
# Spatial filter
# ---------------------------------------------------------------------------

DEFAULT_EXCLUSION_BUFFER_M: float = 200.0
"""Distance around highways inside which blackout polygons are discarded."""

DEFAULT_REGION_CRS = "EPSG:4326"

DEFAULT_TARGET_CRS = "EPSG:3083"
"""NAD83 / Texas Centric Albers Equal Area (metres)."""

DEFAULT_REGION_VERTICES: tuple[tuple[float, float], ...] = (
    (-96.5, 29.0),
    (-96.5, 30.5),
    (-94.5, 30.5),
    (-94.5, 29.0),
    (-96.5, 29.0),
)
"""Houston metropolitan area, ``(lon, lat)``."""

DEFAULT_HIGHWAY_WHERE = "fclass='motorway'"

# ---------------------------------------------------------------------------
# Socioeconomic join
# ---------------------------------------------------------------------------

DEFAULT_RESIDENTIAL_TYPES: tuple[str, ...] = (
    "residential",
    "apartments",
    "house",
    "static_caravan",
    "detached",
)

DEFAULT_BUILDING_TYPE_FIELD = "type"
DEFAULT_BUILDING_NAME_FIELD = "name"

DEFAULT_TRACT_KEY = "GEOID_Data"
"""Identifier column on the tract geometry layer."""

DEFAULT_INCOME_KEY = "GEOID"
"""Identifier column on the income attribute layer."""

DEFAULT_INCOME_FIELD = "B19013e1"
"""ACS median household income estimate column."""

TRACT_ID_COLUMN = "tract_id"
"""Normalised tract identifier column produced by the joiner."""

MEDIAN_INCOME_COLUMN = "median_income"
"""Normalised income column produced by the joiner."""
