"""Pipeline configuration and input locations.

Every tunable of the blackout pipeline (threshold, buffer distance,
region of interest, CRS identifiers, building policy, join columns) is
an explicit field of ``PipelineConfig`` and is threaded into each stage
by the orchestrator.  Input paths and layer names live separately in
``PipelineInputs``.

Both can be loaded from a YAML mapping.  Loading is strict: the file
must exist and contain a mapping, unknown keys are rejected, and
``_validate()`` raises ``ConfigValidationError`` for out-of-range values
before any data is read.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from blackout_pipeline.core.constants import (
    CHANGE_DECREASE,
    CHANGE_DIRECTIONS,
    CONNECTIVITIES,
    DEFAULT_CHANGE_THRESHOLD,
    DEFAULT_CONNECTIVITY,
    DEFAULT_EXCLUSION_BUFFER_M,
    DEFAULT_HIGHWAY_WHERE,
    DEFAULT_INCOME_FIELD,
    DEFAULT_INCOME_KEY,
    DEFAULT_MOSAIC_METHOD,
    DEFAULT_REGION_CRS,
    DEFAULT_REGION_VERTICES,
    DEFAULT_TARGET_CRS,
    DEFAULT_TRACT_KEY,
    MOSAIC_METHODS,
)
from blackout_pipeline.core.exceptions import InputDataError, PipelineError
from blackout_pipeline.models.building_policy import BuildingPolicy

MIN_REGION_VERTICES = 3


class ConfigValidationError(PipelineError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Immutable pipeline configuration.

    Attributes:
        change_threshold: Radiance change a cell must strictly exceed to be
            flagged as affected.
        change_direction: ``"decrease"`` measures ``before - after`` (lost
            light); ``"increase"`` measures ``after - before``.
        exclusion_buffer_m: Buffer distance around highways in metres.
        region_vertices: Closed ring of ``(x, y)`` vertices of the region
            of interest, in ``region_crs``.
        region_crs: CRS of the region vertices and of the raster tiles.
        target_crs: Projected CRS (metres) used for buffering and joins.
        mosaic_method: Overlap rule used when merging tiles.
        connectivity: Pixel connectivity for vectorisation (4 or 8).
        highway_where: SQL filter applied when reading the roads layer.
        building_policy: Residential building selection policy.
        tract_key: Identifier column on the tract geometry layer.
        income_key: Identifier column on the income attribute layer.
        income_field: Median income column on the income attribute layer.
        require_income_match: Fail when a tract has no income record
            instead of keeping it with a null income.
    """

    change_threshold: float = DEFAULT_CHANGE_THRESHOLD
    change_direction: str = CHANGE_DECREASE
    exclusion_buffer_m: float = DEFAULT_EXCLUSION_BUFFER_M
    region_vertices: tuple[tuple[float, float], ...] = DEFAULT_REGION_VERTICES
    region_crs: str = DEFAULT_REGION_CRS
    target_crs: str = DEFAULT_TARGET_CRS
    mosaic_method: str = DEFAULT_MOSAIC_METHOD
    connectivity: int = DEFAULT_CONNECTIVITY
    highway_where: str = DEFAULT_HIGHWAY_WHERE
    building_policy: BuildingPolicy = field(default_factory=BuildingPolicy)
    tract_key: str = DEFAULT_TRACT_KEY
    income_key: str = DEFAULT_INCOME_KEY
    income_field: str = DEFAULT_INCOME_FIELD
    require_income_match: bool = False

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> PipelineConfig:
        """Build and validate a configuration from a plain mapping.

        Missing keys take their defaults.

        Raises:
            ConfigValidationError: If a key is unknown or a value is
                out of range.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigValidationError(unknown[0], data[unknown[0]], "unknown configuration key")

        kwargs: dict[str, Any] = dict(data)
        try:
            if "region_vertices" in kwargs:
                kwargs["region_vertices"] = tuple(
                    (float(x), float(y)) for x, y in kwargs["region_vertices"]
                )
            if "building_policy" in kwargs and isinstance(kwargs["building_policy"], dict):
                kwargs["building_policy"] = BuildingPolicy.from_dict(kwargs["building_policy"])
            for key in ("change_threshold", "exclusion_buffer_m"):
                if key in kwargs:
                    kwargs[key] = float(kwargs[key])
            if "connectivity" in kwargs:
                kwargs["connectivity"] = int(kwargs["connectivity"])
        except (TypeError, ValueError) as exc:
            raise ConfigValidationError("config", data, str(exc)) from exc

        if not isinstance(kwargs.get("require_income_match", False), bool):
            raise ConfigValidationError(
                "require_income_match",
                kwargs["require_income_match"],
                "must be true or false",
            )

        config = cls(**kwargs)
        _validate(config)
        return config

    def to_dict(self) -> dict[str, Any]:
        """Serialise to plain JSON-compatible data."""
        return {
            "change_threshold": self.change_threshold,
            "change_direction": self.change_direction,
            "exclusion_buffer_m": self.exclusion_buffer_m,
            "region_vertices": [list(v) for v in self.region_vertices],
            "region_crs": self.region_crs,
            "target_crs": self.target_crs,
            "mosaic_method": self.mosaic_method,
            "connectivity": self.connectivity,
            "highway_where": self.highway_where,
            "building_policy": self.building_policy.to_dict(),
            "tract_key": self.tract_key,
            "income_key": self.income_key,
            "income_field": self.income_field,
            "require_income_match": self.require_income_match,
        }

    @classmethod
    def from_yaml(cls, path: Path) -> PipelineConfig:
        """Load configuration from a YAML file.

        Raises:
            InputDataError: If the file does not exist.
            ConfigValidationError: If the file is not a mapping or
                holds invalid values.
        """
        return cls.from_mapping(load_yaml_mapping(path))


@dataclass(frozen=True, slots=True)
class PipelineInputs:
    """Locations of every dataset read by one pipeline run.

    Attributes:
        before_tiles: Raster tiles for the pre-event date.
        after_tiles: Raster tiles for the post-event date.
        roads_path: GeoPackage with linear exclusion features (highways).
        buildings_path: GeoPackage with building footprints.
        census_path: Geodatabase with tract geometries and attributes.
        roads_layer: Layer name in ``roads_path`` (``None`` = first layer).
        buildings_layer: Layer name in ``buildings_path``.
        tract_layer: Tract geometry layer in ``census_path``.
        income_layer: Income attribute layer in ``census_path``.
    """

    before_tiles: tuple[Path, ...]
    after_tiles: tuple[Path, ...]
    roads_path: Path
    buildings_path: Path
    census_path: Path
    roads_layer: str | None = None
    buildings_layer: str | None = None
    tract_layer: str = "ACS_2019_5YR_TRACT_48_TEXAS"
    income_layer: str = "X19_INCOME"

    @classmethod
    def from_mapping(cls, data: dict[str, Any], *, base_dir: Path | None = None) -> PipelineInputs:
        """Build inputs from a mapping; relative paths resolve against ``base_dir``.

        Raises:
            ConfigValidationError: If a required key is missing or a tile
                list is empty.
        """
        base = base_dir or Path()

        def _path(key: str) -> Path:
            if not data.get(key):
                raise ConfigValidationError(key, data.get(key), "required input path is missing")
            return base / Path(str(data[key]))

        def _tiles(key: str) -> tuple[Path, ...]:
            raw = data.get(key)
            if not isinstance(raw, list) or not raw:
                raise ConfigValidationError(key, raw, "must be a non-empty list of tile paths")
            return tuple(base / Path(str(p)) for p in raw)

        return cls(
            before_tiles=_tiles("before_tiles"),
            after_tiles=_tiles("after_tiles"),
            roads_path=_path("roads_path"),
            buildings_path=_path("buildings_path"),
            census_path=_path("census_path"),
            roads_layer=data.get("roads_layer"),
            buildings_layer=data.get("buildings_layer"),
            tract_layer=str(data.get("tract_layer", "ACS_2019_5YR_TRACT_48_TEXAS")),
            income_layer=str(data.get("income_layer", "X19_INCOME")),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> PipelineInputs:
        """Load inputs from YAML; relative paths resolve against the file's directory."""
        return cls.from_mapping(load_yaml_mapping(path), base_dir=path.parent)


def load_yaml_mapping(path: Path) -> dict[str, Any]:
    """Load a YAML file that must contain a mapping.

    Raises:
        InputDataError: If the file does not exist.
        ConfigValidationError: If the document is not a mapping.
    """
    import yaml

    if not path.exists():
        msg = f"Config not found: {path}"
        raise InputDataError(msg, stage="config")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ConfigValidationError(str(path), type(data).__name__, "expected a YAML mapping")
    return data


def _validate(config: PipelineConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if config.change_threshold <= 0:
        raise ConfigValidationError(
            "change_threshold",
            config.change_threshold,
            "must be > 0 (radiance units)",
        )

    if config.change_direction not in CHANGE_DIRECTIONS:
        raise ConfigValidationError(
            "change_direction",
            config.change_direction,
            f"must be one of {', '.join(CHANGE_DIRECTIONS)}",
        )

    if config.exclusion_buffer_m < 0:
        raise ConfigValidationError(
            "exclusion_buffer_m",
            config.exclusion_buffer_m,
            "must be >= 0 (metres)",
        )

    if config.mosaic_method not in MOSAIC_METHODS:
        raise ConfigValidationError(
            "mosaic_method",
            config.mosaic_method,
            f"must be one of {', '.join(MOSAIC_METHODS)}",
        )

    if config.connectivity not in CONNECTIVITIES:
        raise ConfigValidationError(
            "connectivity",
            config.connectivity,
            "must be 4 or 8",
        )

    distinct = set(config.region_vertices)
    if len(distinct) < MIN_REGION_VERTICES:
        raise ConfigValidationError(
            "region_vertices",
            config.region_vertices,
            f"need at least {MIN_REGION_VERTICES} distinct vertices",
        )

    for key in ("tract_key", "income_key", "income_field"):
        if not getattr(config, key):
            raise ConfigValidationError(key, getattr(config, key), "must not be empty")

    from pyproj import CRS
    from pyproj.exceptions import CRSError

    for key in ("region_crs", "target_crs"):
        value = getattr(config, key)
        try:
            crs = CRS.from_user_input(value)
        except CRSError as exc:
            raise ConfigValidationError(key, value, f"not a recognised CRS ({exc})") from exc
        if key == "target_crs" and not crs.is_projected:
            raise ConfigValidationError(
                key,
                value,
                "must be a projected CRS so buffer distances are in linear units",
            )
