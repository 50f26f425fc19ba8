"""Residential building selection policy.

The study classifies an OpenStreetMap building as residential when it
has neither a ``type`` nor a ``name``, or when its ``type`` is in an
allow-list.  The heuristic is unvalidated, so it is a configurable
policy rather than hard-coded logic.  The same policy produces a SQL
``where`` clause (to pre-filter large layers at the source) and an
in-memory mask (to re-check frames already in memory).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from blackout_pipeline.core.constants import (
    DEFAULT_BUILDING_NAME_FIELD,
    DEFAULT_BUILDING_TYPE_FIELD,
    DEFAULT_RESIDENTIAL_TYPES,
)

if TYPE_CHECKING:
    import pandas as pd


@dataclass(frozen=True, slots=True)
class BuildingPolicy:
    """Which buildings count as residential.

    Attributes:
        type_field: Attribute holding the building category.
        name_field: Attribute holding the building name.
        allowed_types: Categories that are always residential.
        include_untyped_unnamed: Treat buildings with no category and no
            name as residential.
    """

    type_field: str = DEFAULT_BUILDING_TYPE_FIELD
    name_field: str = DEFAULT_BUILDING_NAME_FIELD
    allowed_types: tuple[str, ...] = field(default=DEFAULT_RESIDENTIAL_TYPES)
    include_untyped_unnamed: bool = True

    def where_clause(self) -> str:
        """Return an OGR SQL ``where`` clause implementing the policy.

        Returns an empty string when the policy selects nothing
        (no allow-list and untyped/unnamed excluded).
        """
        clauses: list[str] = []
        if self.include_untyped_unnamed:
            clauses.append(f"({self.type_field} IS NULL AND {self.name_field} IS NULL)")
        if self.allowed_types:
            quoted = ", ".join(_quote(t) for t in self.allowed_types)
            clauses.append(f"{self.type_field} IN ({quoted})")
        return " OR ".join(clauses)

    def matches(self, frame: pd.DataFrame) -> pd.Series:
        """Boolean mask of rows in ``frame`` selected by the policy.

        Missing attribute columns are treated as all-null.
        """
        import pandas as pd

        types = frame[self.type_field] if self.type_field in frame.columns else None
        names = frame[self.name_field] if self.name_field in frame.columns else None

        type_null = types.isna() if types is not None else pd.Series(True, index=frame.index)
        name_null = names.isna() if names is not None else pd.Series(True, index=frame.index)

        selected = pd.Series(False, index=frame.index)
        if self.include_untyped_unnamed:
            selected |= type_null & name_null
        if self.allowed_types and types is not None:
            selected |= types.isin(self.allowed_types)
        return selected

    def to_dict(self) -> dict[str, object]:
        """Serialise to a plain dict."""
        return {
            "type_field": self.type_field,
            "name_field": self.name_field,
            "allowed_types": list(self.allowed_types),
            "include_untyped_unnamed": self.include_untyped_unnamed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> BuildingPolicy:
        """Deserialise from a plain dict; missing keys take defaults.

        Raises:
            TypeError: If ``allowed_types`` is not a list of strings or
                ``include_untyped_unnamed`` is not a boolean.
        """
        allowed_raw = data.get("allowed_types", list(DEFAULT_RESIDENTIAL_TYPES))
        if not isinstance(allowed_raw, list | tuple):
            msg = f"allowed_types must be a list, got {type(allowed_raw).__name__}"
            raise TypeError(msg)
        untyped = data.get("include_untyped_unnamed", True)
        if not isinstance(untyped, bool):
            msg = f"include_untyped_unnamed must be a boolean, got {type(untyped).__name__}"
            raise TypeError(msg)
        return cls(
            type_field=str(data.get("type_field", DEFAULT_BUILDING_TYPE_FIELD)),
            name_field=str(data.get("name_field", DEFAULT_BUILDING_NAME_FIELD)),
            allowed_types=tuple(str(t) for t in allowed_raw),
            include_untyped_unnamed=untyped,
        )


def _quote(value: str) -> str:
    """Quote a string literal for OGR SQL."""
    escaped = value.replace("'", "''")
    return f"'{escaped}'"
