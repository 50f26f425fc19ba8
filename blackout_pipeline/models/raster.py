"""In-memory raster models.

A ``RasterGrid`` is one band of cell values plus the georeferencing
needed to place it: affine transform, CRS and nodata value.  A
``ChangeMask`` is the Change Detector's output: the difference grid and
the binary affected/absent mask on the same grid.

Both are plain containers owned by one pipeline run; datasets on disk
are opened, read and closed by the loader before a grid is built.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from blackout_pipeline.core.constants import MASK_ABSENT, MASK_AFFECTED
from blackout_pipeline.core.exceptions import GridAlignmentError

if TYPE_CHECKING:
    from affine import Affine


@dataclass(frozen=True, slots=True, eq=False)
class RasterGrid:
    """A single-band georeferenced raster held in memory.

    Attributes:
        data: 2-D array of cell values (rows, cols).
        transform: Affine cell-to-coordinate transform.
        crs: Coordinate reference system (rasterio/pyproj CRS or string).
        nodata: Value marking cells without data, or ``None``. NaN cells
            are always treated as no-data.
    """

    data: np.ndarray
    transform: Affine
    crs: Any
    nodata: float | None = None

    def __post_init__(self) -> None:
        if self.data.ndim != 2:
            msg = f"RasterGrid data must be 2-D, got shape {self.data.shape}"
            raise GridAlignmentError(msg, stage="load_inputs")

    @property
    def shape(self) -> tuple[int, int]:
        """``(rows, cols)``."""
        return (int(self.data.shape[0]), int(self.data.shape[1]))

    @property
    def resolution(self) -> tuple[float, float]:
        """Cell size ``(x, y)`` in CRS units, both positive."""
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """``(left, bottom, right, top)`` of the grid."""
        from rasterio.transform import array_bounds

        rows, cols = self.shape
        west, south, east, north = array_bounds(rows, cols, self.transform)
        return (west, south, east, north)

    def valid_mask(self) -> np.ndarray:
        """Boolean array, ``True`` where the cell holds data."""
        values = self.data
        valid = np.ones(values.shape, dtype=bool)
        if np.issubdtype(values.dtype, np.floating):
            valid &= ~np.isnan(values)
        if self.nodata is not None and not np.isnan(self.nodata):
            valid &= values != self.nodata
        return valid


@dataclass(frozen=True, slots=True, eq=False)
class ChangeMask:
    """Binary change mask produced by the Change Detector.

    Attributes:
        difference: Float difference grid; NaN where either input had no data.
        mask: ``uint8`` grid, ``MASK_AFFECTED`` where the difference strictly
            exceeds ``threshold`` and ``MASK_ABSENT`` everywhere else.
            ``MASK_ABSENT`` is the declared nodata value of the mask.
        transform: Affine transform shared with the input grids.
        crs: CRS shared with the input grids.
        threshold: Threshold applied, in radiance units.
        direction: ``"decrease"`` or ``"increase"``.
    """

    difference: np.ndarray
    mask: np.ndarray
    transform: Affine
    crs: Any
    threshold: float
    direction: str

    @property
    def nodata(self) -> int:
        """Nodata value of ``mask``."""
        return MASK_ABSENT

    @property
    def affected(self) -> np.ndarray:
        """Boolean array of affected cells."""
        return self.mask == MASK_AFFECTED

    @property
    def affected_count(self) -> int:
        """Number of affected cells."""
        return int(np.count_nonzero(self.affected))
