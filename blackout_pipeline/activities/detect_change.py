"""Change detection activity.

Compares the before/after mosaics cell by cell and flags cells whose
radiance change strictly exceeds a threshold.

- ``compute_difference``: grid alignment check + subtraction.
  ``"decrease"`` measures lost light (``before - after``), which is the
  blackout signal; ``"increase"`` measures ``after - before``.
- ``threshold_difference``: strict ``>`` test.  Cells at or below the
  threshold, and cells without data in either date, become absent
  (the mask's nodata value) rather than ``False`` so the vectoriser
  never polygonises the unaffected background.

No smoothing or spatial noise filtering is applied.
"""

from __future__ import annotations

import logging

import numpy as np

from blackout_pipeline.core.constants import (
    CHANGE_DECREASE,
    CHANGE_DIRECTIONS,
    CHANGE_INCREASE,
    DEFAULT_CHANGE_THRESHOLD,
    MASK_ABSENT,
    MASK_AFFECTED,
)
from blackout_pipeline.core.exceptions import GridAlignmentError
from blackout_pipeline.core.geometry import crs_equal
from blackout_pipeline.models.raster import ChangeMask, RasterGrid

logger = logging.getLogger("blackout_pipeline.activities.detect_change")

# Tolerance for comparing affine transform coefficients
TRANSFORM_ATOL = 1e-9


def detect_change(
    before: RasterGrid,
    after: RasterGrid,
    *,
    threshold: float = DEFAULT_CHANGE_THRESHOLD,
    direction: str = CHANGE_DECREASE,
) -> ChangeMask:
    """Build the binary change mask for a before/after pair.

    Args:
        before: Mosaic for the pre-event date.
        after: Mosaic for the post-event date.
        threshold: Change a cell must strictly exceed to be affected.
        direction: ``"decrease"`` or ``"increase"``.

    Returns:
        A ``ChangeMask`` on the shared grid.

    Raises:
        GridAlignmentError: If the grids differ in shape, transform or CRS.
        ValueError: If ``direction`` is unknown.
    """
    difference = compute_difference(before, after, direction=direction)
    mask = threshold_difference(difference, threshold)

    result = ChangeMask(
        difference=difference,
        mask=mask,
        transform=before.transform,
        crs=before.crs,
        threshold=threshold,
        direction=direction,
    )

    valid = int(np.count_nonzero(~np.isnan(difference)))
    logger.info(
        "Change detected | direction=%s | threshold=%.1f | valid_cells=%d | affected_cells=%d",
        direction,
        threshold,
        valid,
        result.affected_count,
    )
    if result.affected_count == 0:
        logger.warning("No cell exceeded the change threshold of %.1f", threshold)
    return result


def compute_difference(
    before: RasterGrid,
    after: RasterGrid,
    *,
    direction: str = CHANGE_DECREASE,
) -> np.ndarray:
    """Cell-wise radiance change between two aligned grids.

    Returns:
        ``float64`` array; NaN where either grid has no data.

    Raises:
        GridAlignmentError: If the grids are not cell-aligned.
        ValueError: If ``direction`` is unknown.
    """
    if direction not in CHANGE_DIRECTIONS:
        msg = f"Unknown change direction {direction!r}; expected one of {', '.join(CHANGE_DIRECTIONS)}"
        raise ValueError(msg)

    check_alignment(before, after)

    before_values = before.data.astype("float64")
    after_values = after.data.astype("float64")
    if direction == CHANGE_INCREASE:
        difference = after_values - before_values
    else:
        difference = before_values - after_values

    valid = before.valid_mask() & after.valid_mask()
    difference[~valid] = np.nan
    return difference


def threshold_difference(difference: np.ndarray, threshold: float) -> np.ndarray:
    """Strict-threshold a difference grid into a ``uint8`` mask.

    Cells with ``difference > threshold`` get ``MASK_AFFECTED``; all other
    cells (equal, below, or NaN) get ``MASK_ABSENT``.
    """
    mask = np.full(difference.shape, MASK_ABSENT, dtype="uint8")
    affected = np.nan_to_num(difference, nan=-np.inf) > threshold
    mask[affected] = MASK_AFFECTED
    return mask


def check_alignment(before: RasterGrid, after: RasterGrid) -> None:
    """Fail fast unless two grids share shape, transform and CRS.

    Raises:
        GridAlignmentError: Describing the first mismatch found.
    """
    if before.shape != after.shape:
        msg = f"Grid shapes differ: before {before.shape} vs after {after.shape}"
        raise GridAlignmentError(msg)

    if not crs_equal(before.crs, after.crs):
        msg = f"Grid CRS differ: before {before.crs} vs after {after.crs}"
        raise GridAlignmentError(msg)

    if not np.allclose(
        tuple(before.transform)[:6],
        tuple(after.transform)[:6],
        rtol=0.0,
        atol=TRANSFORM_ATOL,
    ):
        msg = (
            f"Grid extents differ: before bounds {before.bounds} vs "
            f"after bounds {after.bounds}"
        )
        raise GridAlignmentError(msg)
