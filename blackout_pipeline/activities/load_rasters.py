"""Raster loading and mosaicking activity.

Loads the night-lights tiles for one acquisition date and merges them
into a single grid covering the union of their extents.

Operations (per date, no cross-date work here):
1. **Discover** tile files for the date (``find_tiles``)
2. **Load** each tile with a scoped ``rasterio.open`` (``load_tile``)
3. **Mosaic** the tiles with ``rasterio.merge`` (``mosaic_tiles``)

The mosaic is always ``float64`` with NaN as nodata so that cells
covered by no tile stay distinguishable from a radiance of zero.
Overlapping cells follow the configured merge method (``"first"``
keeps the value of the first tile in the list).

Tiles must share CRS and resolution; adjacency is the caller's
responsibility and is not checked.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

import numpy as np

from blackout_pipeline.core.constants import DEFAULT_MOSAIC_METHOD, MOSAIC_METHODS
from blackout_pipeline.core.exceptions import GridAlignmentError, InputDataError
from blackout_pipeline.core.geometry import crs_equal
from blackout_pipeline.models.raster import RasterGrid
from blackout_pipeline.models.tiles import TileRef

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import date
    from pathlib import Path

logger = logging.getLogger("blackout_pipeline.activities.load_rasters")

# Resolution comparison tolerance, relative
RESOLUTION_RTOL = 1e-9


# ---------------------------------------------------------------------------
# Tile discovery
# ---------------------------------------------------------------------------


def find_tiles(
    directory: Path,
    acquired: date,
    grid_ids: Sequence[str] | None = None,
) -> list[Path]:
    """Find the tile files for one acquisition date.

    Args:
        directory: Directory holding tile files (searched non-recursively).
        acquired: Acquisition date to select.
        grid_ids: Tile positions to require, e.g. ``["h08v05", "h08v06"]``.
            ``None`` accepts every tile of that date.

    Returns:
        Tile paths sorted by grid position.

    Raises:
        InputDataError: If the directory is missing, no tile matches, or a
            requested grid position has no tile.
    """
    if not directory.is_dir():
        msg = f"Tile directory not found: {directory}"
        raise InputDataError(msg)

    refs: dict[str, TileRef] = {}
    for path in sorted(directory.iterdir()):
        ref = TileRef.from_path(path)
        if ref is None or ref.acquired != acquired:
            continue
        if grid_ids is not None and ref.grid_id not in grid_ids:
            continue
        if ref.grid_id in refs:
            logger.warning(
                "Duplicate tile for %s on %s, keeping %s | ignored=%s",
                ref.grid_id,
                acquired.isoformat(),
                refs[ref.grid_id].path.name,
                path.name,
            )
            continue
        refs[ref.grid_id] = ref

    if grid_ids is not None:
        missing = [g for g in grid_ids if g not in refs]
        if missing:
            msg = f"Missing tiles for {acquired.isoformat()} in {directory}: {', '.join(missing)}"
            raise InputDataError(msg)

    if not refs:
        msg = f"No tiles for {acquired.isoformat()} in {directory}"
        raise InputDataError(msg)

    paths = [refs[g].path for g in sorted(refs)]
    logger.info(
        "Tiles found | date=%s | tiles=%s",
        acquired.isoformat(),
        ",".join(sorted(refs)),
    )
    return paths


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_tile(path: Path, *, band: int = 1) -> RasterGrid:
    """Read one band of a raster file into memory.

    The dataset is closed before returning.

    Raises:
        InputDataError: If the file is missing or cannot be read.
    """
    import rasterio
    from rasterio.errors import RasterioError

    if not path.exists():
        msg = f"Raster tile not found: {path}"
        raise InputDataError(msg)

    try:
        with rasterio.open(path) as src:
            data = src.read(band)
            grid = RasterGrid(
                data=data,
                transform=src.transform,
                crs=src.crs,
                nodata=src.nodata,
            )
    except RasterioError as exc:
        msg = f"Cannot read raster tile {path}: {exc}"
        raise InputDataError(msg) from exc

    logger.debug(
        "Tile loaded | path=%s | shape=%s | crs=%s | nodata=%s",
        path.name,
        grid.shape,
        grid.crs,
        grid.nodata,
    )
    return grid


# ---------------------------------------------------------------------------
# Mosaicking
# ---------------------------------------------------------------------------


def mosaic_tiles(
    tiles: Sequence[RasterGrid],
    *,
    method: str = DEFAULT_MOSAIC_METHOD,
) -> RasterGrid:
    """Merge same-date tiles into one grid covering their union extent.

    Args:
        tiles: Grids sharing CRS and resolution.
        method: Overlap rule: ``first``, ``last``, ``min`` or ``max``.

    Returns:
        A ``float64`` grid with NaN nodata wherever no tile had data.

    Raises:
        GridAlignmentError: If no tiles are given, or CRS/resolution differ.
        ValueError: If ``method`` is not supported.
    """
    if method not in MOSAIC_METHODS:
        msg = f"Unsupported mosaic method {method!r}; expected one of {', '.join(MOSAIC_METHODS)}"
        raise ValueError(msg)
    if not tiles:
        msg = "Cannot mosaic an empty list of tiles"
        raise GridAlignmentError(msg, stage="mosaic")

    _check_compatible(tiles)

    from rasterio.io import MemoryFile
    from rasterio.merge import merge

    with contextlib.ExitStack() as stack:
        datasets = []
        for tile in tiles:
            memfile = stack.enter_context(MemoryFile())
            with memfile.open(**_profile(tile)) as dst:
                dst.write(tile.data, 1)
            datasets.append(stack.enter_context(memfile.open()))

        merged, transform = merge(
            datasets,
            nodata=np.nan,
            dtype="float64",
            method=method,
        )

    mosaic = RasterGrid(
        data=merged[0],
        transform=transform,
        crs=tiles[0].crs,
        nodata=np.nan,
    )
    logger.info(
        "Mosaic built | tiles=%d | shape=%s | bounds=[%.4f, %.4f, %.4f, %.4f] | method=%s",
        len(tiles),
        mosaic.shape,
        *mosaic.bounds,
        method,
    )
    return mosaic


def load_mosaic(
    paths: Sequence[Path],
    *,
    method: str = DEFAULT_MOSAIC_METHOD,
) -> RasterGrid:
    """Load tile files and mosaic them (see ``mosaic_tiles``)."""
    return mosaic_tiles([load_tile(p) for p in paths], method=method)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _check_compatible(tiles: Sequence[RasterGrid]) -> None:
    """Fail unless every tile shares the first tile's CRS and resolution."""
    first = tiles[0]
    for idx, tile in enumerate(tiles[1:], start=1):
        if not crs_equal(first.crs, tile.crs):
            msg = f"Tile {idx} CRS {tile.crs} differs from tile 0 CRS {first.crs}"
            raise GridAlignmentError(msg, stage="mosaic")
        if not np.allclose(first.resolution, tile.resolution, rtol=RESOLUTION_RTOL, atol=0.0):
            msg = f"Tile {idx} resolution {tile.resolution} differs from tile 0 resolution {first.resolution}"
            raise GridAlignmentError(msg, stage="mosaic")


def _profile(tile: RasterGrid) -> dict[str, object]:
    """GTiff creation profile for writing ``tile`` to a MemoryFile."""
    nodata = tile.nodata
    if nodata is None and np.issubdtype(tile.data.dtype, np.floating):
        nodata = np.nan
    rows, cols = tile.shape
    return {
        "driver": "GTiff",
        "height": rows,
        "width": cols,
        "count": 1,
        "dtype": tile.data.dtype.name,
        "crs": tile.crs,
        "transform": tile.transform,
        "nodata": nodata,
    }
