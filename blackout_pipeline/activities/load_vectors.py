"""Vector layer loading activity.

Reads GeoPackage / FileGDB layers with fiona (OGR) inside a scoped
``fiona.open`` so no handle outlives the call.  Large layers (a full
state's roads or buildings) are filtered at the source with an OGR SQL
``where`` clause instead of being loaded whole and filtered in memory.

- ``read_layer``: features with geometry → ``GeoDataFrame``
- ``read_table``: attribute-only layer → ``DataFrame``
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from blackout_pipeline.core.exceptions import InputDataError

if TYPE_CHECKING:
    from pathlib import Path

    import geopandas as gpd
    import pandas as pd

logger = logging.getLogger("blackout_pipeline.activities.load_vectors")


def list_layers(path: Path) -> list[str]:
    """Return the layer names of a vector dataset.

    Raises:
        InputDataError: If the dataset is missing or cannot be opened.
    """
    import fiona
    from fiona.errors import FionaError

    if not path.exists():
        msg = f"Vector dataset not found: {path}"
        raise InputDataError(msg)
    try:
        return list(fiona.listlayers(str(path)))
    except FionaError as exc:
        msg = f"Cannot list layers of {path}: {exc}"
        raise InputDataError(msg) from exc


def read_layer(
    path: Path,
    *,
    layer: str | None = None,
    where: str | None = None,
) -> gpd.GeoDataFrame:
    """Read a vector layer, optionally filtered at the source.

    Args:
        path: GeoPackage, FileGDB or any OGR-readable dataset.
        layer: Layer name; ``None`` reads the first layer.
        where: OGR SQL attribute filter evaluated by the driver.

    Returns:
        GeoDataFrame with the layer's CRS (``None`` if the layer has none).

    Raises:
        InputDataError: If the dataset or layer is missing, or the filter
            is rejected by the driver.
    """
    import fiona
    import geopandas as gpd
    from fiona.errors import FionaError

    _require_layer(path, layer)

    try:
        with fiona.open(str(path), layer=layer) as src:
            columns = [*src.schema["properties"], "geometry"]
            crs = src.crs_wkt or None
            records = list(src.filter(where=where) if where else src)
    except FionaError as exc:
        msg = f"Cannot read layer {layer or '<first>'} of {path}: {exc}"
        raise InputDataError(msg) from exc

    frame = gpd.GeoDataFrame.from_features(records, crs=crs, columns=columns)
    if frame.crs is None and crs is not None:
        frame = frame.set_crs(crs)

    logger.info(
        "Layer read | path=%s | layer=%s | where=%s | features=%d",
        path.name,
        layer or "<first>",
        where or "",
        len(frame),
    )
    return frame


def read_table(path: Path, *, layer: str) -> pd.DataFrame:
    """Read the attributes of a layer (typically non-spatial) as a DataFrame.

    Raises:
        InputDataError: If the dataset or layer is missing or unreadable.
    """
    import fiona
    import pandas as pd
    from fiona.errors import FionaError

    _require_layer(path, layer)

    try:
        with fiona.open(str(path), layer=layer) as src:
            columns = list(src.schema["properties"])
            rows = [dict(feat.properties) for feat in src]
    except FionaError as exc:
        msg = f"Cannot read table {layer} of {path}: {exc}"
        raise InputDataError(msg) from exc

    table = pd.DataFrame(rows, columns=columns)
    logger.info(
        "Table read | path=%s | layer=%s | rows=%d",
        path.name,
        layer,
        len(table),
    )
    return table


def _require_layer(path: Path, layer: str | None) -> None:
    """Fail unless ``path`` exists and (if given) contains ``layer``."""
    layers = list_layers(path)
    if layer is not None and layer not in layers:
        msg = f"Layer {layer!r} not found in {path}; available: {', '.join(layers) or '<none>'}"
        raise InputDataError(msg)
