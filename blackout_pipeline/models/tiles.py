"""Data model for a night-lights raster tile reference.

VIIRS Black Marble tiles are named
``<product>.A<YYYY><DOY>.h<HH>v<VV>.<collection>.<production>.tif``,
for example ``VNP46A1.A2021038.h08v05.001.2021039064328.tif``: the
acquisition date as year + day of year, then the horizontal/vertical
position in the sinusoidal tile grid.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

_TILE_NAME_RE = re.compile(
    r"^(?P<product>[A-Za-z0-9]+)"
    r"\.A(?P<year>\d{4})(?P<doy>\d{3})"
    r"\.h(?P<h>\d{2})v(?P<v>\d{2})"
    r"\.(?P<collection>\d{3})"
    r"(?:\.(?P<production>\d+))?"
    r"\.(?:tif|tiff|h5)$",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class TileRef:
    """Identity of one raster tile on disk.

    Attributes:
        product: Product short name (e.g. ``"VNP46A1"``).
        acquired: Acquisition date.
        h: Horizontal tile index.
        v: Vertical tile index.
        collection: Collection number (e.g. ``"001"``).
        path: File location.
    """

    product: str
    acquired: date
    h: int
    v: int
    collection: str
    path: Path

    @property
    def grid_id(self) -> str:
        """Tile grid position as ``"hHHvVV"``."""
        return f"h{self.h:02d}v{self.v:02d}"

    @classmethod
    def from_path(cls, path: Path) -> TileRef | None:
        """Parse a tile file name; return ``None`` if it does not match."""
        match = _TILE_NAME_RE.match(path.name)
        if match is None:
            return None
        acquired = datetime.strptime(f"{match['year']}{match['doy']}", "%Y%j").date()
        return cls(
            product=match["product"],
            acquired=acquired,
            h=int(match["h"]),
            v=int(match["v"]),
            collection=match["collection"],
            path=path,
        )
