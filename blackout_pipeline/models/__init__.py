"""Data models and schemas.

Defines the data structures passed between pipeline stages:
- RasterGrid / ChangeMask: in-memory rasters and the binary change mask
- TileRef: parsed identity of a night-lights tile file
- BuildingPolicy: residential building selection rule
- TractPartition / SocioeconomicResult: join outputs
- RunSummary: JSON run summary
"""

from blackout_pipeline.models.building_policy import BuildingPolicy
from blackout_pipeline.models.impact import SocioeconomicResult, TractPartition
from blackout_pipeline.models.raster import ChangeMask, RasterGrid
from blackout_pipeline.models.report import RunSummary
from blackout_pipeline.models.tiles import TileRef

__all__ = [
    "BuildingPolicy",
    "ChangeMask",
    "RasterGrid",
    "RunSummary",
    "SocioeconomicResult",
    "TileRef",
    "TractPartition",
]
