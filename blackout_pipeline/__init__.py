"""Blackout detection pipeline.

Detects power-outage regions from two dates of night-lights radiance
rasters, removes highway-related false positives, and reports which
residential buildings and census tracts were affected.
"""

__version__ = "0.1.0"
