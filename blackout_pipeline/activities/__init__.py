"""Pipeline stage functions.

Each activity performs a single stage of the run:
- load_rasters: Discover, load and mosaic night-lights tiles
- detect_change: Difference and strict-threshold the two mosaics
- vectorize: Change mask to valid polygons
- load_vectors: Read road, building and census layers
- spatial_filter: Region crop and highway exclusion
- socioeconomic_join: Impacted buildings and affected tracts
"""
