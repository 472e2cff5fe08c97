"""Pipeline stages and the raster primitives they share.

- raster_ops: crop, align, rasterise, distance transform, polygonise
- prepare_layers: crop inputs and compute distance rasters
- classify_cold_spots: apply criteria and aggregate cold-spot polygons
- make_figure: two-panel cold-spot figure
- diagnostics: optional per-stage PNGs
"""
