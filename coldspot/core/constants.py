"""Shared pipeline constants: single source of truth.

Centralises default cache filenames, raster encodings, unit
conversions, and the colour scheme shared by the diagnostic plots and
the two-panel figure.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Units and encodings
# ---------------------------------------------------------------------------

METRES_PER_KM: float = 1000.0
"""Distance rasters are computed in metres and compared in kilometres."""

DEFAULT_CRS: str = "EPSG:4326"
"""CRS assumed for the study-area bounding box (lon/lat, WGS 84)."""

FLOAT_NODATA: float = -9999.0
"""On-disk nodata for continuous (float32) GeoTIFF layers."""

CATEGORICAL_DTYPES: tuple[str, ...] = ("uint8", "uint16", "int32")
"""On-disk dtypes for categorical layers, narrowest first; nodata is the dtype maximum."""

RASTER_SUFFIXES: frozenset[str] = frozenset({".tif", ".tiff"})
POLYGON_SUFFIXES: frozenset[str] = frozenset({".gpkg", ".geojson"})

# ---------------------------------------------------------------------------
# Default cache filenames (one per intermediate artifact)
# ---------------------------------------------------------------------------

COUNTRIES_CROP = "world1geometry.crop.layer.gpkg"
OWF_CROP = "shape.owf.crop.layer.gpkg"
COASTLINE_CROP = "coastline.rasterlayer.crop.layer.tif"
MPA_CROP = "mpa.rasterlayer.crop.layer.tif"
SUITABILITY_CROP = "suitability.rasterlayer.crop.layer.tif"
MPA_DISTANCE = "mpa.rasterlayer_dist.tif"
OWF_DISTANCE = "owf.rasterlayer_dist.tif"
COAST_DISTANCE = "coast.rasterlayer_dist.tif"
COLDSPOT_POLYGONS = "Coldspot.layer.gpkg"
MPA_POLYGONS = "MPA.polygon.layer.gpkg"

# ---------------------------------------------------------------------------
# Diagnostic plot filenames
# ---------------------------------------------------------------------------

DIAGNOSTIC_INPUTS = "diagnostic_input_layers.png"
DIAGNOSTIC_DISTANCES = "diagnostic_distance_layers.png"
DIAGNOSTIC_COLDSPOTS = "diagnostic_coldspot_polygons.png"
DIAGNOSTIC_DPI = 150

# ---------------------------------------------------------------------------
# Colour scheme (colour-blind friendly)
# ---------------------------------------------------------------------------

SUITABILITY_BINS = 10
SUITABILITY_CMAP = "Blues"
OWF_COLOUR = "#E1BE6A"
MPA_COLOUR = "#40B0A6"
COLDSPOT_COLOUR = "#994F00"
NODATA_COLOUR = "darkgrey"
LAND_FILL = "0.95"
LAND_EDGE = "0.40"
MODEL_EXTENT_COLOUR = "aliceblue"
PANEL_B_LAND_FILL = "0.90"
PANEL_B_LAND_EDGE = "0.60"
