"""Data models shared by all pipeline stages.

- RasterLayer: float32 grid with NaN no-data, transform and CRS
- PolygonLayer: shapely polygon collection with a CRS
"""

from coldspot.models.polygons import PolygonLayer, polygonal_parts
from coldspot.models.raster import RasterLayer, crs_equal

__all__ = [
    "PolygonLayer",
    "RasterLayer",
    "crs_equal",
    "polygonal_parts",
]
