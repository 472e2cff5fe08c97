"""Data model for a polygon feature collection.

Polygon layers come from two places: vector sources (country
boundaries, wind farms) and polygonised raster masks (cold spots,
MPAs).  Layers built from masks are always passed through
``unified()`` before being stored or drawn, so per-cell fragments never
leave the classifier.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from shapely.geometry import GeometryCollection, MultiPolygon, Polygon, box
from shapely.ops import unary_union

if TYPE_CHECKING:
    from shapely.geometry.base import BaseGeometry


@dataclass(frozen=True, slots=True, eq=False)
class PolygonLayer:
    """A set of polygonal geometries sharing one CRS.

    Attributes:
        geometries: Shapely geometries, one per feature.
        crs: CRS as a user-input string.
        name: Layer label (written as a feature property on disk).
    """

    geometries: tuple[BaseGeometry, ...]
    crs: str
    name: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "geometries", tuple(self.geometries))

    def __len__(self) -> int:
        return len(self.geometries)

    @property
    def is_empty(self) -> bool:
        return all(g.is_empty for g in self.geometries)

    @property
    def parts(self) -> list[Polygon]:
        """Return every polygon in the layer with multi-parts flattened."""
        out: list[Polygon] = []
        for geom in self.geometries:
            out.extend(polygonal_parts(geom))
        return out

    @property
    def area(self) -> float:
        """Total area in squared CRS units."""
        return float(sum(p.area for p in self.parts))

    def unified(self) -> PolygonLayer:
        """Union all features into a single MultiPolygon feature.

        Adjacent fragments merge and cell-grid seams disappear.  An empty
        input yields an empty layer (zero features), not an error.
        """
        merged = polygonal_parts(unary_union(list(self.geometries)))
        if not merged:
            return PolygonLayer((), self.crs, self.name)
        return PolygonLayer((MultiPolygon(merged),), self.crs, self.name)

    def clip(self, bounds: tuple[float, float, float, float]) -> PolygonLayer:
        """Clip every feature to ``(west, south, east, north)``.

        Non-polygonal slivers produced by the clip (edges, points) are
        dropped, as are features falling entirely outside the box.
        """
        window = box(*bounds)
        clipped: list[BaseGeometry] = []
        for geom in self.geometries:
            parts = polygonal_parts(repaired(geom).intersection(window))
            if parts:
                clipped.append(MultiPolygon(parts))
        return PolygonLayer(tuple(clipped), self.crs, self.name)


def polygonal_parts(geom: BaseGeometry) -> list[Polygon]:
    """Return the non-empty polygons contained in *geom*."""
    if geom.is_empty:
        return []
    if isinstance(geom, Polygon):
        return [geom]
    if isinstance(geom, MultiPolygon | GeometryCollection):
        out: list[Polygon] = []
        for sub in geom.geoms:
            out.extend(polygonal_parts(sub))
        return out
    return []


def repaired(geom: BaseGeometry) -> BaseGeometry:
    """Return *geom*, or its ``make_valid`` repair when it is invalid."""
    if geom.is_valid:
        return geom
    from shapely.validation import make_valid

    return make_valid(geom)
