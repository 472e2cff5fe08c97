"""Typed outputs passed between pipeline stages.

- ``PreparedLayers``: cropped, co-registered inputs plus distance rasters
- ``CriterionMasks``: the four per-cell pass/fail layers
- ``DisplayLayers``: range-clamped copies used only for colour scales
- ``ColdSpotResult``: unified cold-spot and MPA polygons with the above
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from coldspot.core.artifact_store import ArtifactStore
    from coldspot.core.config import CacheNames
    from coldspot.models.polygons import PolygonLayer
    from coldspot.models.raster import RasterLayer


@dataclass(frozen=True, slots=True)
class PreparedLayers:
    """Everything the classifier needs, on one grid.

    Distance rasters are in metres with land (ocean-mask no-data) set to
    NaN; a distance of ``inf`` means the feature is absent from the
    study area.
    """

    countries: PolygonLayer
    owf: PolygonLayer
    coastline: RasterLayer
    mpa: RasterLayer
    suitability: RasterLayer
    mpa_distance: RasterLayer
    owf_distance: RasterLayer
    coast_distance: RasterLayer

    def grid_layers(self) -> dict[str, RasterLayer]:
        """Rasters that must share the reference grid, keyed by role."""
        return {
            "coastline": self.coastline,
            "mpa": self.mpa,
            "suitability": self.suitability,
            "mpa_distance": self.mpa_distance,
            "owf_distance": self.owf_distance,
            "coast_distance": self.coast_distance,
        }

    @classmethod
    def load(cls, store: ArtifactStore, names: CacheNames) -> PreparedLayers:
        """Load the preparation stage's artifacts from *store*.

        Raises:
            ArtifactNotFoundError: If preparation has not produced a layer.
        """
        return cls(
            countries=store.get_polygons(names.countries),
            owf=store.get_polygons(names.owf),
            coastline=store.get_raster(names.coastline),
            mpa=store.get_raster(names.mpa),
            suitability=store.get_raster(names.suitability),
            mpa_distance=store.get_raster(names.mpa_distance),
            owf_distance=store.get_raster(names.owf_distance),
            coast_distance=store.get_raster(names.coast_distance),
        )


@dataclass(frozen=True, slots=True, eq=False)
class CriterionMasks:
    """Per-cell criterion layers: 1.0 pass, 0.0 fail, NaN no-data."""

    mpa: np.ndarray
    owf: np.ndarray
    coast: np.ndarray
    suitability: np.ndarray

    @property
    def combined(self) -> np.ndarray:
        """Conjunction as a product; no-data in any layer stays NaN."""
        return self.mpa * self.owf * self.coast * self.suitability

    @property
    def passing(self) -> np.ndarray:
        """Boolean mask of cells passing all four criteria."""
        combined = self.combined
        return np.nan_to_num(combined, nan=0.0) > 0

    def counts(self) -> dict[str, int]:
        """Number of passing cells per criterion and overall."""
        return {
            "mpa": int(np.nansum(self.mpa)),
            "owf": int(np.nansum(self.owf)),
            "coast": int(np.nansum(self.coast)),
            "suitability": int(np.nansum(self.suitability)),
            "combined": int(self.passing.sum()),
        }


@dataclass(frozen=True, slots=True)
class DisplayLayers:
    """Distance (km) and suitability layers clamped to their display maxima."""

    mpa_km: RasterLayer
    owf_km: RasterLayer
    coast_km: RasterLayer
    suitability: RasterLayer


@dataclass(frozen=True, slots=True)
class ColdSpotResult:
    """Output of the classifier stage.

    Attributes:
        coldspots: Unified cold-spot polygons (possibly empty).
        mpa_polygons: Unified MPA polygons for plotting (possibly empty).
        criteria: The four criterion layers that produced ``coldspots``.
        display: Clamped layers for colour scales.
    """

    coldspots: PolygonLayer
    mpa_polygons: PolygonLayer
    criteria: CriterionMasks
    display: DisplayLayers
