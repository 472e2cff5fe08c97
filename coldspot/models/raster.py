"""Data model for a single-band raster layer.

A ``RasterLayer`` is a 2-D grid over a fixed extent, resolution and CRS.
In memory every layer is ``float32`` with ``NaN`` as no-data, so raster
algebra (multiplication by an ocean mask, threshold comparisons)
propagates missing cells without special cases.  ``categorical`` only
controls the on-disk encoding (``uint8`` instead of ``float32``).

Rasters entering the classifier must all satisfy ``same_grid``;
resampling is the preparation stage's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from affine import Affine


@dataclass(frozen=True, slots=True, eq=False)
class RasterLayer:
    """A georeferenced 2-D grid.

    Attributes:
        data: Cell values, ``float32``, ``NaN`` = no-data.
        transform: Affine transform from (col, row) to CRS coordinates.
        crs: CRS as a user-input string (e.g. ``"EPSG:4326"``).
        categorical: Whether the layer holds classes/flags rather than
            continuous values (drives on-disk dtype only).
    """

    data: np.ndarray
    transform: Affine
    crs: str
    categorical: bool = False

    def __post_init__(self) -> None:
        arr = np.asarray(self.data, dtype=np.float32)
        if arr.ndim != 2:
            msg = f"RasterLayer data must be 2-D, got shape {arr.shape}"
            raise ValueError(msg)
        object.__setattr__(self, "data", arr)

    @property
    def shape(self) -> tuple[int, int]:
        return self.data.shape  # type: ignore[return-value]

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Return ``(west, south, east, north)`` in the layer CRS."""
        from rasterio.transform import array_bounds

        west, south, east, north = array_bounds(self.shape[0], self.shape[1], self.transform)
        return (min(west, east), min(south, north), max(west, east), max(south, north))

    @property
    def valid_mask(self) -> np.ndarray:
        """Boolean mask of cells holding data."""
        return ~np.isnan(self.data)

    @property
    def is_geographic(self) -> bool:
        from pyproj import CRS

        return bool(CRS.from_user_input(self.crs).is_geographic)

    def same_grid(self, other: RasterLayer) -> bool:
        """Return True if *other* shares extent, resolution and CRS."""
        return (
            self.shape == other.shape
            and crs_equal(self.crs, other.crs)
            and self.transform.almost_equals(other.transform)
        )

    def with_data(self, data: np.ndarray, *, categorical: bool | None = None) -> RasterLayer:
        """Return a layer on the same grid holding *data*."""
        return RasterLayer(
            data=data,
            transform=self.transform,
            crs=self.crs,
            categorical=self.categorical if categorical is None else categorical,
        )


def crs_equal(a: str, b: str) -> bool:
    """Compare two CRS definitions semantically (``EPSG:4326`` == WKT of 4326)."""
    if a == b:
        return True
    from pyproj import CRS

    return bool(CRS.from_user_input(a) == CRS.from_user_input(b))
