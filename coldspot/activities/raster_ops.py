"""Raster and vector primitives used by the cold-spot stages.

Cropping, grid alignment, rasterisation, distance transforms and
polygonisation.  Functions are pure: they take and return
``RasterLayer`` / ``PolygonLayer`` values and never touch the artifact
store.

Distance conventions:
    ``euclidean_distance`` returns metres from every cell centre to the
    nearest *source* cell centre; source cells are 0.  For projected
    grids this is an exact Euclidean transform in CRS units scaled to
    metres.  For geographic grids the nearest source cell is found with a
    k-d tree over earth-centred coordinates of the cell centres, and the
    distance to it is measured on the WGS 84 ellipsoid.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import numpy as np

from coldspot.core.constants import DEFAULT_CRS
from coldspot.core.exceptions import PermanentError
from coldspot.models.polygons import PolygonLayer
from coldspot.models.raster import RasterLayer, crs_equal

if TYPE_CHECKING:
    from affine import Affine
    from pyproj import Geod
    from rasterio.enums import Resampling

    from coldspot.core.config import BoundingBox

logger = logging.getLogger("coldspot.activities.raster_ops")

# Tolerance (in cells) when snapping a crop window to the grid
_SNAP_EPS = 1e-6


class StudyAreaError(PermanentError):
    """Raised when a layer does not overlap the study area at all."""

    default_code = "NO_OVERLAP"


# ---------------------------------------------------------------------------
# Cropping
# ---------------------------------------------------------------------------


def bbox_in_crs(bbox: BoundingBox, crs: str) -> tuple[float, float, float, float]:
    """Return the lon/lat *bbox* as ``(west, south, east, north)`` in *crs*."""
    bounds = bbox.as_bounds()
    if crs_equal(crs, DEFAULT_CRS):
        return bounds

    from pyproj import Transformer

    transformer = Transformer.from_crs(DEFAULT_CRS, crs, always_xy=True)
    west, south, east, north = transformer.transform_bounds(*bounds, densify_pts=21)
    return (west, south, east, north)


def crop_raster(layer: RasterLayer, bbox: BoundingBox, *, name: str = "") -> RasterLayer:
    """Crop *layer* to the cells intersecting *bbox*.

    No resampling happens: the result keeps the source resolution and
    alignment, with the transform shifted to the new origin.

    Raises:
        StudyAreaError: If the raster does not overlap the bounding box.
    """
    from rasterio.windows import Window
    from rasterio.windows import transform as window_transform

    west, south, east, north = bbox_in_crs(bbox, layer.crs)
    inverse = ~layer.transform
    corners = [inverse * (x, y) for x in (west, east) for y in (south, north)]
    cols = [c for c, _ in corners]
    rows = [r for _, r in corners]

    height, width = layer.shape
    col_start = max(0, math.floor(min(cols) + _SNAP_EPS))
    col_stop = min(width, math.ceil(max(cols) - _SNAP_EPS))
    row_start = max(0, math.floor(min(rows) + _SNAP_EPS))
    row_stop = min(height, math.ceil(max(rows) - _SNAP_EPS))

    if col_stop <= col_start or row_stop <= row_start:
        msg = f"Layer {name or '<raster>'} does not overlap study area {bbox.as_bounds()}"
        raise StudyAreaError(msg)

    window = Window(col_start, row_start, col_stop - col_start, row_stop - row_start)
    cropped = RasterLayer(
        data=layer.data[row_start:row_stop, col_start:col_stop],
        transform=window_transform(window, layer.transform),
        crs=layer.crs,
        categorical=layer.categorical,
    )
    logger.debug(
        "Cropped %s | from=%s | to=%s | window=(%d, %d, %d, %d)",
        name or "raster",
        layer.shape,
        cropped.shape,
        col_start,
        row_start,
        col_stop - col_start,
        row_stop - row_start,
    )
    return cropped


def crop_polygons(layer: PolygonLayer, bbox: BoundingBox) -> PolygonLayer:
    """Clip *layer* to *bbox* in the layer's native CRS."""
    clipped = layer.clip(bbox_in_crs(bbox, layer.crs))
    logger.debug(
        "Clipped %s | features=%d -> %d",
        layer.name or "polygons",
        len(layer),
        len(clipped),
    )
    return clipped


# ---------------------------------------------------------------------------
# Grid alignment
# ---------------------------------------------------------------------------


def align_to_grid(
    layer: RasterLayer,
    reference: RasterLayer,
    *,
    resampling: Resampling | None = None,
    name: str = "",
) -> RasterLayer:
    """Return *layer* on *reference*'s grid.

    A layer already on the grid is returned unchanged.  Otherwise it is
    reprojected (nearest neighbour for categorical layers, bilinear for
    continuous ones unless *resampling* is given) and a warning is
    logged, so geometric corrections are never silent.
    """
    if layer.same_grid(reference):
        return layer

    from rasterio.enums import Resampling as _Resampling
    from rasterio.warp import reproject

    if resampling is None:
        resampling = _Resampling.nearest if layer.categorical else _Resampling.bilinear

    logger.warning(
        "Resampling %s onto reference grid | src_crs=%s | dst_crs=%s | "
        "src_shape=%s | dst_shape=%s | method=%s",
        name or "raster",
        layer.crs,
        reference.crs,
        layer.shape,
        reference.shape,
        resampling.name,
    )

    destination = np.full(reference.shape, np.nan, dtype=np.float32)
    reproject(
        source=layer.data,
        destination=destination,
        src_transform=layer.transform,
        src_crs=layer.crs,
        src_nodata=np.nan,
        dst_transform=reference.transform,
        dst_crs=reference.crs,
        dst_nodata=np.nan,
        resampling=resampling,
    )
    return RasterLayer(
        data=destination,
        transform=reference.transform,
        crs=reference.crs,
        categorical=layer.categorical,
    )


# ---------------------------------------------------------------------------
# Masks and rasterisation
# ---------------------------------------------------------------------------


def ocean_mask(coastline: RasterLayer) -> RasterLayer:
    """Return 1.0 where *coastline* has data (ocean) and NaN elsewhere (land)."""
    data = np.where(coastline.valid_mask, np.float32(1.0), np.float32(np.nan))
    return coastline.with_data(data, categorical=True)


def positive_cells(layer: RasterLayer) -> np.ndarray:
    """Boolean mask of cells with a value strictly greater than zero."""
    return np.nan_to_num(layer.data, nan=0.0) > 0


def rasterize_polygons(layer: PolygonLayer, reference: RasterLayer) -> np.ndarray:
    """Burn *layer* onto *reference*'s grid; cells whose centre is covered are True."""
    if layer.is_empty:
        return np.zeros(reference.shape, dtype=bool)

    from rasterio.features import rasterize
    from shapely.geometry import mapping

    geometries = list(layer.geometries)
    if not crs_equal(layer.crs, reference.crs):
        from pyproj import Transformer
        from shapely.ops import transform as shapely_transform

        project = Transformer.from_crs(layer.crs, reference.crs, always_xy=True).transform
        geometries = [shapely_transform(project, g) for g in geometries]

    burned = rasterize(
        [(mapping(g), 1) for g in geometries if not g.is_empty],
        out_shape=reference.shape,
        transform=reference.transform,
        fill=0,
        dtype="uint8",
    )
    return burned.astype(bool)


# ---------------------------------------------------------------------------
# Distance transforms
# ---------------------------------------------------------------------------


def euclidean_distance(source: np.ndarray, reference: RasterLayer) -> np.ndarray:
    """Distance in metres from every cell to the nearest *source* cell.

    Args:
        source: Boolean mask on *reference*'s grid; True marks features
            the distance is measured from.
        reference: Layer supplying transform and CRS.

    Returns:
        ``float32`` array; 0 on source cells, ``inf`` everywhere when
        *source* is empty.
    """
    from scipy.ndimage import distance_transform_edt

    source = np.asarray(source, dtype=bool)
    if source.shape != reference.shape:
        msg = f"Source mask shape {source.shape} does not match grid {reference.shape}"
        raise ValueError(msg)
    if not source.any():
        logger.warning("No source cells for distance transform; distances are infinite")
        return np.full(reference.shape, np.inf, dtype=np.float32)

    t = reference.transform
    if not reference.is_geographic:
        unit = _linear_unit_metres(reference.crs)
        sampling = (abs(t.e) * unit, abs(t.a) * unit)
        return distance_transform_edt(~source, sampling=sampling).astype(np.float32)

    from pyproj import Geod
    from scipy.spatial import KDTree

    geod = Geod(ellps="WGS84")
    height, width = reference.shape
    rows, cols = np.indices((height, width))
    lons, lats = _cell_centres(t, rows, cols)

    # chord length on the ellipsoid ranks candidates like geodesic distance
    xyz = _geocentric(geod, lons.ravel(), lats.ravel())
    _, nearest = KDTree(xyz[source.ravel()]).query(xyz)
    source_lons = lons[source][nearest]
    source_lats = lats[source][nearest]

    _, _, dist = geod.inv(lons.ravel(), lats.ravel(), source_lons, source_lats)
    out = np.asarray(dist, dtype=np.float32).reshape(height, width)
    out[source] = 0.0
    return out


def _cell_centres(
    t: Affine, rows: np.ndarray, cols: np.ndarray
) -> tuple[np.ndarray, np.ndarray]:
    x = cols + 0.5
    y = rows + 0.5
    return t.c + x * t.a + y * t.b, t.f + x * t.d + y * t.e


def _geocentric(geod: Geod, lons: np.ndarray, lats: np.ndarray) -> np.ndarray:
    """Earth-centred cartesian coordinates (metres) of points on the ellipsoid."""
    lam = np.radians(lons)
    phi = np.radians(lats)
    n = geod.a / np.sqrt(1.0 - geod.es * np.sin(phi) ** 2)
    return np.column_stack(
        (
            n * np.cos(phi) * np.cos(lam),
            n * np.cos(phi) * np.sin(lam),
            n * (1.0 - geod.es) * np.sin(phi),
        )
    )


def distance_layer(source: np.ndarray, ocean: RasterLayer, *, name: str = "") -> RasterLayer:
    """Distance raster (metres) from *source*, restricted to ocean cells.

    The unmasked transform is computed first and then multiplied by the
    ocean mask, so land and out-of-area cells become NaN.
    """
    distances = euclidean_distance(source, ocean)
    masked = distances * ocean.data
    logger.debug(
        "Distance layer %s | sources=%d | ocean_cells=%d",
        name or "raster",
        int(np.count_nonzero(source)),
        int(np.count_nonzero(ocean.valid_mask)),
    )
    return ocean.with_data(masked, categorical=False)


def _linear_unit_metres(crs: str) -> float:
    from pyproj import CRS

    axis_info = CRS.from_user_input(crs).axis_info
    if axis_info and axis_info[0].unit_conversion_factor:
        return float(axis_info[0].unit_conversion_factor)
    return 1.0


# ---------------------------------------------------------------------------
# Polygonisation
# ---------------------------------------------------------------------------


def polygonize(mask: np.ndarray, reference: RasterLayer, *, name: str = "") -> PolygonLayer:
    """Vectorise True cells of *mask* and union them into one feature.

    Returns an empty layer when no cell is True.
    """
    mask = np.asarray(mask, dtype=bool)
    if not mask.any():
        return PolygonLayer((), reference.crs, name)

    from rasterio.features import shapes
    from shapely.geometry import shape

    fragments = [
        shape(geom)
        for geom, value in shapes(
            mask.astype(np.uint8),
            mask=mask,
            transform=reference.transform,
        )
        if value > 0
    ]
    unified = PolygonLayer(tuple(fragments), reference.crs, name).unified()
    logger.debug(
        "Polygonised %s | cells=%d | fragments=%d | parts=%d",
        name or "mask",
        int(mask.sum()),
        len(fragments),
        len(unified.parts),
    )
    return unified
