"""Shared matplotlib helpers for diagnostics and the final figure.

Figures are built with the object-oriented ``matplotlib.figure.Figure``
API so rendering never depends on a GUI backend or on pyplot's global
state.  Polygon overlays go through geopandas; empty layers are skipped
so an empty cold-spot result simply draws nothing.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:
    from pathlib import Path

    from matplotlib.axes import Axes
    from matplotlib.figure import Figure

    from coldspot.models.polygons import PolygonLayer
    from coldspot.models.raster import RasterLayer

logger = logging.getLogger("coldspot.utils.plotting")


def new_figure(width_in: float, height_in: float, **kwargs: Any) -> Figure:
    """Create a pyplot-free figure."""
    from matplotlib.figure import Figure

    return Figure(figsize=(width_in, height_in), **kwargs)


def raster_extent(layer: RasterLayer) -> tuple[float, float, float, float]:
    """Return ``(left, right, bottom, top)`` for ``imshow``."""
    from rasterio.plot import plotting_extent

    return tuple(plotting_extent(layer.data, layer.transform))  # type: ignore[return-value]


def draw_raster(ax: Axes, layer: RasterLayer, **kwargs: Any) -> Any:
    """Draw *layer* with no-data cells left transparent."""
    masked = np.ma.masked_invalid(layer.data)
    kwargs.setdefault("interpolation", "nearest")
    return ax.imshow(masked, extent=raster_extent(layer), origin="upper", **kwargs)


def draw_polygons(
    ax: Axes,
    layer: PolygonLayer | None,
    *,
    crs: str | None = None,
    **kwargs: Any,
) -> None:
    """Overlay *layer* on *ax*, reprojected to *crs* when given.

    Missing or empty layers draw nothing.
    """
    if layer is None or layer.is_empty:
        return

    import geopandas as gpd

    from coldspot.models.raster import crs_equal

    series = gpd.GeoSeries(list(layer.geometries), crs=layer.crs)
    if crs is not None and not crs_equal(layer.crs, crs):
        series = series.to_crs(crs)
    series.plot(ax=ax, **kwargs)


def save_figure(fig: Figure, path: Path, *, dpi: int) -> Path:
    """Write *fig* to *path*; the suffix selects the output format."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(path, dpi=dpi, bbox_inches="tight")
    logger.info("Wrote figure | path=%s | dpi=%d", path, dpi)
    return path
