"""Two-panel cold-spot figure.

Panel a: suitability (clamped to the display maximum) in ten equal
Blues classes, with land, wind farms, MPAs and cold spots overlaid.
Panel b: the modelled ocean extent with cold spots on top.

The legend is declared outright: one ``LegendEntry`` per suitability
class plus OWF, MPA, cold spot and no-data, each mapped to a fixed
colour and label.  Classes that happen to be absent from the data
still appear in the legend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from coldspot.core import constants
from coldspot.core.exceptions import ArtifactNotFoundError, GridMismatchError
from coldspot.utils.plotting import (
    draw_polygons,
    draw_raster,
    new_figure,
    raster_extent,
    save_figure,
)

if TYPE_CHECKING:
    from pathlib import Path

    from matplotlib.axes import Axes

    from coldspot.core.artifact_store import ArtifactStore
    from coldspot.core.config import BoundingBox, DisplayRanges, FigureSpec
    from coldspot.models.polygons import PolygonLayer
    from coldspot.models.raster import RasterLayer
    from coldspot.models.results import PreparedLayers

logger = logging.getLogger("coldspot.activities.make_figure")

STAGE = "make_figure"

# Left panel width relative to the right one
PANEL_A_WIDTH_RATIO = 1.25


@dataclass(frozen=True, slots=True)
class LegendEntry:
    """One legend row: label and fill colour (hex or matplotlib name)."""

    label: str
    colour: str


# ---------------------------------------------------------------------------
# Classes and legend
# ---------------------------------------------------------------------------


def suitability_breaks(range_max: float, bins: int = constants.SUITABILITY_BINS) -> np.ndarray:
    """Equal-width class edges from 0 to *range_max* (``bins + 1`` values)."""
    return np.linspace(0.0, range_max, bins + 1)


def suitability_categories(
    data: np.ndarray,
    range_max: float,
    bins: int = constants.SUITABILITY_BINS,
) -> np.ndarray:
    """Class index (0..bins-1) per cell; -1 for no-data.

    Values are clamped to *range_max* first.  Classes are right-closed,
    so a value exactly on an inner edge falls in the lower class.
    """
    breaks = suitability_breaks(range_max, bins)
    clamped = np.minimum(data, range_max)
    categories = np.digitize(clamped, breaks[1:-1], right=True).astype(np.int16)
    categories[np.isnan(data)] = -1
    return categories


def suitability_colours(bins: int = constants.SUITABILITY_BINS) -> list[str]:
    """Hex colours of the suitability classes, lightest first."""
    import matplotlib as mpl
    from matplotlib.colors import to_hex

    cmap = mpl.colormaps[constants.SUITABILITY_CMAP].resampled(bins)
    return [to_hex(cmap(i)) for i in range(bins)]


def build_legend_entries(
    range_max: float,
    bins: int = constants.SUITABILITY_BINS,
) -> list[LegendEntry]:
    """Full panel-a legend: suitability classes, then OWF, MPA, cold spot, NA."""
    breaks = suitability_breaks(range_max, bins)
    colours = suitability_colours(bins)
    entries = [LegendEntry(f"< {breaks[i + 1]:g}", colours[i]) for i in range(bins - 1)]
    entries.append(LegendEntry(f"> {breaks[bins - 1]:g}", colours[bins - 1]))
    entries.extend(
        [
            LegendEntry("OWF", constants.OWF_COLOUR),
            LegendEntry("MPA", constants.MPA_COLOUR),
            LegendEntry("Cold spot", constants.COLDSPOT_COLOUR),
            LegendEntry("NA", constants.NODATA_COLOUR),
        ]
    )
    return entries


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


def load_overlay(store: ArtifactStore, key: str) -> PolygonLayer | None:
    """Load a polygon overlay, or ``None`` (with a warning) when absent."""
    try:
        return store.get_polygons(key)
    except ArtifactNotFoundError:
        logger.warning("Overlay missing, drawing without it | key=%s", key)
        return None


# ---------------------------------------------------------------------------
# Stage entry point
# ---------------------------------------------------------------------------


def make_figure(
    prepared: PreparedLayers,
    coldspots: PolygonLayer | None,
    mpa_polygons: PolygonLayer | None,
    display: DisplayRanges,
    figure: FigureSpec,
    output_dir: Path,
) -> Path:
    """Render and save the two-panel figure.

    Missing or empty cold-spot / MPA overlays are simply not drawn.

    Returns:
        Path of the written figure.

    Raises:
        GridMismatchError: If the prepared rasters are not on one grid.
    """
    logger.info("Stage started | stage=%s | output=%s", STAGE, figure.filename)
    suitability = prepared.suitability
    for name, layer in prepared.grid_layers().items():
        if not layer.same_grid(suitability):
            msg = f"Layer {name} is not on the suitability grid"
            raise GridMismatchError(msg, stage=STAGE)

    fig = new_figure(*figure.size_inches)
    ax_a, ax_b = fig.subplots(
        1, 2, gridspec_kw={"width_ratios": [PANEL_A_WIDTH_RATIO, 1.0]}
    )
    limits = _plot_limits(figure.plot_area, suitability.crs)

    _draw_suitability_panel(
        ax_a,
        suitability,
        countries=prepared.countries,
        owf=prepared.owf,
        mpa_polygons=mpa_polygons,
        coldspots=coldspots,
        range_max=display.suitability_max,
    )
    _draw_extent_panel(ax_b, suitability, countries=prepared.countries, coldspots=coldspots)

    for ax, label in ((ax_a, "a"), (ax_b, "b")):
        ax.set_xlim(limits[0], limits[2])
        ax.set_ylim(limits[1], limits[3])
        ax.set_title(label, loc="left", fontweight="bold", fontsize=8)
        ax.tick_params(labelsize=5)
        ax.grid(color="white", linewidth=0.3)
        ax.set_axisbelow(False)

    path = save_figure(fig, output_dir / figure.filename, dpi=figure.dpi)
    logger.info(
        "Stage completed | stage=%s | path=%s | coldspots_drawn=%s",
        STAGE,
        path,
        coldspots is not None and not coldspots.is_empty,
    )
    return path


# ---------------------------------------------------------------------------
# Panels
# ---------------------------------------------------------------------------


def _draw_suitability_panel(
    ax: Axes,
    suitability: RasterLayer,
    *,
    countries: PolygonLayer,
    owf: PolygonLayer,
    mpa_polygons: PolygonLayer | None,
    coldspots: PolygonLayer | None,
    range_max: float,
) -> None:
    from matplotlib.colors import BoundaryNorm, ListedColormap
    from matplotlib.patches import Patch

    bins = constants.SUITABILITY_BINS
    categories = suitability_categories(suitability.data, range_max, bins)
    ax.set_facecolor(constants.NODATA_COLOUR)
    ax.imshow(
        np.ma.masked_less(categories, 0),
        extent=raster_extent(suitability),
        origin="upper",
        interpolation="nearest",
        cmap=ListedColormap(suitability_colours(bins)),
        norm=BoundaryNorm(np.arange(-0.5, bins + 0.5, 1.0), bins),
    )

    draw_polygons(
        ax,
        countries,
        crs=suitability.crs,
        facecolor=constants.LAND_FILL,
        edgecolor=constants.LAND_EDGE,
        linewidth=0.1,
    )
    draw_polygons(
        ax, owf, crs=suitability.crs, facecolor=constants.OWF_COLOUR, edgecolor="none"
    )
    draw_polygons(
        ax, mpa_polygons, crs=suitability.crs, facecolor=constants.MPA_COLOUR, edgecolor="none"
    )
    draw_polygons(
        ax, coldspots, crs=suitability.crs, facecolor=constants.COLDSPOT_COLOUR, edgecolor="none"
    )

    handles = [
        Patch(facecolor=entry.colour, edgecolor="0.5", linewidth=0.2, label=entry.label)
        for entry in build_legend_entries(range_max, bins)
    ]
    ax.legend(
        handles=handles,
        title="Mean suitability",
        loc="center right",
        bbox_to_anchor=(-0.12, 0.5),
        fontsize=5,
        title_fontsize=6,
        frameon=False,
    )


def _draw_extent_panel(
    ax: Axes,
    suitability: RasterLayer,
    *,
    countries: PolygonLayer,
    coldspots: PolygonLayer | None,
) -> None:
    from matplotlib.colors import ListedColormap

    extent = suitability.with_data(np.where(suitability.valid_mask, 1.0, np.nan))
    draw_raster(ax, extent, cmap=ListedColormap([constants.MODEL_EXTENT_COLOUR]), vmin=0, vmax=1)
    draw_polygons(
        ax,
        countries,
        crs=suitability.crs,
        facecolor=constants.PANEL_B_LAND_FILL,
        edgecolor=constants.PANEL_B_LAND_EDGE,
        linewidth=0.2,
    )
    draw_polygons(
        ax, coldspots, crs=suitability.crs, facecolor=constants.COLDSPOT_COLOUR, edgecolor="none"
    )


def _plot_limits(area: BoundingBox, crs: str) -> tuple[float, float, float, float]:
    from coldspot.activities.raster_ops import bbox_in_crs

    return bbox_in_crs(area, crs)
