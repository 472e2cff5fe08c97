"""Diagnostic PNGs written alongside the cache when enabled.

- ``plot_input_layers``: cropped inputs (2 x 3)
- ``plot_distance_layers``: prepared distance and suitability layers (3 x 2)
- ``plot_coldspot_polygons``: cold spots, MPAs and land with a legend

These are for eyeballing intermediate results; nothing downstream reads
them.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from coldspot.core import constants
from coldspot.utils.plotting import draw_polygons, draw_raster, new_figure, save_figure

if TYPE_CHECKING:
    from pathlib import Path

    from coldspot.models.polygons import PolygonLayer
    from coldspot.models.raster import RasterLayer
    from coldspot.models.results import PreparedLayers

logger = logging.getLogger("coldspot.activities.diagnostics")


def plot_input_layers(
    path: Path,
    *,
    coastline: RasterLayer,
    mpa: RasterLayer,
    suitability: RasterLayer,
    owf: PolygonLayer,
    countries: PolygonLayer,
) -> Path:
    """Plot the cropped input layers on one page."""
    fig = new_figure(12.0, 8.0)
    axes = fig.subplots(2, 3).ravel()

    panels = [
        ("Coastline (ocean mask)", coastline, "viridis"),
        ("MPA", mpa, "viridis"),
        ("Suitability", suitability, constants.SUITABILITY_CMAP),
    ]
    for ax, (title, layer, cmap) in zip(axes[:3], panels, strict=True):
        image = draw_raster(ax, layer, cmap=cmap)
        fig.colorbar(image, ax=ax, shrink=0.7)
        ax.set_title(title)

    draw_polygons(axes[3], owf, facecolor=constants.OWF_COLOUR, edgecolor="black", linewidth=0.2)
    axes[3].set_title("Offshore wind farms")
    draw_polygons(
        axes[4],
        countries,
        facecolor=constants.LAND_FILL,
        edgecolor=constants.LAND_EDGE,
        linewidth=0.2,
    )
    axes[4].set_title("Countries")
    axes[5].set_axis_off()

    return save_figure(fig, path, dpi=constants.DIAGNOSTIC_DPI)


def plot_distance_layers(path: Path, prepared: PreparedLayers) -> Path:
    """Plot the prepared layers the classifier consumes."""
    fig = new_figure(10.0, 12.0)
    axes = fig.subplots(3, 2).ravel()

    panels = [
        ("MPA", prepared.mpa, "viridis"),
        ("Distance to MPA (m)", prepared.mpa_distance, "magma"),
        ("Distance to OWF (m)", prepared.owf_distance, "magma"),
        ("Distance to coast (m)", prepared.coast_distance, "magma"),
        ("Suitability", prepared.suitability, constants.SUITABILITY_CMAP),
    ]
    for ax, (title, layer, cmap) in zip(axes, panels, strict=False):
        image = draw_raster(ax, layer, cmap=cmap)
        fig.colorbar(image, ax=ax, shrink=0.7)
        ax.set_title(title)

    draw_polygons(
        axes[5], prepared.owf, facecolor=constants.OWF_COLOUR, edgecolor="black", linewidth=0.2
    )
    axes[5].set_title("Offshore wind farms")

    return save_figure(fig, path, dpi=constants.DIAGNOSTIC_DPI)


def plot_coldspot_polygons(
    path: Path,
    *,
    coldspots: PolygonLayer,
    mpa_polygons: PolygonLayer,
    countries: PolygonLayer,
) -> Path:
    """Plot cold-spot and MPA polygons over land."""
    from matplotlib.patches import Patch

    fig = new_figure(8.0, 8.0)
    ax = fig.subplots()
    draw_polygons(
        ax,
        countries,
        facecolor=constants.LAND_FILL,
        edgecolor=constants.LAND_EDGE,
        linewidth=0.2,
    )
    draw_polygons(ax, mpa_polygons, facecolor=constants.MPA_COLOUR, edgecolor="none")
    draw_polygons(ax, coldspots, facecolor=constants.COLDSPOT_COLOUR, edgecolor="none")
    ax.legend(
        handles=[
            Patch(facecolor=constants.COLDSPOT_COLOUR, label="Cold spot"),
            Patch(facecolor=constants.MPA_COLOUR, label="MPA"),
            Patch(facecolor=constants.LAND_FILL, edgecolor=constants.LAND_EDGE, label="Land"),
        ],
        loc="lower right",
    )
    ax.set_title("Cold-spot polygons")

    return save_figure(fig, path, dpi=constants.DIAGNOSTIC_DPI)
