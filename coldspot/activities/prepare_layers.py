"""Layer preparation stage.

Crops every input to the study area, puts the rasters on the coastline
raster's grid, and computes three distance rasters (to MPAs, to
offshore wind farms, to the coast) restricted to ocean cells.

Every product is cached through ``get_or_create``: a second run with
the same cache names loads the artifacts instead of recomputing them.

Sources for the distance transforms:
- MPA: cells of the MPA raster with a value > 0
- OWF: cells whose centre is covered by a wind-farm polygon
- Coast: land cells, i.e. cells where the ocean mask has no data

All raw inputs are checked and parsed before the first cache write, so
a missing or unreadable input never leaves a half-populated cache.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from coldspot.activities import raster_ops
from coldspot.activities.diagnostics import plot_distance_layers, plot_input_layers
from coldspot.core import constants
from coldspot.core.artifact_store import get_or_create
from coldspot.core.exceptions import GridMismatchError, MissingInputError
from coldspot.models.results import PreparedLayers
from coldspot.utils.layer_io import read_polygons, read_raster

if TYPE_CHECKING:
    from pathlib import Path

    from coldspot.core.artifact_store import ArtifactStore
    from coldspot.core.config import BoundingBox, CacheNames, InputLayers
    from coldspot.models.polygons import PolygonLayer
    from coldspot.models.raster import RasterLayer

logger = logging.getLogger("coldspot.activities.prepare_layers")

STAGE = "prepare_layers"


def prepare_layers(
    inputs: InputLayers,
    study_area: BoundingBox,
    store: ArtifactStore,
    names: CacheNames,
    *,
    diagnostics_dir: Path | None = None,
) -> PreparedLayers:
    """Run the preparation stage.

    Args:
        inputs: Raw input layer locations.
        study_area: Lon/lat bounding box to crop to.
        store: Artifact store holding the cached products.
        names: Cache keys for each product.
        diagnostics_dir: Directory for diagnostic PNGs; ``None`` disables them.

    Returns:
        The cropped layers and distance rasters, all on one grid.

    Raises:
        MissingInputError: If any raw input is missing or unreadable.
        GridMismatchError: If a cached layer is off the reference grid.
    """
    logger.info("Stage started | stage=%s | study_area=%s", STAGE, study_area.as_bounds())
    raw = _load_inputs(inputs)

    coastline = get_or_create(
        store,
        names.coastline,
        lambda: raster_ops.crop_raster(raw["coastline"], study_area, name="coastline"),
        description="cropped coastline",
    )
    countries = get_or_create(
        store,
        names.countries,
        lambda: raster_ops.crop_polygons(raw["countries"], study_area),
        description="cropped countries",
    )
    owf = get_or_create(
        store,
        names.owf,
        lambda: raster_ops.crop_polygons(raw["owf"], study_area),
        description="cropped wind farms",
    )
    mpa = get_or_create(
        store,
        names.mpa,
        lambda: _crop_and_align(raw["mpa"], study_area, coastline, "mpa", categorical=True),
        description="cropped MPA",
    )
    suitability = get_or_create(
        store,
        names.suitability,
        lambda: _crop_and_align(raw["suitability"], study_area, coastline, "suitability"),
        description="cropped suitability",
    )
    _check_grid(coastline, {"mpa": mpa, "suitability": suitability})

    if diagnostics_dir is not None:
        plot_input_layers(
            diagnostics_dir / constants.DIAGNOSTIC_INPUTS,
            coastline=coastline,
            mpa=mpa,
            suitability=suitability,
            owf=owf,
            countries=countries,
        )

    ocean = raster_ops.ocean_mask(coastline)
    mpa_distance = get_or_create(
        store,
        names.mpa_distance,
        lambda: raster_ops.distance_layer(raster_ops.positive_cells(mpa), ocean, name="mpa"),
        description="distance to MPA",
    )
    owf_distance = get_or_create(
        store,
        names.owf_distance,
        lambda: raster_ops.distance_layer(
            raster_ops.rasterize_polygons(owf, coastline), ocean, name="owf"
        ),
        description="distance to wind farms",
    )
    coast_distance = get_or_create(
        store,
        names.coast_distance,
        lambda: raster_ops.distance_layer(~coastline.valid_mask, ocean, name="coast"),
        description="distance to coast",
    )
    _check_grid(
        coastline,
        {
            "mpa_distance": mpa_distance,
            "owf_distance": owf_distance,
            "coast_distance": coast_distance,
        },
    )

    prepared = PreparedLayers(
        countries=countries,
        owf=owf,
        coastline=coastline,
        mpa=mpa,
        suitability=suitability,
        mpa_distance=mpa_distance,
        owf_distance=owf_distance,
        coast_distance=coast_distance,
    )

    if diagnostics_dir is not None:
        plot_distance_layers(diagnostics_dir / constants.DIAGNOSTIC_DISTANCES, prepared)

    logger.info(
        "Stage completed | stage=%s | grid=%s | crs=%s | ocean_cells=%d | "
        "owf_features=%d | country_features=%d",
        STAGE,
        coastline.shape,
        coastline.crs,
        int(np.count_nonzero(coastline.valid_mask)),
        len(owf),
        len(countries),
    )
    return prepared


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _load_inputs(inputs: InputLayers) -> dict[str, RasterLayer | PolygonLayer]:
    missing = inputs.missing()
    if missing:
        reason = "does not exist"
        if len(missing) > 1:
            others = ", ".join(str(p) for p in missing[1:])
            reason = f"does not exist (also missing: {others})"
        raise MissingInputError(missing[0], reason, stage=STAGE)

    try:
        return {
            "coastline": read_raster(inputs.coastline_path),
            "mpa": read_raster(inputs.mpa_path),
            "suitability": read_raster(inputs.suitability_path),
            "owf": read_polygons(
                inputs.owf_path,
                layer=inputs.owf_layer,
                assume_crs=inputs.owf_crs,
                name="owf",
            ),
            "countries": read_polygons(
                inputs.countries_path,
                layer=inputs.countries_layer,
                name="countries",
            ),
        }
    except MissingInputError as exc:
        exc.stage = exc.stage or STAGE
        raise


def _crop_and_align(
    layer: RasterLayer,
    study_area: BoundingBox,
    reference: RasterLayer,
    name: str,
    *,
    categorical: bool = False,
) -> RasterLayer:
    cropped = raster_ops.crop_raster(layer, study_area, name=name)
    if categorical:
        cropped = cropped.with_data(cropped.data, categorical=True)
    return raster_ops.align_to_grid(cropped, reference, name=name)


def _check_grid(reference: RasterLayer, layers: dict[str, RasterLayer]) -> None:
    for name, layer in layers.items():
        if not layer.same_grid(reference):
            msg = (
                f"Cached layer {name} is not on the coastline grid "
                f"(shape {layer.shape} vs {reference.shape}); "
                "delete the stale cache file to recompute it"
            )
            raise GridMismatchError(msg, stage=STAGE)
