"""Cold-spot classification stage.

A cell is a cold spot when all four criteria hold:

- distance to the nearest MPA (km) > ``mpa_min_km``
- distance to the nearest wind farm (km) > ``owf_min_km``
- distance to the coast (km) > ``coast_min_km``
- ensemble suitability < ``suitability_limit``

Each criterion is a 1/0 layer with no-data kept as NaN; the criteria
are combined by multiplication, so a no-data cell in any layer is
no-data in the result and never a cold spot.  Passing cells are
polygonised and unioned into a single feature.  The same is done for
the MPA raster so the figure can draw MPAs as polygons.

Display clamping happens after, and independently of, classification.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np

from coldspot.activities import raster_ops
from coldspot.activities.diagnostics import plot_coldspot_polygons
from coldspot.core import constants
from coldspot.core.artifact_store import get_or_create
from coldspot.core.exceptions import GridMismatchError
from coldspot.models.results import ColdSpotResult, CriterionMasks, DisplayLayers

if TYPE_CHECKING:
    from pathlib import Path

    from coldspot.core.artifact_store import ArtifactStore
    from coldspot.core.config import CacheNames, ColdSpotThresholds, DisplayRanges
    from coldspot.models.raster import RasterLayer
    from coldspot.models.results import PreparedLayers

logger = logging.getLogger("coldspot.activities.classify_cold_spots")

STAGE = "classify_cold_spots"


# ---------------------------------------------------------------------------
# Criteria
# ---------------------------------------------------------------------------


def to_kilometres(layer: RasterLayer) -> RasterLayer:
    """Convert a distance layer from metres to kilometres."""
    return layer.with_data(layer.data / constants.METRES_PER_KM, categorical=False)


def above(layer: RasterLayer, limit: float) -> np.ndarray:
    """1.0 where value > *limit*, 0.0 where not, NaN where no-data.

    The limit is compared at the layer precision (float32), so a value
    stored from the limit itself never passes.
    """
    return _criterion(layer.data, layer.data > np.float32(limit))


def below(layer: RasterLayer, limit: float) -> np.ndarray:
    """1.0 where value < *limit*, 0.0 where not, NaN where no-data."""
    return _criterion(layer.data, layer.data < np.float32(limit))


def _criterion(data: np.ndarray, passed: np.ndarray) -> np.ndarray:
    return np.where(np.isnan(data), np.float32(np.nan), passed.astype(np.float32)).astype(
        np.float32
    )


def evaluate_criteria(
    *,
    suitability: RasterLayer,
    mpa_km: RasterLayer,
    owf_km: RasterLayer,
    coast_km: RasterLayer,
    thresholds: ColdSpotThresholds,
) -> CriterionMasks:
    """Apply the four strict-inequality criteria.

    Distances must already be in kilometres (see ``to_kilometres``).
    """
    _require_same_grid(
        suitability,
        {"mpa_distance": mpa_km, "owf_distance": owf_km, "coast_distance": coast_km},
    )
    return CriterionMasks(
        mpa=above(mpa_km, thresholds.mpa_min_km),
        owf=above(owf_km, thresholds.owf_min_km),
        coast=above(coast_km, thresholds.coast_min_km),
        suitability=below(suitability, thresholds.suitability_limit),
    )


def clamp_for_display(layer: RasterLayer, range_max: float) -> RasterLayer:
    """Cap values at *range_max* for colour scales; NaN stays NaN."""
    return layer.with_data(np.minimum(layer.data, np.float32(range_max)))


def display_layers(
    *,
    suitability: RasterLayer,
    mpa_km: RasterLayer,
    owf_km: RasterLayer,
    coast_km: RasterLayer,
    display: DisplayRanges,
) -> DisplayLayers:
    return DisplayLayers(
        mpa_km=clamp_for_display(mpa_km, display.mpa_max_km),
        owf_km=clamp_for_display(owf_km, display.owf_max_km),
        coast_km=clamp_for_display(coast_km, display.coast_max_km),
        suitability=clamp_for_display(suitability, display.suitability_max),
    )


# ---------------------------------------------------------------------------
# Stage entry point
# ---------------------------------------------------------------------------


def classify_cold_spots(
    prepared: PreparedLayers,
    thresholds: ColdSpotThresholds,
    display: DisplayRanges,
    store: ArtifactStore,
    names: CacheNames,
    *,
    diagnostics_dir: Path | None = None,
) -> ColdSpotResult:
    """Run the classification stage.

    Criterion layers are always recomputed (they are cheap); the
    cold-spot and MPA polygon collections are cached under
    ``names.coldspots`` / ``names.mpa_polygons``.

    Raises:
        GridMismatchError: If the prepared rasters are not on one grid.
    """
    logger.info(
        "Stage started | stage=%s | suitability<%s | mpa>%skm | owf>%skm | coast>%skm",
        STAGE,
        thresholds.suitability_limit,
        thresholds.mpa_min_km,
        thresholds.owf_min_km,
        thresholds.coast_min_km,
    )
    _require_same_grid(prepared.suitability, prepared.grid_layers())

    mpa_km = to_kilometres(prepared.mpa_distance)
    owf_km = to_kilometres(prepared.owf_distance)
    coast_km = to_kilometres(prepared.coast_distance)
    criteria = evaluate_criteria(
        suitability=prepared.suitability,
        mpa_km=mpa_km,
        owf_km=owf_km,
        coast_km=coast_km,
        thresholds=thresholds,
    )
    counts = criteria.counts()
    logger.info(
        "Criteria evaluated | mpa=%d | owf=%d | coast=%d | suitability=%d | combined=%d",
        counts["mpa"],
        counts["owf"],
        counts["coast"],
        counts["suitability"],
        counts["combined"],
    )

    reference = prepared.suitability
    coldspots = get_or_create(
        store,
        names.coldspots,
        lambda: raster_ops.polygonize(criteria.passing, reference, name="coldspot"),
        description="cold-spot polygons",
    )
    mpa_polygons = get_or_create(
        store,
        names.mpa_polygons,
        lambda: raster_ops.polygonize(
            raster_ops.positive_cells(prepared.mpa), reference, name="mpa"
        ),
        description="MPA polygons",
    )

    if coldspots.is_empty:
        logger.warning("No cells satisfy all cold-spot criteria | stage=%s", STAGE)

    if diagnostics_dir is not None:
        plot_coldspot_polygons(
            diagnostics_dir / constants.DIAGNOSTIC_COLDSPOTS,
            coldspots=coldspots,
            mpa_polygons=mpa_polygons,
            countries=prepared.countries,
        )

    result = ColdSpotResult(
        coldspots=coldspots,
        mpa_polygons=mpa_polygons,
        criteria=criteria,
        display=display_layers(
            suitability=prepared.suitability,
            mpa_km=mpa_km,
            owf_km=owf_km,
            coast_km=coast_km,
            display=display,
        ),
    )
    logger.info(
        "Stage completed | stage=%s | coldspot_parts=%d | coldspot_area=%.6g | mpa_parts=%d",
        STAGE,
        len(coldspots.parts),
        coldspots.area,
        len(mpa_polygons.parts),
    )
    return result


def _require_same_grid(reference: RasterLayer, layers: dict[str, RasterLayer]) -> None:
    for name, layer in layers.items():
        if not layer.same_grid(reference):
            msg = (
                f"Layer {name} is not on the suitability grid "
                f"(shape {layer.shape}, crs {layer.crs} vs "
                f"shape {reference.shape}, crs {reference.crs})"
            )
            raise GridMismatchError(msg, stage=STAGE)
