"""Three-stage cold-spot pipeline.

Each stage receives only the configuration it needs and shares
intermediate results through one ``ArtifactStore``:

1. ``prepare_layers``: crop, align, distance rasters
2. ``classify_cold_spots``: criteria, cold-spot and MPA polygons
3. ``make_figure``: two-panel figure

Stages can be run on their own (``run_prepare``, ``run_classify``,
``run_figure``); later stages then load their inputs from the store and
raise ``ArtifactNotFoundError`` when an earlier stage has not run.
Any ``PipelineError`` halts the run.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from coldspot.activities.classify_cold_spots import classify_cold_spots
from coldspot.activities.make_figure import load_overlay, make_figure
from coldspot.activities.prepare_layers import prepare_layers
from coldspot.core.artifact_store import FileArtifactStore
from coldspot.models.results import PreparedLayers

if TYPE_CHECKING:
    from pathlib import Path

    from coldspot.core.artifact_store import ArtifactStore
    from coldspot.core.config import PipelineConfig
    from coldspot.models.results import ColdSpotResult

logger = logging.getLogger("coldspot.orchestrators.coldspot_pipeline")


@dataclass(frozen=True, slots=True)
class PipelineResult:
    """Outputs of a full run."""

    prepared: PreparedLayers
    classification: ColdSpotResult
    figure_path: Path


def default_store(config: PipelineConfig) -> ArtifactStore:
    """File store rooted at the configured work directory."""
    return FileArtifactStore(config.workdir)


def _diagnostics_dir(config: PipelineConfig) -> Path | None:
    return config.workdir if config.plot_diagnostics else None


def run_prepare(config: PipelineConfig, store: ArtifactStore | None = None) -> PreparedLayers:
    store = store or default_store(config)
    return prepare_layers(
        config.inputs,
        config.study_area,
        store,
        config.cache,
        diagnostics_dir=_diagnostics_dir(config),
    )


def run_classify(
    config: PipelineConfig,
    store: ArtifactStore | None = None,
    prepared: PreparedLayers | None = None,
) -> ColdSpotResult:
    store = store or default_store(config)
    if prepared is None:
        prepared = PreparedLayers.load(store, config.cache)
    return classify_cold_spots(
        prepared,
        config.thresholds,
        config.display,
        store,
        config.cache,
        diagnostics_dir=_diagnostics_dir(config),
    )


def run_figure(
    config: PipelineConfig,
    store: ArtifactStore | None = None,
    prepared: PreparedLayers | None = None,
    classification: ColdSpotResult | None = None,
) -> Path:
    """Render the figure, loading anything not passed in from *store*.

    Missing polygon overlays degrade to no overlay; missing prepared
    layers are an error.
    """
    store = store or default_store(config)
    if prepared is None:
        prepared = PreparedLayers.load(store, config.cache)
    if classification is not None:
        coldspots, mpa_polygons = classification.coldspots, classification.mpa_polygons
    else:
        coldspots = load_overlay(store, config.cache.coldspots)
        mpa_polygons = load_overlay(store, config.cache.mpa_polygons)
    return make_figure(
        prepared,
        coldspots,
        mpa_polygons,
        config.display,
        config.figure,
        config.workdir,
    )


def run_pipeline(config: PipelineConfig, store: ArtifactStore | None = None) -> PipelineResult:
    """Run all three stages in order.

    Args:
        config: Validated pipeline configuration.
        store: Artifact store; defaults to files under ``config.workdir``.

    Raises:
        PipelineError: From whichever stage fails; later stages do not run.
    """
    store = store or default_store(config)
    started = time.monotonic()
    logger.info("Pipeline started | workdir=%s", config.workdir)

    prepared = run_prepare(config, store)
    classification = run_classify(config, store, prepared)
    figure_path = run_figure(config, store, prepared, classification)

    logger.info(
        "Pipeline completed | figure=%s | coldspot_parts=%d | elapsed_seconds=%.1f",
        figure_path,
        len(classification.coldspots.parts),
        time.monotonic() - started,
    )
    return PipelineResult(
        prepared=prepared,
        classification=classification,
        figure_path=figure_path,
    )
