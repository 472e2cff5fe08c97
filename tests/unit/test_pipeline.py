"""Tests for the three-stage pipeline and its command-line entry point.

Runs the full pipeline over the small lon/lat dataset from conftest:
land on the western three columns, high suitability on the top five
rows, one MPA in the north-east and one wind farm in the south.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from shapely.geometry import Point

from coldspot.activities import raster_ops
from coldspot.cli import main
from coldspot.core.config import PipelineConfig
from coldspot.core.exceptions import ArtifactNotFoundError
from coldspot.orchestrators import coldspot_pipeline

# cell centre in the open sea, low suitability, far from MPA / OWF / coast
OPEN_SEA = Point(1.55, 50.95)
# same column, top row: suitability 0.5
HIGH_SUITABILITY = Point(1.55, 51.95)


def _write_config(config: PipelineConfig, path: Path, **extra: object) -> Path:
    inputs = config.inputs
    area = {"lon_min": 0.0, "lon_max": 1.9, "lat_min": 50.0, "lat_max": 52.0}
    data = {
        "workdir": str(config.workdir),
        "study_area": area,
        "inputs": {
            "owf": str(inputs.owf_path),
            "mpa": str(inputs.mpa_path),
            "countries": str(inputs.countries_path),
            "suitability": str(inputs.suitability_path),
            "coastline": str(inputs.coastline_path),
        },
        "figure": {"filename": "figure.png", "dpi": 50, "plot_area": area},
        **extra,
    }
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestRunPipeline:
    def test_full_run(self, geo_config: PipelineConfig) -> None:
        result = coldspot_pipeline.run_pipeline(geo_config)

        assert result.figure_path == geo_config.workdir / "figure.png"
        assert result.figure_path.is_file()
        coldspots = result.classification.coldspots
        assert not coldspots.is_empty
        assert coldspots.geometries[0].contains(OPEN_SEA)
        assert not coldspots.geometries[0].contains(HIGH_SUITABILITY)
        assert (geo_config.workdir / geo_config.cache.coldspots).is_file()
        assert (geo_config.workdir / geo_config.cache.mpa_polygons).is_file()

    def test_second_run_recomputes_nothing_cached(self, geo_config: PipelineConfig) -> None:
        coldspot_pipeline.run_pipeline(geo_config)

        with (
            patch.object(raster_ops, "euclidean_distance") as edt,
            patch.object(raster_ops, "polygonize") as polygonize,
        ):
            result = coldspot_pipeline.run_pipeline(geo_config)

        edt.assert_not_called()
        polygonize.assert_not_called()
        assert result.classification.coldspots.geometries[0].contains(OPEN_SEA)

    def test_diagnostics_written_when_enabled(self, geo_config: PipelineConfig) -> None:
        import dataclasses

        from coldspot.core import constants

        config = dataclasses.replace(geo_config, plot_diagnostics=True)
        coldspot_pipeline.run_pipeline(config)
        for name in (
            constants.DIAGNOSTIC_INPUTS,
            constants.DIAGNOSTIC_DISTANCES,
            constants.DIAGNOSTIC_COLDSPOTS,
        ):
            assert (config.workdir / name).is_file(), name


class TestStandaloneStages:
    def test_classify_requires_prepared_layers(self, geo_config: PipelineConfig) -> None:
        with pytest.raises(ArtifactNotFoundError):
            coldspot_pipeline.run_classify(geo_config)

    def test_stages_chain_through_store(self, geo_config: PipelineConfig) -> None:
        coldspot_pipeline.run_prepare(geo_config)
        classification = coldspot_pipeline.run_classify(geo_config)
        path = coldspot_pipeline.run_figure(geo_config)

        assert classification.coldspots.geometries[0].contains(OPEN_SEA)
        assert path.is_file()

    def test_figure_without_classification_draws_no_overlays(
        self, geo_config: PipelineConfig, caplog: pytest.LogCaptureFixture
    ) -> None:
        coldspot_pipeline.run_prepare(geo_config)
        with caplog.at_level(logging.WARNING, logger="coldspot.activities.make_figure"):
            path = coldspot_pipeline.run_figure(geo_config)

        assert path.is_file()
        assert caplog.text.count("Overlay missing") == 2


class TestCli:
    def test_run_command(self, tmp_path: Path, geo_config: PipelineConfig) -> None:
        config_path = _write_config(geo_config, tmp_path / "coldspot.yaml")
        assert main(["run", "--config", str(config_path)]) == 0
        assert (geo_config.workdir / "figure.png").is_file()

    def test_workdir_override(self, tmp_path: Path, geo_config: PipelineConfig) -> None:
        config_path = _write_config(geo_config, tmp_path / "coldspot.yaml")
        other = tmp_path / "elsewhere"

        assert main(["prepare", "--config", str(config_path), "--workdir", str(other)]) == 0
        assert (other / geo_config.cache.coast_distance).is_file()
        assert not geo_config.workdir.exists()

    def test_no_diagnostics_override(self, tmp_path: Path, geo_config: PipelineConfig) -> None:
        config_path = _write_config(
            geo_config, tmp_path / "coldspot.yaml", plot_diagnostics=True
        )
        assert main(["prepare", "--config", str(config_path), "--no-diagnostics"]) == 0
        assert not list(geo_config.workdir.glob("diagnostic_*.png"))

    def test_missing_stage_input_exits_nonzero(
        self,
        tmp_path: Path,
        geo_config: PipelineConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        config_path = _write_config(geo_config, tmp_path / "coldspot.yaml")
        with caplog.at_level(logging.ERROR, logger="coldspot.cli"):
            assert main(["classify", "--config", str(config_path)]) == 1

        assert "Pipeline halted" in caplog.text
        payload = json.loads(caplog.records[-1].getMessage().split(" | ", 1)[1])
        assert payload["code"] == "ARTIFACT_NOT_FOUND"

    def test_invalid_config_exits_nonzero(self, tmp_path: Path) -> None:
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("inputs: {}\n", encoding="utf-8")
        assert main(["run", "--config", str(config_path)]) == 1

    def test_unknown_command_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit):
            main(["publish", "--config", str(tmp_path / "x.yaml")])
