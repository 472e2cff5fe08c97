"""Tests for raster/vector primitives.

Covers:
- Cropping to a bounding box without resampling
- Grid alignment (no-op vs logged resample)
- Rasterisation and ocean mask
- Distance transform values and polarity
- Polygonisation: region counts, merging, empty masks
"""

from __future__ import annotations

import logging
import warnings
from pathlib import Path

import numpy as np
import pytest
from affine import Affine
from shapely.geometry import Point, Polygon, box

from coldspot.activities import raster_ops
from coldspot.activities.raster_ops import StudyAreaError
from coldspot.core.config import BoundingBox
from coldspot.models.polygons import PolygonLayer
from coldspot.models.raster import RasterLayer
from coldspot.utils.layer_io import read_polygons


def geographic_layer(data: np.ndarray, res: float = 0.1) -> RasterLayer:
    transform = Affine(res, 0.0, 0.0, 0.0, -res, 52.0)
    return RasterLayer(np.asarray(data, dtype=np.float32), transform, "EPSG:4326")


class TestCropRaster:
    def test_crop_keeps_resolution(self) -> None:
        layer = geographic_layer(np.arange(400).reshape(20, 20))
        cropped = raster_ops.crop_raster(layer, BoundingBox(0.5, 1.0, 51.0, 51.5))

        assert cropped.shape == (5, 5)
        assert cropped.transform.a == pytest.approx(0.1)
        assert cropped.bounds == pytest.approx((0.5, 51.0, 1.0, 51.5))
        # row 5 (lat 51.5 .. 51.4), col 5 (lon 0.5 .. 0.6)
        assert cropped.data[0, 0] == 105

    def test_partial_cells_are_included(self) -> None:
        layer = geographic_layer(np.ones((20, 20)))
        cropped = raster_ops.crop_raster(layer, BoundingBox(0.55, 0.95, 51.05, 51.45))
        assert cropped.shape == (5, 5)

    def test_bbox_larger_than_raster(self) -> None:
        layer = geographic_layer(np.ones((20, 20)))
        cropped = raster_ops.crop_raster(layer, BoundingBox(-5.0, 30.0, 40.0, 70.0))
        assert cropped.shape == (20, 20)

    def test_no_overlap(self) -> None:
        layer = geographic_layer(np.ones((20, 20)))
        with pytest.raises(StudyAreaError):
            raster_ops.crop_raster(layer, BoundingBox(10.0, 11.0, 60.0, 61.0), name="mpa")


class TestCropPolygons:
    def test_clip_to_bbox(self) -> None:
        layer = PolygonLayer((box(0, 50, 2, 52), box(5, 50, 6, 51)), "EPSG:4326")
        clipped = raster_ops.crop_polygons(layer, BoundingBox(1.0, 3.0, 51.0, 53.0))
        assert len(clipped) == 1
        assert clipped.area == pytest.approx(1.0)

    def test_self_intersecting_country_is_repaired(self) -> None:
        # bow-tie ring crossing itself at (1, 51)
        bowtie = Polygon([(0, 50), (2, 52), (2, 50), (0, 52), (0, 50)])
        assert not bowtie.is_valid
        clipped = raster_ops.crop_polygons(
            PolygonLayer((bowtie,), "EPSG:4326"), BoundingBox(0.5, 1.9, 50.0, 52.0)
        )
        assert len(clipped) == 1
        assert all(part.is_valid for part in clipped.parts)
        # left lobe 0.25 plus right lobe 0.81 inside lon 0.5..1.9
        assert clipped.area == pytest.approx(1.06)

    def test_self_intersecting_source_repaired_on_read(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        import fiona
        from shapely.geometry import mapping

        bowtie = Polygon([(0, 50), (2, 52), (2, 50), (0, 52), (0, 50)])
        path = tmp_path / "countries.gpkg"
        schema = {"geometry": "Polygon", "properties": {}}
        with fiona.open(str(path), "w", driver="GPKG", schema=schema, crs="EPSG:4326") as dst:
            dst.write({"geometry": mapping(bowtie), "properties": {}})

        with caplog.at_level(logging.WARNING, logger="coldspot.utils.layer_io"):
            layer = read_polygons(path)

        assert "Repairing 1 invalid geometry" in caplog.text
        assert all(g.is_valid for g in layer.geometries)
        assert layer.area == pytest.approx(2.0)


class TestAlignToGrid:
    def test_same_grid_is_noop(self, make_raster, caplog: pytest.LogCaptureFixture) -> None:
        layer = make_raster(np.ones((3, 3)))
        with caplog.at_level(logging.WARNING, logger="coldspot.activities.raster_ops"):
            aligned = raster_ops.align_to_grid(layer, make_raster(np.zeros((3, 3))))
        assert aligned is layer
        assert caplog.text == ""

    def test_resample_is_logged(self, make_raster, caplog: pytest.LogCaptureFixture) -> None:
        coarse = make_raster(np.full((2, 2), 0.5), cell=2000.0)
        reference = make_raster(np.zeros((4, 4)))
        with caplog.at_level(logging.WARNING, logger="coldspot.activities.raster_ops"):
            aligned = raster_ops.align_to_grid(coarse, reference, name="suitability")

        assert aligned.same_grid(reference)
        assert "Resampling suitability onto reference grid" in caplog.text
        assert np.nanmax(aligned.data) == pytest.approx(0.5)

    def test_categorical_uses_nearest(self, make_raster) -> None:
        coarse = make_raster(
            np.array([[1.0, np.nan], [np.nan, 1.0]]), cell=2000.0, categorical=True
        )
        aligned = raster_ops.align_to_grid(coarse, make_raster(np.zeros((4, 4))))
        values = aligned.data[aligned.valid_mask]
        assert set(values.tolist()) == {1.0}
        assert aligned.categorical is True


class TestMasks:
    def test_ocean_mask(self, make_raster) -> None:
        coastline = make_raster(np.array([[np.nan, 3.2], [0.0, np.nan]]))
        ocean = raster_ops.ocean_mask(coastline)
        np.testing.assert_array_equal(ocean.data, [[np.nan, 1.0], [1.0, np.nan]])

    def test_positive_cells(self, make_raster) -> None:
        layer = make_raster(np.array([[np.nan, 1.0], [0.0, 2.0]]))
        np.testing.assert_array_equal(
            raster_ops.positive_cells(layer), [[False, True], [False, True]]
        )

    def test_rasterize_polygons(self, make_raster) -> None:
        reference = make_raster(np.zeros((4, 4)))
        x0, y0 = 4_000_000.0, 3_000_000.0
        # covers the 2 x 2 block in the top-left corner
        layer = PolygonLayer((box(x0, y0 - 2000, x0 + 2000, y0),), "EPSG:3035")
        burned = raster_ops.rasterize_polygons(layer, reference)
        assert burned.dtype == bool
        assert burned.sum() == 4
        assert burned[:2, :2].all()

    def test_rasterize_empty_layer(self, make_raster) -> None:
        burned = raster_ops.rasterize_polygons(
            PolygonLayer((), "EPSG:3035"), make_raster(np.zeros((3, 3)))
        )
        assert not burned.any()


class TestEuclideanDistance:
    def test_projected_distances(self, make_raster) -> None:
        source = np.zeros((3, 3), dtype=bool)
        source[0, 0] = True
        dist = raster_ops.euclidean_distance(source, make_raster(np.zeros((3, 3))))

        assert dist[0, 0] == 0.0
        assert dist[0, 1] == pytest.approx(1000.0)
        assert dist[1, 1] == pytest.approx(1000.0 * np.sqrt(2))
        assert dist[2, 2] == pytest.approx(1000.0 * np.sqrt(8))

    def test_no_sources_is_infinite(self, make_raster, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="coldspot.activities.raster_ops"):
            dist = raster_ops.euclidean_distance(
                np.zeros((2, 2), dtype=bool), make_raster(np.zeros((2, 2)))
            )
        assert np.isinf(dist).all()
        assert "No source cells" in caplog.text

    def test_shape_mismatch(self, make_raster) -> None:
        with pytest.raises(ValueError, match="does not match"):
            raster_ops.euclidean_distance(
                np.zeros((2, 3), dtype=bool), make_raster(np.zeros((2, 2)))
            )

    def test_geographic_distance_is_geodesic(self) -> None:
        from pyproj import Geod

        layer = geographic_layer(np.zeros((5, 5)))
        source = np.zeros((5, 5), dtype=bool)
        source[2, 0] = True
        with warnings.catch_warnings():
            warnings.simplefilter("error", PendingDeprecationWarning)
            dist = raster_ops.euclidean_distance(source, layer)

        # cell centres: lon 0.05 + 0.1 * col, lat 51.95 - 0.1 * row
        _, _, expected = Geod(ellps="WGS84").inv(0.05, 51.75, 0.45, 51.75)
        assert dist[2, 4] == pytest.approx(expected, rel=1e-4)
        assert dist[2, 0] == 0.0
        # 0.1 deg of longitude is shorter than 0.1 deg of latitude at 52N
        assert dist[2, 1] < dist[1, 0]

    @pytest.mark.parametrize(
        ("cell", "east", "north"),
        [
            # near 50N: 5 cells east (~17.8 km) is farther than 3 cells north (~16.7 km)
            ((395, 2), (395, 7), (392, 2)),
            # near 70N: 8 cells east (~15.4 km) is nearer than 3 cells north
            ((4, 2), (4, 10), (1, 2)),
        ],
    )
    def test_nearest_source_across_latitudes(
        self,
        cell: tuple[int, int],
        east: tuple[int, int],
        north: tuple[int, int],
    ) -> None:
        from pyproj import Geod

        res = 0.05
        layer = RasterLayer(
            np.zeros((400, 20), dtype=np.float32),
            Affine(res, 0.0, 0.0, 0.0, -res, 70.0),
            "EPSG:4326",
        )
        source = np.zeros(layer.shape, dtype=bool)
        source[east] = True
        source[north] = True
        dist = raster_ops.euclidean_distance(source, layer)

        def centre(rc: tuple[int, int]) -> tuple[float, float]:
            return (rc[1] + 0.5) * res, 70.0 - (rc[0] + 0.5) * res

        geod = Geod(ellps="WGS84")
        candidates = [geod.inv(*centre(cell), *centre(src))[2] for src in (east, north)]
        assert dist[cell] == pytest.approx(min(candidates), rel=1e-5)


class TestDistancePolarity:
    """Coast distance grows offshore from land, never the reverse."""

    def test_single_land_cell(self, make_raster) -> None:
        coastline = np.ones((7, 7))
        coastline[3, 3] = np.nan
        ocean = raster_ops.ocean_mask(make_raster(coastline))

        dist = raster_ops.distance_layer(~ocean.valid_mask, ocean, name="coast")

        assert np.isnan(dist.data[3, 3])
        ring = [dist.data[2, 3], dist.data[4, 3], dist.data[3, 2], dist.data[3, 4]]
        assert ring == pytest.approx([1000.0] * 4)
        assert np.nanmin(dist.data) == pytest.approx(1000.0)
        # strictly increasing outward along a row
        row = dist.data[3, 4:]
        assert np.all(np.diff(row) > 0)
        # farthest cells are the corners
        assert np.nanmax(dist.data) == pytest.approx(dist.data[0, 0])

    def test_land_is_masked(self, make_raster) -> None:
        coastline = np.ones((4, 4))
        coastline[:, 0] = np.nan
        ocean = raster_ops.ocean_mask(make_raster(coastline))
        source = np.zeros((4, 4), dtype=bool)
        source[0, 3] = True

        dist = raster_ops.distance_layer(source, ocean)
        assert np.isnan(dist.data[:, 0]).all()
        assert dist.data[0, 3] == 0.0

    def test_infinite_distance_survives_mask(self, make_raster) -> None:
        coastline = np.array([[np.nan, 1.0], [1.0, 1.0]])
        ocean = raster_ops.ocean_mask(make_raster(coastline))
        dist = raster_ops.distance_layer(np.zeros((2, 2), dtype=bool), ocean)
        assert np.isnan(dist.data[0, 0])
        assert np.isinf(dist.data[1, 1])


class TestPolygonize:
    def test_two_disconnected_regions(self, make_raster) -> None:
        mask = np.zeros((5, 5), dtype=bool)
        mask[0:2, 0:2] = True
        mask[3:5, 3:5] = True
        result = raster_ops.polygonize(mask, make_raster(np.zeros((5, 5))), name="coldspot")

        assert len(result) == 1
        assert len(result.parts) == 2
        assert result.area == pytest.approx(8 * 1000.0**2)

    def test_adjacent_cells_merge(self, make_raster) -> None:
        mask = np.zeros((4, 4), dtype=bool)
        mask[1, :] = True
        mask[:, 1] = True
        result = raster_ops.polygonize(mask, make_raster(np.zeros((4, 4))))
        assert len(result.parts) == 1

    def test_never_more_parts_than_regions(self, make_raster) -> None:
        from scipy.ndimage import label

        rng = np.random.default_rng(42)
        mask = rng.random((12, 12)) > 0.6
        _, regions = label(mask)
        result = raster_ops.polygonize(mask, make_raster(np.zeros((12, 12))))
        assert 0 < len(result.parts) <= regions

    def test_empty_mask(self, make_raster) -> None:
        empty = np.zeros((3, 3), dtype=bool)
        result = raster_ops.polygonize(empty, make_raster(np.zeros((3, 3))))
        assert result.is_empty
        assert len(result) == 0

    def test_cell_centres_inside(self, make_raster) -> None:
        mask = np.zeros((3, 3), dtype=bool)
        mask[1, 1] = True
        result = raster_ops.polygonize(mask, make_raster(np.zeros((3, 3))))
        geom = result.geometries[0]
        assert geom.contains(Point(4_001_500.0, 2_998_500.0))
        assert not geom.contains(Point(4_000_500.0, 2_999_500.0))
