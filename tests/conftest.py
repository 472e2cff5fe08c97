"""Shared pytest fixtures for the cold-spot test suite.

Rasters are synthetic: small projected grids (EPSG:3035, 1 km cells)
for exact distance arithmetic, and a small lon/lat dataset written to
disk with rasterio/fiona for stage-level tests.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import numpy as np
import pytest
from affine import Affine

from coldspot.core.config import BoundingBox, InputLayers, PipelineConfig
from coldspot.models.raster import RasterLayer

# ---------------------------------------------------------------------------
# In-memory projected rasters
# ---------------------------------------------------------------------------

PROJECTED_CRS = "EPSG:3035"
CELL_M = 1000.0
ORIGIN = (4_000_000.0, 3_000_000.0)

RasterFactory = Callable[..., RasterLayer]


def projected_layer(
    data: np.ndarray | list,
    *,
    cell: float = CELL_M,
    categorical: bool = False,
) -> RasterLayer:
    """Build a north-up EPSG:3035 layer with square cells."""
    transform = Affine(cell, 0.0, ORIGIN[0], 0.0, -cell, ORIGIN[1])
    return RasterLayer(np.asarray(data, dtype=np.float32), transform, PROJECTED_CRS, categorical)


@pytest.fixture()
def make_raster() -> RasterFactory:
    """Factory for projected in-memory layers."""
    return projected_layer


# ---------------------------------------------------------------------------
# On-disk lon/lat inputs
# ---------------------------------------------------------------------------

GEO_RES = 0.1
GEO_WEST = 0.0
GEO_NORTH = 52.0
GEO_SIZE = 20
LAND_COLS = 3
STUDY_AREA = BoundingBox(lon_min=0.0, lon_max=1.9, lat_min=50.0, lat_max=52.0)


def write_geotiff(
    path: Path,
    data: np.ndarray,
    *,
    nodata: float,
    dtype: str = "float32",
    res: float = GEO_RES,
    crs: str = "EPSG:4326",
) -> Path:
    import rasterio
    from rasterio.transform import from_origin

    height, width = data.shape
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype=dtype,
        crs=crs,
        transform=from_origin(GEO_WEST, GEO_NORTH, res, res),
        nodata=nodata,
    ) as dst:
        dst.write(data.astype(dtype), 1)
    return path


def write_polygon_file(path: Path, geometries: list, crs: str = "EPSG:4326") -> Path:
    import fiona
    from shapely.geometry import mapping

    schema = {"geometry": "Polygon", "properties": {"id": "int"}}
    with fiona.open(str(path), "w", driver="GPKG", schema=schema, crs=crs) as dst:
        for i, geom in enumerate(geometries):
            dst.write({"geometry": mapping(geom), "properties": {"id": i}})
    return path


@pytest.fixture()
def geo_inputs(tmp_path: Path) -> InputLayers:
    """A 20 x 20 lon/lat dataset: land strip on the west, one MPA, one wind farm."""
    from shapely.geometry import box

    data_dir = tmp_path / "data"
    data_dir.mkdir()
    land = np.zeros((GEO_SIZE, GEO_SIZE), dtype=bool)
    land[:, :LAND_COLS] = True

    coastline = np.where(land, -9999.0, 1.0)
    write_geotiff(data_dir / "coastline.tif", coastline, nodata=-9999.0)

    mpa = np.full((GEO_SIZE, GEO_SIZE), 255, dtype=np.uint8)
    mpa[2:4, 15:17] = 1
    write_geotiff(data_dir / "mpa.tif", mpa, nodata=255, dtype="uint8")

    suitability = np.full((GEO_SIZE, GEO_SIZE), 0.1)
    suitability[:5, :] = 0.5
    suitability[land] = -9999.0
    write_geotiff(data_dir / "suitability.tif", suitability, nodata=-9999.0)

    write_polygon_file(data_dir / "owf.gpkg", [box(1.0, 50.2, 1.2, 50.4)])
    write_polygon_file(data_dir / "countries.gpkg", [box(-1.0, 49.0, 0.3, 53.0)])

    return InputLayers(
        owf_path=data_dir / "owf.gpkg",
        mpa_path=data_dir / "mpa.tif",
        countries_path=data_dir / "countries.gpkg",
        suitability_path=data_dir / "suitability.tif",
        coastline_path=data_dir / "coastline.tif",
    )


@pytest.fixture()
def geo_config(tmp_path: Path, geo_inputs: InputLayers) -> PipelineConfig:
    """Pipeline config over ``geo_inputs`` with a PNG figure and no diagnostics."""
    from coldspot.core.config import FigureSpec

    return PipelineConfig(
        inputs=geo_inputs,
        study_area=STUDY_AREA,
        workdir=tmp_path / "work",
        figure=FigureSpec(filename="figure.png", dpi=50, plot_area=STUDY_AREA),
    )


@pytest.fixture()
def geotiff_writer() -> Callable[..., Path]:
    """Expose ``write_geotiff`` to tests that need custom rasters on disk."""
    return write_geotiff
