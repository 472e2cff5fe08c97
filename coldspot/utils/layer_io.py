"""GeoTIFF and vector I/O for raster and polygon layers.

Rasters are read through rasterio (band 1, nodata -> NaN) and written
as compressed single-band GeoTIFFs: ``float32`` with nodata -9999 for
continuous layers, and for categorical ones the narrowest integer type
(``uint8``, ``uint16``, ``int32``) that holds every value, with the
type maximum as nodata.

Polygon layers are written through fiona as GeoPackage (or GeoJSON)
with a MultiPolygon schema and an embedded CRS, so arbitrarily complex
disjoint multipolygons survive a round-trip intact.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import numpy as np

from coldspot.core.constants import CATEGORICAL_DTYPES, DEFAULT_CRS, FLOAT_NODATA
from coldspot.core.exceptions import ArtifactFormatError, MissingInputError
from coldspot.models.polygons import PolygonLayer, polygonal_parts, repaired
from coldspot.models.raster import RasterLayer

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger("coldspot.utils.layer_io")

_POLYGON_SCHEMA = {"geometry": "MultiPolygon", "properties": {"name": "str"}}
_DEFAULT_LAYER = "features"


# ---------------------------------------------------------------------------
# Rasters
# ---------------------------------------------------------------------------


def read_raster(path: Path, *, band: int = 1) -> RasterLayer:
    """Read one band of a raster file.

    Raises:
        MissingInputError: If the file is absent, unreadable, or lacks a CRS.
    """
    import rasterio
    from rasterio.errors import RasterioIOError

    if not path.exists():
        raise MissingInputError(path)
    try:
        with rasterio.open(path) as src:
            masked = src.read(band, masked=True)
            dtype = src.dtypes[band - 1]
            transform = src.transform
            crs = src.crs.to_string() if src.crs else ""
    except (RasterioIOError, IndexError, ValueError) as exc:
        raise MissingInputError(path, f"cannot be read as a raster: {exc}") from exc

    if not crs:
        raise MissingInputError(path, "has no coordinate reference system")

    data = np.ma.filled(masked.astype(np.float32), np.nan)
    categorical = bool(np.issubdtype(np.dtype(dtype), np.integer))
    logger.debug(
        "Read raster | path=%s | shape=%s | crs=%s | dtype=%s",
        path,
        data.shape,
        crs,
        dtype,
    )
    return RasterLayer(data=data, transform=transform, crs=crs, categorical=categorical)


def write_raster(path: Path, layer: RasterLayer) -> None:
    """Write *layer* as a single-band GeoTIFF."""
    import rasterio

    valid = layer.valid_mask
    if layer.categorical:
        dtype, nodata = _categorical_encoding(layer.data[valid])
        out = np.where(valid, layer.data, nodata).astype(dtype)
    else:
        dtype, nodata = "float32", FLOAT_NODATA
        out = np.where(valid, layer.data, nodata).astype(np.float32)

    height, width = layer.shape
    profile = {
        "driver": "GTiff",
        "height": height,
        "width": width,
        "count": 1,
        "dtype": dtype,
        "crs": layer.crs,
        "transform": layer.transform,
        "nodata": nodata,
        "compress": "deflate",
    }
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(out, 1)


def _categorical_encoding(values: np.ndarray) -> tuple[str, int]:
    """Pick the narrowest integer dtype (and its nodata) that holds *values*."""
    if values.size and not np.all(np.isfinite(values) & (values == np.round(values))):
        msg = "Categorical layer holds non-integer values"
        raise ArtifactFormatError(msg)
    low = float(values.min()) if values.size else 0.0
    high = float(values.max()) if values.size else 0.0
    for dtype in CATEGORICAL_DTYPES:
        info = np.iinfo(dtype)
        if low >= info.min and high < info.max:
            return dtype, int(info.max)
    msg = f"Categorical values {low:g}..{high:g} do not fit any of {CATEGORICAL_DTYPES}"
    raise ArtifactFormatError(msg)


# ---------------------------------------------------------------------------
# Polygons
# ---------------------------------------------------------------------------


def read_polygons(
    path: Path,
    *,
    layer: str | None = None,
    assume_crs: str | None = None,
    name: str = "",
) -> PolygonLayer:
    """Read polygonal features from any OGR vector source.

    Args:
        path: Vector file (shapefile, GeoPackage, GeoJSON, ...).
        layer: Layer name for multi-layer sources.
        assume_crs: CRS to assign instead of the source's own.
        name: Label for the resulting layer.

    Raises:
        MissingInputError: If the file is absent or cannot be parsed.
    """
    import fiona
    from fiona.errors import FionaError
    from shapely.geometry import shape

    if not path.exists():
        raise MissingInputError(path)
    try:
        with fiona.open(str(path), layer=layer) as collection:
            source_crs = _collection_crs(collection)
            geometries = [
                shape(record["geometry"])
                for record in collection
                if record["geometry"] is not None
            ]
    except (FionaError, OSError, ValueError) as exc:
        raise MissingInputError(path, f"cannot be read as a vector layer: {exc}") from exc

    crs = assume_crs or source_crs
    if not crs:
        logger.warning("No CRS in %s, assuming %s", path, DEFAULT_CRS)
        crs = DEFAULT_CRS
    elif assume_crs and source_crs and assume_crs != source_crs:
        logger.info("Overriding CRS of %s | source=%s | assigned=%s", path, source_crs, assume_crs)

    invalid = sum(1 for g in geometries if not g.is_valid)
    if invalid:
        logger.warning("Repairing %d invalid geometry(ies) from %s with make_valid", invalid, path)
    kept = [g for g in map(repaired, geometries) if polygonal_parts(g)]
    if len(kept) != len(geometries):
        logger.warning(
            "Dropped %d non-polygonal feature(s) from %s",
            len(geometries) - len(kept),
            path,
        )
    return PolygonLayer(tuple(kept), crs, name or path.stem)


def write_polygons(path: Path, layer: PolygonLayer) -> None:
    """Write *layer* with a MultiPolygon schema (GeoPackage or GeoJSON)."""
    import fiona
    from fiona.errors import FionaError
    from pyproj import CRS
    from shapely.geometry import MultiPolygon, mapping

    options: dict[str, str] = {}
    if path.suffix.lower() == ".geojson":
        options["driver"] = "GeoJSON"
    else:
        # the GeoPackage layer name would otherwise come from the file name
        options["driver"] = "GPKG"
        options["layer"] = layer_name(layer.name)

    records = [
        {"geometry": mapping(MultiPolygon(parts)), "properties": {"name": layer.name}}
        for parts in map(polygonal_parts, layer.geometries)
        if parts
    ]
    try:
        with fiona.open(
            str(path),
            "w",
            schema=_POLYGON_SCHEMA,
            crs_wkt=CRS.from_user_input(layer.crs).to_wkt(),
            **options,
        ) as dst:
            dst.writerecords(records)
    except (FionaError, OSError) as exc:
        msg = f"Cannot write polygon layer {layer.name or path.name}: {exc}"
        raise ArtifactFormatError(msg) from exc


def layer_name(name: str) -> str:
    """Return *name* reduced to a valid GeoPackage layer name."""
    cleaned = re.sub(r"[^0-9A-Za-z_]+", "_", name).strip("_")
    if not cleaned or not cleaned[0].isalpha():
        return _DEFAULT_LAYER if not cleaned else f"{_DEFAULT_LAYER}_{cleaned}"
    return cleaned


def _collection_crs(collection: object) -> str:
    """Return the collection CRS as a compact string, or ``""`` if unset."""
    wkt = getattr(collection, "crs_wkt", "") or ""
    if not wkt:
        return ""
    from pyproj import CRS

    return str(CRS.from_wkt(wkt).to_string())
