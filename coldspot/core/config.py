"""Pipeline configuration: study area, inputs, cache names, thresholds.

All values are explicit and immutable; one ``PipelineConfig`` is built
per run (usually from a YAML file) and each stage receives only the
pieces it needs.  Nothing is read from the working directory or the
environment implicitly.

Fail-fast validation:
    every dataclass validates itself in ``__post_init__`` and raises
    ``ConfigValidationError`` naming the offending key, so a bad
    threshold is reported before any raster is touched.

Classification thresholds (``ColdSpotThresholds``) and display clamps
(``DisplayRanges``) are deliberately separate types: clamping only
affects colour scales and never feeds the pass/fail logic.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from coldspot.core import constants
from coldspot.core.exceptions import ValidationError


class ConfigValidationError(ValidationError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


# ---------------------------------------------------------------------------
# Study area
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """A lon/lat (WGS 84) rectangle.

    Attributes:
        lon_min: Western edge in degrees.
        lon_max: Eastern edge in degrees.
        lat_min: Southern edge in degrees.
        lat_max: Northern edge in degrees.
    """

    lon_min: float
    lon_max: float
    lat_min: float
    lat_max: float

    def __post_init__(self) -> None:
        for name in ("lon_min", "lon_max"):
            _check_range(f"bbox.{name}", getattr(self, name), -180.0, 180.0)
        for name in ("lat_min", "lat_max"):
            _check_range(f"bbox.{name}", getattr(self, name), -90.0, 90.0)
        if self.lon_min >= self.lon_max:
            raise ConfigValidationError("bbox.lon_min", self.lon_min, "must be < lon_max")
        if self.lat_min >= self.lat_max:
            raise ConfigValidationError("bbox.lat_min", self.lat_min, "must be < lat_max")

    def as_bounds(self) -> tuple[float, float, float, float]:
        """Return ``(west, south, east, north)``."""
        return (self.lon_min, self.lat_min, self.lon_max, self.lat_max)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BoundingBox:
        missing = [f.name for f in fields(cls) if f.name not in data]
        if missing:
            raise ConfigValidationError("bbox", missing, "missing keys")
        return cls(**_floats(cls, data, "bbox"))


# ---------------------------------------------------------------------------
# Inputs and cache names
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InputLayers:
    """Locations of the raw input layers.

    Attributes:
        owf_path: Offshore wind farm polygons (any OGR vector format).
        mpa_path: Marine protected area presence raster (1 / nodata).
        countries_path: Country boundary polygons.
        suitability_path: Ensemble suitability raster (0-1).
        coastline_path: Ocean-mask raster; cells with data are ocean,
            nodata cells are land.
        owf_layer: Layer name inside ``owf_path`` (multi-layer sources).
        countries_layer: Layer name inside ``countries_path``.
        owf_crs: CRS assigned to the wind farm source when its own CRS
            is missing or known to be wrong.
    """

    owf_path: Path
    mpa_path: Path
    countries_path: Path
    suitability_path: Path
    coastline_path: Path
    owf_layer: str | None = None
    countries_layer: str | None = None
    owf_crs: str | None = None

    def paths(self) -> dict[str, Path]:
        """Return every required input path keyed by role."""
        return {
            "owf": self.owf_path,
            "mpa": self.mpa_path,
            "countries": self.countries_path,
            "suitability": self.suitability_path,
            "coastline": self.coastline_path,
        }

    def missing(self) -> list[Path]:
        """Return the input paths that do not exist on disk."""
        return [p for p in self.paths().values() if not p.exists()]

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> InputLayers:
        """Build from ``{"owf": ..., "mpa": ..., ...}``.

        Each entry is either a path string or a mapping with ``path`` and
        optional ``layer`` / ``crs`` keys.
        """
        resolved: dict[str, Any] = {}
        for role in ("owf", "mpa", "countries", "suitability", "coastline"):
            if role not in data:
                raise ConfigValidationError(f"inputs.{role}", None, "is required")
            entry = data[role]
            if isinstance(entry, dict):
                path = entry.get("path")
                if role in ("owf", "countries"):
                    resolved[f"{role}_layer"] = entry.get("layer")
                if role == "owf":
                    resolved["owf_crs"] = entry.get("crs")
            else:
                path = entry
            if not path:
                raise ConfigValidationError(f"inputs.{role}", path, "path must not be empty")
            resolved[f"{role}_path"] = _resolve(path, base_dir)
        return cls(**resolved)


@dataclass(frozen=True, slots=True)
class CacheNames:
    """Filenames of every intermediate artifact in the artifact store."""

    countries: str = constants.COUNTRIES_CROP
    owf: str = constants.OWF_CROP
    coastline: str = constants.COASTLINE_CROP
    mpa: str = constants.MPA_CROP
    suitability: str = constants.SUITABILITY_CROP
    mpa_distance: str = constants.MPA_DISTANCE
    owf_distance: str = constants.OWF_DISTANCE
    coast_distance: str = constants.COAST_DISTANCE
    coldspots: str = constants.COLDSPOT_POLYGONS
    mpa_polygons: str = constants.MPA_POLYGONS

    def __post_init__(self) -> None:
        seen: dict[str, str] = {}
        for f in fields(self):
            name = getattr(self, f.name)
            suffixes = (
                constants.POLYGON_SUFFIXES
                if f.name in ("countries", "owf", "coldspots", "mpa_polygons")
                else constants.RASTER_SUFFIXES
            )
            if Path(name).suffix.lower() not in suffixes:
                raise ConfigValidationError(
                    f"cache.{f.name}", name, f"suffix must be one of {sorted(suffixes)}"
                )
            if name in seen:
                raise ConfigValidationError(
                    f"cache.{f.name}", name, f"duplicates cache.{seen[name]}"
                )
            seen[name] = f.name

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> CacheNames:
        data = data or {}
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigValidationError("cache", sorted(unknown), "unknown cache keys")
        return cls(**{k: str(v) for k, v in data.items()})


# ---------------------------------------------------------------------------
# Thresholds and display ranges
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ColdSpotThresholds:
    """Classification thresholds.

    A cell is a cold spot when suitability is strictly below
    ``suitability_limit`` and every distance (km) is strictly above its
    minimum.
    """

    suitability_limit: float = 0.2
    mpa_min_km: float = 7.0
    owf_min_km: float = 7.0
    coast_min_km: float = 7.0

    def __post_init__(self) -> None:
        _check_finite("thresholds.suitability_limit", self.suitability_limit)
        if not 0.0 < self.suitability_limit <= 1.0:
            raise ConfigValidationError(
                "thresholds.suitability_limit",
                self.suitability_limit,
                "must be in (0, 1]",
            )
        for name in ("mpa_min_km", "owf_min_km", "coast_min_km"):
            _check_min(f"thresholds.{name}", getattr(self, name), 0.0)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ColdSpotThresholds:
        return cls(**_floats(cls, data, "thresholds"))


@dataclass(frozen=True, slots=True)
class DisplayRanges:
    """Upper clamps for colour scales.  Presentation only."""

    suitability_max: float = 0.6
    mpa_max_km: float = 100.0
    owf_max_km: float = 100.0
    coast_max_km: float = 100.0

    def __post_init__(self) -> None:
        for f in fields(self):
            value = getattr(self, f.name)
            _check_finite(f"display.{f.name}", value)
            if value <= 0:
                raise ConfigValidationError(f"display.{f.name}", value, "must be > 0")

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DisplayRanges:
        return cls(**_floats(cls, data, "display"))


# ---------------------------------------------------------------------------
# Figure
# ---------------------------------------------------------------------------

_FIGURE_SUFFIXES = (".pdf", ".svg", ".png")


@dataclass(frozen=True, slots=True)
class FigureSpec:
    """Output settings for the two-panel figure.

    Attributes:
        filename: Output file; the suffix selects the format
            (``.pdf``/``.svg`` vector, ``.png`` raster).
        width_cm: Figure width in centimetres.
        height_cm: Figure height in centimetres.
        dpi: Resolution for raster output.
        plot_area: Map extent; may be a subset of the study area.
    """

    filename: str = "figure_coldspot_analysis.pdf"
    width_cm: float = 18.0
    height_cm: float = 9.0
    dpi: int = 400
    plot_area: BoundingBox = field(default_factory=lambda: BoundingBox(0.0, 30.0, 53.0, 70.0))

    def __post_init__(self) -> None:
        if Path(self.filename).suffix.lower() not in _FIGURE_SUFFIXES:
            raise ConfigValidationError(
                "figure.filename", self.filename, f"suffix must be one of {_FIGURE_SUFFIXES}"
            )
        _check_min("figure.width_cm", self.width_cm, 0.0, inclusive=False)
        _check_min("figure.height_cm", self.height_cm, 0.0, inclusive=False)
        _check_min("figure.dpi", self.dpi, 0, inclusive=False)

    @property
    def size_inches(self) -> tuple[float, float]:
        return (self.width_cm / 2.54, self.height_cm / 2.54)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FigureSpec:
        data = dict(data or {})
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ConfigValidationError("figure", sorted(unknown), "unknown keys")
        if "plot_area" in data:
            data["plot_area"] = BoundingBox.from_dict(data["plot_area"])
        for key in ("width_cm", "height_cm"):
            if key in data:
                data[key] = float(data[key])
        if "dpi" in data:
            data["dpi"] = int(data["dpi"])
        return cls(**data)


# ---------------------------------------------------------------------------
# Top-level configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Immutable configuration for one cold-spot run.

    Attributes:
        inputs: Raw input layer locations.
        study_area: Bounding box every layer is cropped to.
        workdir: Directory backing the artifact store; diagnostic plots
            and the figure are written here too.
        cache: Artifact filenames inside ``workdir``.
        thresholds: Classification thresholds.
        display: Colour-scale clamps.
        figure: Two-panel figure settings.
        plot_diagnostics: Whether stages write diagnostic PNGs.
    """

    inputs: InputLayers
    study_area: BoundingBox = field(default_factory=lambda: BoundingBox(-5.0, 30.0, 50.0, 70.0))
    workdir: Path = Path()
    cache: CacheNames = field(default_factory=CacheNames)
    thresholds: ColdSpotThresholds = field(default_factory=ColdSpotThresholds)
    display: DisplayRanges = field(default_factory=DisplayRanges)
    figure: FigureSpec = field(default_factory=FigureSpec)
    plot_diagnostics: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> PipelineConfig:
        """Build a validated config from a plain mapping.

        Args:
            data: Parsed configuration mapping.
            base_dir: Directory that relative paths resolve against.

        Raises:
            ConfigValidationError: If a section is missing or invalid.
        """
        if not isinstance(data, dict):
            raise ConfigValidationError("<root>", type(data).__name__, "must be a mapping")
        if "inputs" not in data:
            raise ConfigValidationError("inputs", None, "section is required")

        kwargs: dict[str, Any] = {
            "inputs": InputLayers.from_dict(data["inputs"], base_dir),
            "cache": CacheNames.from_dict(data.get("cache")),
            "thresholds": ColdSpotThresholds.from_dict(data.get("thresholds")),
            "display": DisplayRanges.from_dict(data.get("display")),
            "figure": FigureSpec.from_dict(data.get("figure")),
            "plot_diagnostics": bool(data.get("plot_diagnostics", False)),
            "workdir": _resolve(data.get("workdir", "."), base_dir),
        }
        if "study_area" in data:
            kwargs["study_area"] = BoundingBox.from_dict(data["study_area"])
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: Path | str) -> PipelineConfig:
        """Load a YAML configuration file.

        Relative paths in the file resolve against the file's directory.
        """
        import yaml

        path = Path(path)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigValidationError("config", str(path), f"cannot be read: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigValidationError("config", str(path), f"is not valid YAML: {exc}") from exc
        return cls.from_dict(data, base_dir=path.parent)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _resolve(path: str | Path, base_dir: Path | None) -> Path:
    p = Path(path)
    if base_dir is not None and not p.is_absolute():
        return base_dir / p
    return p


def _floats(cls: type, data: dict[str, Any] | None, section: str) -> dict[str, float]:
    data = data or {}
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigValidationError(section, sorted(unknown), "unknown keys")
    out: dict[str, float] = {}
    for key, value in data.items():
        try:
            out[key] = float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigValidationError(f"{section}.{key}", value, "must be a number") from exc
    return out


def _check_finite(key: str, value: float) -> None:
    if not math.isfinite(value):
        raise ConfigValidationError(key, value, "must be finite")


def _check_min(key: str, value: float, minimum: float, *, inclusive: bool = True) -> None:
    _check_finite(key, value)
    if value < minimum or (not inclusive and value == minimum):
        op = ">=" if inclusive else ">"
        raise ConfigValidationError(key, value, f"must be {op} {minimum}")


def _check_range(key: str, value: float, lo: float, hi: float) -> None:
    _check_finite(key, value)
    if not lo <= value <= hi:
        raise ConfigValidationError(key, value, f"must be between {lo} and {hi}")
