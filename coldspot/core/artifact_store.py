"""Artifact store for intermediate pipeline outputs.

Every expensive intermediate (cropped rasters, distance rasters, polygon
collections) is saved under a configured key and reused on later runs.
Presence of the key is the only staleness signal: there is no content
hash or timestamp check, so deleting the file (or choosing a new name)
is the only way to force recomputation.  Checksums recorded by
``FileArtifactStore`` are logged for provenance and never gate reuse.

The key suffix decides the artifact kind:

- ``.tif`` / ``.tiff``      → ``RasterLayer``
- ``.gpkg`` / ``.geojson``  → ``PolygonLayer``
"""

from __future__ import annotations

import hashlib
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from coldspot.core.constants import POLYGON_SUFFIXES, RASTER_SUFFIXES
from coldspot.core.exceptions import ArtifactFormatError, ArtifactNotFoundError
from coldspot.models.polygons import PolygonLayer
from coldspot.models.raster import RasterLayer

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("coldspot.core.artifact_store")

Artifact = RasterLayer | PolygonLayer
A = TypeVar("A", RasterLayer, PolygonLayer)


def artifact_kind(key: str) -> type[RasterLayer] | type[PolygonLayer]:
    """Return the artifact class a key may hold, based on its suffix.

    Raises:
        ArtifactFormatError: If the suffix is not a known raster/vector suffix.
    """
    suffix = Path(key).suffix.lower()
    if suffix in RASTER_SUFFIXES:
        return RasterLayer
    if suffix in POLYGON_SUFFIXES:
        return PolygonLayer
    msg = f"Unsupported artifact key {key!r}: suffix {suffix!r} is neither raster nor vector"
    raise ArtifactFormatError(msg)


def _check_kind(key: str, value: object) -> None:
    expected = artifact_kind(key)
    if not isinstance(value, expected):
        msg = f"Artifact {key!r} expects {expected.__name__}, got {type(value).__name__}"
        raise ArtifactFormatError(msg)


class ArtifactStore(ABC):
    """Keyed storage of raster and polygon artifacts."""

    @abstractmethod
    def has(self, key: str) -> bool:
        """Return True if an artifact is stored under *key*."""

    @abstractmethod
    def get(self, key: str) -> Artifact:
        """Return the artifact stored under *key*.

        Raises:
            ArtifactNotFoundError: If nothing is stored under *key*.
        """

    @abstractmethod
    def put(self, key: str, value: Artifact) -> None:
        """Store *value* under *key*, replacing any existing artifact."""

    def get_raster(self, key: str) -> RasterLayer:
        value = self.get(key)
        _check_kind(key, value)
        return value  # type: ignore[return-value]

    def get_polygons(self, key: str) -> PolygonLayer:
        value = self.get(key)
        _check_kind(key, value)
        return value  # type: ignore[return-value]


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class MemoryArtifactStore(ArtifactStore):
    """Dict-backed store; same key rules as the file store."""

    def __init__(self) -> None:
        self._items: dict[str, Artifact] = {}

    def has(self, key: str) -> bool:
        return key in self._items

    def get(self, key: str) -> Artifact:
        try:
            return self._items[key]
        except KeyError:
            msg = f"No artifact stored under {key!r}"
            raise ArtifactNotFoundError(msg) from None

    def put(self, key: str, value: Artifact) -> None:
        _check_kind(key, value)
        self._items[key] = value

    def keys(self) -> list[str]:
        return sorted(self._items)


# ---------------------------------------------------------------------------
# File store
# ---------------------------------------------------------------------------


class FileArtifactStore(ArtifactStore):
    """Store artifacts as files under a root directory.

    Files are written to a temporary sibling first and renamed into
    place, so an interrupted stage never leaves a partial file that a
    later run would mistake for a cache hit.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def path(self, key: str) -> Path:
        return self.root / key

    def has(self, key: str) -> bool:
        return self.path(key).is_file()

    def get(self, key: str) -> Artifact:
        from coldspot.utils.layer_io import read_polygons, read_raster

        kind = artifact_kind(key)
        path = self.path(key)
        if not path.is_file():
            msg = f"No artifact stored under {key!r} (expected {path})"
            raise ArtifactNotFoundError(msg)
        if kind is RasterLayer:
            return read_raster(path)
        return read_polygons(path, name=Path(key).stem)

    def put(self, key: str, value: Artifact) -> None:
        from coldspot.utils.layer_io import write_polygons, write_raster

        _check_kind(key, value)
        final = self.path(key)
        final.parent.mkdir(parents=True, exist_ok=True)
        partial = final.with_name(f".{final.stem}.partial{final.suffix}")
        if partial.exists():
            partial.unlink()

        try:
            if isinstance(value, RasterLayer):
                write_raster(partial, value)
            else:
                write_polygons(partial, value)
            os.replace(partial, final)
        finally:
            if partial.exists():
                partial.unlink()

        logger.debug("Wrote artifact | key=%s | sha256=%s", key, self.checksum(key))

    def checksum(self, key: str) -> str:
        """Return the SHA-256 hex digest of the stored file."""
        digest = hashlib.sha256()
        with self.path(key).open("rb") as fh:
            for chunk in iter(lambda: fh.read(1 << 20), b""):
                digest.update(chunk)
        return digest.hexdigest()


# ---------------------------------------------------------------------------
# Reuse policy
# ---------------------------------------------------------------------------


def get_or_create(
    store: ArtifactStore,
    key: str,
    producer: Callable[[], A],
    *,
    description: str = "",
) -> A:
    """Return the artifact under *key*, producing and storing it if absent.

    This is the single cache policy of the pipeline: existence of the
    key means "up to date".

    Args:
        store: Artifact store to consult.
        key: Artifact key (filename).
        producer: Zero-argument callable computing the artifact.
        description: Human-readable label for log messages.
    """
    label = description or key
    if store.has(key):
        logger.info("Using existing | %s | key=%s", label, key)
        value = store.get(key)
        _check_kind(key, value)
        return value  # type: ignore[return-value]

    logger.info("Computing | %s | key=%s", label, key)
    value = producer()
    store.put(key, value)
    logger.info("Saved | %s | key=%s", label, key)
    return value
