"""Unified pipeline exception taxonomy.

Every domain exception inherits from ``PipelineError`` and carries the
stage it was raised in plus a machine-readable code, so the CLI can
report a stable structured payload before halting the run.

Taxonomy categories
-------------------
- ``ValidationError``: configuration or parameter violations.
- ``PermanentError``: unrecoverable failures (missing/unreadable inputs).
- ``ContractError``: artifact drift between stages (missing cache
  entries, rasters off the shared grid, wrong artifact kind).

Non-errors
----------
Resampling a layer onto the reference grid and an empty cold-spot
result are *not* exceptions; they are logged and carried through.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all pipeline-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage where the error occurred
            (e.g. ``"prepare_layers"``, ``"classify_cold_spots"``).
        code: Machine-readable error code (e.g. ``"MISSING_INPUT"``).
    """

    #: Default stage for subclasses (override via class attribute or kwarg).
    default_stage: str = ""
    #: Default code for subclasses (override via class attribute or kwarg).
    default_code: str = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class."""
        if isinstance(self, ContractError):
            return "contract"
        if isinstance(self, ValidationError):
            return "validation"
        return "permanent"

    def to_error_dict(self) -> dict[str, object]:
        """Return a structured error payload with stable keys."""
        return {
            "category": self.category,
            "code": self.code,
            "stage": self.stage,
            "message": self.message,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(PipelineError):
    """Configuration or parameter validation failure."""


class PermanentError(PipelineError):
    """Unrecoverable failure; the pipeline halts."""


class ContractError(PipelineError):
    """Artifact or schema drift between pipeline stages."""


# ---------------------------------------------------------------------------
# Concrete errors shared across stages
# ---------------------------------------------------------------------------


class MissingInputError(PermanentError):
    """A required raster/polygon source does not exist or cannot be parsed.

    Attributes:
        path: The offending file path (as given).
    """

    default_code = "MISSING_INPUT"

    def __init__(self, path: object, reason: str = "does not exist", **kwargs: str) -> None:
        self.path = str(path)
        super().__init__(f"Required input {self.path} {reason}", **kwargs)


class ArtifactNotFoundError(ContractError):
    """A stage requested a cache artifact that no earlier stage produced."""

    default_code = "ARTIFACT_NOT_FOUND"


class ArtifactFormatError(ContractError):
    """A cache key has an unsupported suffix or holds the wrong kind of value."""

    default_code = "ARTIFACT_FORMAT"


class GridMismatchError(ContractError):
    """Rasters that must share one grid (extent, resolution, CRS) do not."""

    default_code = "GRID_MISMATCH"
