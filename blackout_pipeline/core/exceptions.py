"""Unified pipeline exception taxonomy.

Provides a shared base exception hierarchy for all pipeline stages.
Every domain exception inherits from ``PipelineError`` and carries
structured context fields for consistent diagnostics.

Taxonomy categories
-------------------
- ``ValidationError``: input/contract violations in the data handed to a stage.
- ``PermanentError``: unrecoverable domain failures.
- ``ContractError``: results of two stages (or two derivations) disagree.

The pipeline is a one-shot batch run: nothing is retried, and every
error stops the run with a descriptive cause.  ``retryable`` is kept on
the base class so payloads stay uniform with ``to_error_dict()``.

Domain errors
-------------
- ``InputDataError``: missing/unreadable file, tile, or layer.
- ``GridAlignmentError``: rasters differ in shape, transform, or CRS.
- ``CoordinateSystemError``: missing or incompatible CRS.
- ``GeometryValidityError``: geometry cannot be repaired into a valid polygon.
- ``JoinKeyError``: attribute join key missing, duplicated, or unmatched.
- ``AggregationMismatchError``: independent tract counts disagree.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all pipeline-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage where the error occurred
            (e.g. ``"detect_change"``, ``"spatial_filter"``).
        code: Machine-readable error code (e.g. ``"GRID_MISALIGNED"``).
        retryable: Whether re-running could succeed. Always ``False``
            for the domain errors defined here.
        correlation_id: Optional run identifier.
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
        retryable: bool = False,
        correlation_id: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = retryable
        self.correlation_id = correlation_id
        super().__init__(message)

    @property
    def category(self) -> str:
        """Return the error category based on concrete class.

        Anything that is neither a contract nor a validation error is
        permanent: a batch run has no transient failures.
        """
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
            "retryable": self.retryable,
            "correlation_id": self.correlation_id,
        }


# ---------------------------------------------------------------------------
# Category base classes
# ---------------------------------------------------------------------------


class ValidationError(PipelineError):
    """Input or domain-model validation failure. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(PipelineError):
    """Unrecoverable domain failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class ContractError(PipelineError):
    """Disagreement between stages or derivations. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class InputDataError(PermanentError):
    """A raster tile, vector file, or layer is missing or unreadable."""

    default_stage = "load_inputs"
    default_code = "INPUT_DATA_UNAVAILABLE"


class GridAlignmentError(ValidationError):
    """Two rasters cannot be combined cell by cell."""

    default_stage = "detect_change"
    default_code = "GRID_MISALIGNED"


class CoordinateSystemError(ValidationError):
    """A layer has no CRS, or its CRS does not match what the stage needs."""

    default_stage = "spatial_filter"
    default_code = "CRS_INVALID"


class GeometryValidityError(ValidationError):
    """A geometry is invalid and could not be repaired."""

    default_stage = "vectorize"
    default_code = "GEOMETRY_INVALID"


class JoinKeyError(ValidationError):
    """An attribute join key is missing, duplicated, or unmatched."""

    default_stage = "socioeconomic_join"
    default_code = "JOIN_KEY_INVALID"


class AggregationMismatchError(ContractError):
    """Two independent derivations of the affected tract count disagree."""

    default_stage = "socioeconomic_join"
    default_code = "TRACT_COUNT_MISMATCH"
