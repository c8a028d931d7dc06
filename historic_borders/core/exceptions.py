"""Unified pipeline exception taxonomy.

Every domain exception inherits from ``PipelineError`` and carries
structured context fields so the HTTP boundary can map failures to a
status code and a stable error payload.

Taxonomy categories
-------------------
- ``ValidationError``  : bad request input (year tokens, config), never retryable.
- ``TransientError``   : temporary failures (network, upstream 5xx), retryable.
- ``PermanentError``   : unrecoverable upstream or domain failures.
- ``ContractError``    : upstream payload drift (not a FeatureCollection, bad JSON).

The cache path never raises any of these: cache failures degrade to a
miss inside ``historic_borders.core.cache``.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all pipeline-domain errors.

    Attributes:
        message: Human-readable error description.
        stage: Pipeline stage where the error occurred
            (e.g. ``"fetch_boundaries"``, ``"ingress"``).
        code: Machine-readable error code (e.g. ``"UPSTREAM_FETCH_FAILED"``).
        retryable: Whether the caller may retry the request.
        correlation_id: Request correlation identifier.
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
        """Return the error category based on concrete class."""
        if isinstance(self, ContractError):
            return "contract"
        if isinstance(self, ValidationError):
            return "validation"
        if isinstance(self, TransientError):
            return "transient"
        if isinstance(self, PermanentError):
            return "permanent"
        return "transient" if self.retryable else "permanent"

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
    """Input or configuration validation failure. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class TransientError(PipelineError):
    """Temporary failure that may succeed on retry."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", True)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class PermanentError(PipelineError):
    """Unrecoverable domain failure. Not retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


class ContractError(PipelineError):
    """Upstream payload does not match the expected shape. Never retryable."""

    def __init__(self, message: str = "", **kwargs: object) -> None:
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# Domain errors
# ---------------------------------------------------------------------------


class YearFormatError(ValidationError):
    """Raised when a year token such as ``"bc500"`` cannot be parsed."""

    default_stage = "ingress"
    default_code = "INVALID_YEAR"


class UpstreamFetchError(PipelineError):
    """An upstream dataset (borders, gazetteer, large file) could not be fetched.

    Never substituted with empty data: an empty result would be
    indistinguishable from "no entities this year".

    Attributes:
        url: The upstream URL that failed.
        status_code: HTTP status when the upstream answered, else ``None``.
    """

    default_stage = "fetch"
    default_code = "UPSTREAM_FETCH_FAILED"

    def __init__(
        self,
        url: str,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(message, retryable=retryable)

    @property
    def category(self) -> str:
        return "transient" if self.retryable else "permanent"

    def __str__(self) -> str:
        return f"[{self.url}] {self.message}"
