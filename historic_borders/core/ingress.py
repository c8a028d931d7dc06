"""Thin ingress boundary helpers for the HTTP entrypoints.

Centralises the transport concerns so that ``function_app.py`` contains
only route bindings and handoff:

- **new_correlation_id**: picks the caller's correlation header or mints
  a fresh identifier.
- **http_status_for**: maps a pipeline exception to an HTTP status.
- **error_payload**: builds the structured JSON error body.
- **optional_year**: parses an optional ``year`` query parameter.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping

from historic_borders.core.config import ConfigValidationError
from historic_borders.core.exceptions import (
    ContractError,
    PipelineError,
    UpstreamFetchError,
    ValidationError,
)
from historic_borders.providers.descriptions import DescriptionProviderError
from historic_borders.utils.years import parse_year

logger = logging.getLogger("historic_borders.core.ingress")

CORRELATION_HEADER = "x-correlation-id"


def new_correlation_id(headers: Mapping[str, str] | None = None) -> str:
    """Return the inbound correlation id, or a new one."""
    if headers:
        inbound = headers.get(CORRELATION_HEADER, "")
        if inbound:
            return inbound
    return uuid.uuid4().hex


def http_status_for(exc: BaseException) -> int:
    """Map an exception raised by the pipeline to an HTTP status code.

    - ``ConfigValidationError`` → 500 (server misconfiguration)
    - ``ValidationError`` → 400
    - ``UpstreamFetchError`` / ``ContractError`` / ``DescriptionProviderError`` → 502
    - anything else → 500
    """
    if isinstance(exc, ConfigValidationError):
        return 500
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, UpstreamFetchError | ContractError | DescriptionProviderError):
        return 502
    return 500


def error_payload(exc: BaseException, *, correlation_id: str = "") -> dict[str, object]:
    """Return the JSON error body for *exc*.

    Pipeline errors carry their structured fields; anything else is
    reported as an opaque internal error.
    """
    if isinstance(exc, PipelineError):
        if correlation_id and not exc.correlation_id:
            exc.correlation_id = correlation_id
        return {"error": exc.to_error_dict()}
    return {
        "error": {
            "category": "permanent",
            "code": "INTERNAL_ERROR",
            "stage": "",
            "message": "Internal server error",
            "retryable": False,
            "correlation_id": correlation_id,
        }
    }


def optional_year(raw: str | None) -> int | None:
    """Parse an optional ``year`` query parameter.

    Raises:
        YearFormatError: If *raw* is present but not a year.
    """
    if raw is None or not raw.strip():
        return None
    return parse_year(raw.strip())
