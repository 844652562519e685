"""
Error taxonomy for the data-access layer.

Every error the router or a backend raises derives from NowAndLaterError so
the HTTP layer can render a stable envelope from `status_code`/`error_code`.
"""

from __future__ import annotations

from typing import Optional

import requests

# Upstream statuses that are worth retrying on the other backend.
TRANSIENT_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


class NowAndLaterError(Exception):
    """Base exception for all data-access errors."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, detail: str, *, backend: Optional[str] = None):
        self.detail = detail
        self.backend = backend
        super().__init__(detail)

    def to_dict(self) -> dict:
        return {
            "error": self.error_code,
            "detail": self.detail,
            "status_code": self.status_code,
        }


class Unauthenticated(NowAndLaterError):
    """Missing, malformed or rejected bearer credential."""

    status_code = 401
    error_code = "UNAUTHENTICATED"


class NeedsRefresh(NowAndLaterError):
    """The credential is well-formed but expired; the caller must re-auth."""

    status_code = 401
    error_code = "TOKEN_EXPIRED"


class InvalidRequest(NowAndLaterError):
    """The inbound request is malformed; no backend was called."""

    status_code = 400
    error_code = "INVALID_REQUEST"


class BackendFailure(NowAndLaterError):
    """A backend attempt failed."""

    status_code = 502
    error_code = "BACKEND_FAILURE"

    def __init__(
        self,
        detail: str,
        *,
        backend: Optional[str] = None,
        upstream_status: Optional[int] = None,
    ):
        super().__init__(detail, backend=backend)
        self.upstream_status = upstream_status


class TransientBackendFailure(BackendFailure):
    """Timeouts, connection problems and 5xx/429 responses."""

    error_code = "BACKEND_UNAVAILABLE"


class PermanentBackendFailure(BackendFailure):
    """An authoritative rejection (4xx, validation). Never retried elsewhere."""

    error_code = "BACKEND_REJECTED"

    def __init__(
        self,
        detail: str,
        *,
        backend: Optional[str] = None,
        upstream_status: Optional[int] = None,
    ):
        super().__init__(detail, backend=backend, upstream_status=upstream_status)
        if upstream_status == 404:
            self.status_code = 404
            self.error_code = "NOT_FOUND"
        else:
            self.status_code = 400


class BothBackendsFailed(NowAndLaterError):
    """Primary and legacy both failed a read; both causes are kept."""

    status_code = 502
    error_code = "ALL_BACKENDS_FAILED"

    def __init__(self, operation: str, primary_error: Exception, legacy_error: Exception):
        super().__init__(
            f"{operation} failed on both backends "
            f"(primary: {primary_error}; legacy: {legacy_error})"
        )
        self.operation = operation
        self.primary_error = primary_error
        self.legacy_error = legacy_error


class ConfigurationError(NowAndLaterError):
    """The router cannot run the operation with the current settings."""

    status_code = 503
    error_code = "BACKENDS_DISABLED"


class InvalidationUnavailable(NowAndLaterError):
    """The invalidation registry could not be reached, even after reconnecting."""

    status_code = 503
    error_code = "INVALIDATION_UNAVAILABLE"


class RequestCancelled(NowAndLaterError):
    """The inbound request went away before the work finished."""

    status_code = 499
    error_code = "REQUEST_CANCELLED"


def failure_from_response(
    response: requests.Response, *, backend: str, action: str
) -> NowAndLaterError:
    """Classifies a non-2xx upstream response."""
    status = response.status_code
    body = (response.text or "")[:300]
    detail = f"{action} failed with HTTP {status}: {body}".strip()
    if status == 401:
        return NeedsRefresh(
            f"{action} rejected the credential (HTTP 401)", backend=backend
        )
    if status in TRANSIENT_STATUS_CODES or status >= 500:
        return TransientBackendFailure(
            detail, backend=backend, upstream_status=status
        )
    return PermanentBackendFailure(detail, backend=backend, upstream_status=status)


def failure_from_exception(
    exc: requests.RequestException, *, backend: str, action: str
) -> TransientBackendFailure:
    """Wraps transport errors (timeouts, resets, DNS) as transient failures."""
    if isinstance(exc, requests.Timeout):
        return TransientBackendFailure(f"{action} timed out", backend=backend)
    return TransientBackendFailure(f"{action} failed: {exc}", backend=backend)
