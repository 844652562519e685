"""
Outbound HTTP shared by the Google and Apps Script clients.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, Callable, Optional, TypeVar

import requests
from dacite import DaciteError

from nowandlater.auth import Principal
from nowandlater.errors import (
    NeedsRefresh,
    TransientBackendFailure,
    failure_from_exception,
    failure_from_response,
)
from nowandlater.router import AttemptContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


def bearer_headers(principal: Principal, context: AttemptContext) -> dict:
    if not principal.is_bearer:
        # ID tokens from older sessions cannot call Google APIs.
        raise NeedsRefresh(
            "Session uses an ID token; sign in again to get an access token",
            backend=context.backend.value,
        )
    headers = {"Authorization": f"Bearer {principal.credential}"}
    if context.bypass_cache:
        headers["Cache-Control"] = "no-cache"
    return headers


def send(
    session: requests.Session,
    method: str,
    url: str,
    *,
    context: AttemptContext,
    action: str,
    headers: Optional[dict] = None,
    **kwargs: Any,
) -> requests.Response:
    """
    Issues one request for `context`, raising classified backend errors.

    Cancellation is checked before the call. The request gets whatever is
    left of the attempt deadline, not a fresh full timeout.
    """
    context.raise_if_cancelled()
    backend = context.backend.value
    remaining = context.remaining()
    if remaining <= 0:
        raise TransientBackendFailure(f"{action} timed out", backend=backend)
    try:
        response = session.request(
            method,
            url,
            headers=headers,
            timeout=remaining,
            **kwargs,
        )
    except requests.RequestException as exc:
        raise failure_from_exception(exc, backend=backend, action=action) from exc

    if not response.ok:
        logger.error("%s: %s %s -> HTTP %s", action, method, url, response.status_code)
        raise failure_from_response(response, backend=backend, action=action)
    return response


def json_body(response: requests.Response, *, context: AttemptContext, action: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise TransientBackendFailure(
            f"{action} returned a non-JSON response",
            backend=context.backend.value,
            upstream_status=response.status_code,
        ) from exc


def unexpected_shape(context: AttemptContext, action: str, detail: str) -> TransientBackendFailure:
    logger.error("%s: unexpected response shape: %s", action, detail)
    return TransientBackendFailure(
        f"{action} returned an unexpected response",
        backend=context.backend.value,
    )


def json_object(response: requests.Response, *, context: AttemptContext, action: str) -> dict:
    """Parses a JSON response that must be an object."""
    body = json_body(response, context=context, action=action)
    if not isinstance(body, dict):
        raise unexpected_shape(context, action, f"expected an object, got {type(body).__name__}")
    return body


def list_member(
    body: dict,
    key: str,
    *,
    context: AttemptContext,
    action: str,
    item_type: type = dict,
) -> list:
    """
    Returns `body[key]` as a list of `item_type`; a missing or null member
    is an empty list.
    """
    value = body.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise unexpected_shape(context, action, f"{key} is a {type(value).__name__}")
    for item in value:
        if not isinstance(item, item_type):
            raise unexpected_shape(context, action, f"{key} holds a {type(item).__name__}")
    return value


def object_member(body: dict, key: str, *, context: AttemptContext, action: str) -> dict:
    value = body.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise unexpected_shape(context, action, f"{key} is a {type(value).__name__}")
    return value


def decodes_response(executor: Callable[..., T]) -> Callable[..., T]:
    """
    Wraps an executor method so a record dacite cannot decode is reported
    as a transient failure instead of escaping as a bare error.

    Only decode errors are translated. Envelope and list shapes are checked
    where they are read, and any other exception is a bug and propagates.
    """

    @functools.wraps(executor)
    def wrapper(self, principal: Principal, payload: Any, context: AttemptContext) -> T:
        try:
            return executor(self, principal, payload, context)
        except DaciteError as exc:
            logger.error("%s: unexpected response shape: %r", context.operation, exc)
            raise TransientBackendFailure(
                f"{context.operation} received an unexpected response",
                backend=context.backend.value,
            ) from exc

    return wrapper
