"""
Bearer credential validation.

The validator turns an `Authorization` header into a Principal, or raises
Unauthenticated / NeedsRefresh. Nothing downstream runs without one.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

import requests

from nowandlater.errors import (
    NeedsRefresh,
    Unauthenticated,
    failure_from_exception,
)

logger = logging.getLogger(__name__)

ACCESS_TOKEN_INFO_URL = "https://www.googleapis.com/oauth2/v1/tokeninfo"
ID_TOKEN_INFO_URL = "https://oauth2.googleapis.com/tokeninfo"
REQUEST_TIMEOUT = 10  # seconds

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Principal:
    """The authenticated caller for one inbound request."""

    id: str
    email: Optional[str] = None
    credential: str = field(default="", repr=False)
    # False for legacy ID tokens, which cannot call Google APIs directly.
    is_bearer: bool = True
    expires_at: Optional[datetime] = None


class CredentialValidator(Protocol):
    def validate(self, authorization: Optional[str]) -> Principal:
        ...


def extract_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise Unauthenticated("Missing bearer credential")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise Unauthenticated("Missing bearer credential")
    return token


@dataclass
class GoogleTokenValidator:
    """
    Validates Google OAuth access tokens, and ID tokens for older clients.

    Access tokens are checked against the v1 tokeninfo endpoint. Tokens that
    look like JWTs and fail that check are retried as ID tokens.
    """

    client_id: Optional[str] = None
    timeout: float = REQUEST_TIMEOUT
    session: requests.Session = field(default_factory=requests.Session)

    def validate(self, authorization: Optional[str]) -> Principal:
        token = extract_bearer_token(authorization)
        try:
            response = self.session.get(
                ACCESS_TOKEN_INFO_URL,
                params={"access_token": token},
                timeout=self.timeout,
            )
            if response.ok:
                return self._principal_from_access_token(token, response.json())
            if token.startswith("eyJ"):
                return self._validate_id_token(token)
        except requests.RequestException as exc:
            raise failure_from_exception(
                exc, backend="tokeninfo", action="Token validation"
            ) from exc

        logger.info("Access token rejected by tokeninfo (HTTP %s)", response.status_code)
        # Google answers 400 invalid_token for expired and unknown tokens
        # alike; an access-token-shaped credential is treated as expired so
        # the client refreshes instead of logging out.
        if token.startswith("ya29."):
            raise NeedsRefresh("Access token expired")
        raise Unauthenticated("Invalid access token")

    def _principal_from_access_token(self, token: str, info: dict) -> Principal:
        audience = info.get("audience") or info.get("issued_to")
        if self.client_id and audience and audience != self.client_id:
            logger.error("Access token audience mismatch: %s", audience)
            raise Unauthenticated("Token was not issued for this application")

        expires_in = int(info.get("expires_in") or 0)
        if expires_in <= 0:
            raise NeedsRefresh("Access token expired")

        subject = info.get("user_id") or info.get("email")
        if not subject:
            raise Unauthenticated("Token carries no user identity")
        return Principal(
            id=subject,
            email=info.get("email"),
            credential=token,
            is_bearer=True,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        )

    def _validate_id_token(self, token: str) -> Principal:
        response = self.session.get(
            ID_TOKEN_INFO_URL, params={"id_token": token}, timeout=self.timeout
        )
        if not response.ok:
            logger.error("ID token validation failed: HTTP %s", response.status_code)
            raise Unauthenticated("Invalid ID token")

        info = response.json()
        if self.client_id and info.get("aud") != self.client_id:
            logger.error("ID token audience mismatch: %s", info.get("aud"))
            raise Unauthenticated("Token was not issued for this application")

        expires = int(info.get("exp") or 0)
        if expires < int(time.time()):
            raise NeedsRefresh("ID token expired")

        subject = info.get("sub") or info.get("email")
        if not subject:
            raise Unauthenticated("Token carries no user identity")
        return Principal(
            id=subject,
            email=info.get("email"),
            credential=token,
            is_bearer=False,
            expires_at=datetime.fromtimestamp(expires, tz=timezone.utc),
        )


@dataclass
class StaticCredentialValidator:
    """Test double mapping known tokens to principals."""

    principals: dict = field(default_factory=dict)
    expired: set = field(default_factory=set)

    def register(self, token: str, principal_id: str, email: Optional[str] = None) -> Principal:
        principal = Principal(id=principal_id, email=email, credential=token)
        self.principals[token] = principal
        return principal

    def validate(self, authorization: Optional[str]) -> Principal:
        token = extract_bearer_token(authorization)
        if token in self.expired:
            raise NeedsRefresh("Access token expired")
        principal = self.principals.get(token)
        if principal is None:
            raise Unauthenticated("Invalid access token")
        return principal
