"""Token state and lifecycle models for browser OAuth 2.0.

Contains the client registration, the immutable token set owned by a
TokenManager, token endpoint requests and responses, and the result of a
completed redirect.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

import httpx
from pydantic import BaseModel


def coerce_endpoint(endpoint: str | httpx.URL, name: str = "endpoint") -> str:
    """Return an endpoint URL as a string, accepting str or httpx.URL."""
    if isinstance(endpoint, httpx.URL):
        return str(endpoint)
    if isinstance(endpoint, str):
        return endpoint
    raise TypeError(f"{name} must be a string or httpx.URL")


@dataclass(frozen=True)
class Registration:
    """Public client registration at the authorization server.

    Identifies this client (RFC 6749 Section 2.2) and where it trades grants
    for tokens (RFC 6749 Section 3.2). Never holds a client secret.
    """

    client_id: str
    token_endpoint: str

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "token_endpoint", coerce_endpoint(self.token_endpoint, "token_endpoint")
        )
        if not self.client_id:
            raise ValueError("client_id must not be empty")


@dataclass(frozen=True)
class TokenSet:
    """Access token, optional refresh token, type, and absolute expiry.

    Replaced wholesale on every assignment; expires_at is fixed at the moment
    the set was built and never recomputed.
    """

    access_token: str
    token_type: str
    expires_at: float  # Unix timestamp
    refresh_token: str | None = None

    def is_expired(self, now: float | None = None) -> bool:
        """Check whether the access token is at or past its expiry."""
        if now is None:
            now = time.time()
        return now >= self.expires_at

    def can_refresh(self) -> bool:
        """Check if token can be refreshed."""
        return bool(self.refresh_token)

    def is_exhausted(self, now: float | None = None) -> bool:
        """Expired with no way to refresh."""
        return self.is_expired(now) and not self.can_refresh()

    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


@dataclass(frozen=True)
class TokenRequest:
    """Authorization code exchange parameters (RFC 6749 Section 4.1.3).

    Includes the PKCE code_verifier (RFC 7636). Public clients send their
    client_id and never a secret.
    """

    # Required fields first
    token_endpoint: str
    code: str
    redirect_uri: str
    code_verifier: str
    client_id: str

    # Optional fields with defaults last
    grant_type: str = "authorization_code"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request.

        Token requests must use form encoding, not JSON (RFC 6749 Section 4.1.3).
        """
        return {
            "grant_type": self.grant_type,
            "code": self.code,
            "redirect_uri": self.redirect_uri,
            "code_verifier": self.code_verifier,
            "client_id": self.client_id,
        }


@dataclass(frozen=True)
class RefreshTokenRequest:
    """Refresh token request parameters (RFC 6749 Section 6)."""

    token_endpoint: str
    refresh_token: str
    client_id: str
    grant_type: str = "refresh_token"

    def to_form_data(self) -> dict[str, str]:
        """Convert to form data for application/x-www-form-urlencoded request."""
        return {
            "grant_type": self.grant_type,
            "refresh_token": self.refresh_token,
            "client_id": self.client_id,
        }


class TokenResponse(BaseModel):
    """OAuth 2.0 token response (RFC 6749 Section 5).

    Represents both successful responses (Section 5.1) and error responses
    (Section 5.2). Also used for implicit-grant fragment parameters, which
    carry the same fields (Section 4.2.2).
    """

    # Success response fields (RFC 6749 Section 5.1)
    access_token: str | None = None
    token_type: str | None = None
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    scope: str | None = None

    # Error response fields (RFC 6749 Section 5.2)
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    def is_success(self) -> bool:
        """Check if token response indicates success."""
        return self.error is None and self.access_token is not None

    def missing_fields(self) -> list[str]:
        """Names of required success fields the response did not carry."""
        return [
            name
            for name in ("access_token", "token_type", "expires_in")
            if getattr(self, name) is None
        ]

    def calculate_expires_at(self, now: float | None = None) -> float:
        """Calculate absolute expiry timestamp from expires_in."""
        if self.expires_in is None:
            raise ValueError("Token response has no expires_in")
        if now is None:
            now = time.time()
        return now + self.expires_in

    def to_token_set(self, fallback_refresh_token: str | None = None) -> TokenSet:
        """Convert a successful response to a TokenSet.

        Args:
            fallback_refresh_token: Refresh token to keep when the server did
                not issue a new one

        Raises:
            ValueError: If response is not successful or incomplete
        """
        if not self.is_success() or self.missing_fields():
            raise ValueError("Cannot convert error response to TokenSet")

        return TokenSet(
            access_token=self.access_token,
            token_type=self.token_type,
            expires_at=self.calculate_expires_at(),
            refresh_token=self.refresh_token or fallback_refresh_token,
        )


@dataclass(frozen=True)
class AuthorizationResult:
    """Tokens obtained by one completed redirect round trip."""

    client_id: str
    token_endpoint: str
    access_token: str
    token_type: str
    expires_at: float
    refresh_token: str | None = field(default=None)

    @property
    def registration(self) -> Registration:
        return Registration(client_id=self.client_id, token_endpoint=self.token_endpoint)

    def to_token_set(self) -> TokenSet:
        return TokenSet(
            access_token=self.access_token,
            token_type=self.token_type,
            expires_at=self.expires_at,
            refresh_token=self.refresh_token,
        )
