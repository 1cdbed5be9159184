"""Authorization flow models for browser OAuth 2.0.

Contains the grant variants, the pending authorization persisted across the
redirect, and authorization request URLs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field


class GrantVariant(str, Enum):
    """Which flow a pending authorization belongs to."""

    PKCE_ACCESS = "pkce-access"
    PKCE_REFRESH = "pkce-refresh"
    IMPLICIT_ACCESS = "implicit-access"

    @property
    def uses_pkce(self) -> bool:
        return self is not GrantVariant.IMPLICIT_ACCESS


class PendingAuthorization(BaseModel):
    """One in-flight authorization attempt, stored for the return redirect.

    grant_type stays a plain string so that an unknown tag read back from
    storage reaches the resolver and fails there.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    grant_type: str = Field(alias="grantType")
    client_id: str = Field(alias="clientId")
    token_endpoint: str = Field(alias="tokenEndpoint")
    state: str
    code_verifier: str | None = Field(default=None, alias="codeVerifier")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


@dataclass(frozen=True)
class AuthorizationRequest:
    """Authorization request parameters (RFC 6749 Sections 4.1.1 and 4.2.1)."""

    authorization_endpoint: str
    client_id: str
    redirect_uri: str
    state: str
    response_type: str = "code"
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    scope: str | None = None
    extra_params: tuple[tuple[str, str], ...] = ()

    def build_authorization_url(self) -> str:
        """Build the complete authorization URL."""
        params: dict[str, str] = {"response_type": self.response_type}

        if self.code_challenge_method:
            params["code_challenge_method"] = self.code_challenge_method

        params["client_id"] = self.client_id
        params["redirect_uri"] = self.redirect_uri

        if self.code_challenge:
            params["code_challenge"] = self.code_challenge
        if self.scope:
            params["scope"] = self.scope
        for name, value in self.extra_params:
            params[name] = value

        params["state"] = self.state

        separator = "&" if "?" in self.authorization_endpoint else "?"
        return f"{self.authorization_endpoint}{separator}{urlencode(params)}"
