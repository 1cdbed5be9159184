"""Outbound request construction with a fixed transport policy.

Every request the client sends, to the token endpoint or to a protected
resource, is built here so the trust posture stays the same everywhere:
cross-origin allowed, credentials only for the page's own origin, default
caching, redirects followed, no referrer, no keepalive past the page.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

# Headers that would carry ambient credentials or leak the page location
_CREDENTIAL_HEADERS = ("cookie",)
_REFERRER_HEADERS = ("referer",)
_FRAMING_HEADERS = ("content-length", "transfer-encoding")


@dataclass(frozen=True)
class RequestPolicy:
    """Transport options applied to every outbound request."""

    mode: str = field(default="cors")
    credentials: str = field(default="same-origin")
    cache: str = field(default="default")
    redirect: str = field(default="follow")
    referrer_policy: str = field(default="no-referrer")
    integrity: str = field(default="")
    keepalive: bool = field(default=False)

    def __post_init__(self) -> None:
        """Reject policies that weaken the public-client posture."""
        if self.credentials not in ("omit", "same-origin"):
            raise ValueError("credentials must be 'omit' or 'same-origin'")
        if self.referrer_policy != "no-referrer":
            raise ValueError("referrer_policy must be 'no-referrer'")
        if self.redirect not in ("follow", "error", "manual"):
            raise ValueError(f"Unknown redirect mode: {self.redirect}")
        if self.keepalive:
            raise ValueError("keepalive requests are not supported")

    @property
    def follow_redirects(self) -> bool:
        return self.redirect == "follow"

    def client_options(self) -> dict[str, Any]:
        """Keyword arguments for an httpx.AsyncClient honoring this policy."""
        return {"follow_redirects": self.follow_redirects}


DEFAULT_POLICY = RequestPolicy()


class RequestBuilder:
    """Builds GET and POST requests under a fixed RequestPolicy.

    Bodies are passed through untouched; callers serialize them first.
    """

    def __init__(self, origin: str | None = None, policy: RequestPolicy = DEFAULT_POLICY):
        """Initialize the builder.

        Args:
            origin: Origin of the embedding page (scheme://host[:port]); used
                to decide whether credential headers may be forwarded
            policy: Transport policy applied to every request
        """
        self.origin = _origin_of(origin) if origin else None
        self.policy = policy

    def get(self, endpoint: str | httpx.URL, headers: Mapping[str, str] | None = None) -> httpx.Request:
        """Create a GET request to the specified endpoint."""
        return self._build("GET", endpoint, headers=headers)

    def post(
        self,
        endpoint: str | httpx.URL,
        body: bytes | str,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Request:
        """Create a POST request with an already-serialized body."""
        return self._build("POST", endpoint, headers=headers, content=body)

    def prepare(self, request: httpx.Request) -> httpx.Request:
        """Copy a caller-supplied request with the policy applied.

        The request body must already be read (see httpx.Request.aread).
        Framing headers are dropped and recomputed for the buffered body.
        """
        headers = request.headers.copy()
        for name in _FRAMING_HEADERS:
            headers.pop(name, None)

        return self._build(
            request.method,
            request.url,
            headers=headers,
            content=request.content,
            extensions=request.extensions,
        )

    def client_options(self) -> dict[str, Any]:
        """Keyword arguments for an httpx.AsyncClient enforcing this builder.

        The request hook runs on every request the client sends, including
        the ones it builds itself when following redirects, so cookies from
        the client's jar never reach another origin.
        """
        return {
            **self.policy.client_options(),
            "event_hooks": {"request": [self.enforce]},
        }

    async def enforce(self, request: httpx.Request) -> None:
        """Strip referrer and, off-origin, credential headers in place."""
        _strip_headers(request.headers, self._may_send_credentials(request.url))

    def _build(
        self,
        method: str,
        endpoint: str | httpx.URL,
        headers: Mapping[str, str] | None = None,
        content: bytes | str | None = None,
        extensions: dict[str, Any] | None = None,
    ) -> httpx.Request:
        url = httpx.URL(str(endpoint))
        filtered = httpx.Headers(headers or {})
        _strip_headers(filtered, self._may_send_credentials(url))

        return httpx.Request(
            method,
            url,
            headers=filtered,
            content=content,
            extensions=dict(extensions or {}),
        )

    def _may_send_credentials(self, url: httpx.URL) -> bool:
        if self.policy.credentials == "omit":
            return False
        return self.origin is not None and _origin_of(str(url)) == self.origin


def _strip_headers(headers: httpx.Headers, keep_credentials: bool) -> None:
    for name in _REFERRER_HEADERS:
        headers.pop(name, None)
    if not keep_credentials:
        for name in _CREDENTIAL_HEADERS:
            headers.pop(name, None)


def _origin_of(url: str) -> str:
    parsed = httpx.URL(url)
    origin = f"{parsed.scheme}://{parsed.host}"
    if parsed.port is not None:
        origin += f":{parsed.port}"
    return origin
