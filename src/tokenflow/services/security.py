"""Security utilities for browser OAuth 2.0 flows.

Provides anti-forgery state generation and validation, plus the URL
handling that decides what the redirect endpoint is and what the
authorization server sent back.
"""

from __future__ import annotations

import secrets
from urllib.parse import parse_qs, urlsplit, urlunsplit

from tokenflow.models.errors import StateMismatchError
from tokenflow.primitives.crypto import random_url_token


def generate_state() -> str:
    """Generate cryptographically secure state parameter.

    The state parameter provides CSRF protection by ensuring the redirect
    matches the original authorization request.

    Returns:
        Base64url encoding of 32 random bytes (43 characters)
    """
    return random_url_token()


def validate_state(expected: str, actual: str) -> None:
    """Validate state parameter matches expected value exactly.

    Args:
        expected: State parameter from original authorization request
        actual: State parameter from redirect URL

    Raises:
        StateMismatchError: If state parameters don't match
    """
    if not secrets.compare_digest(expected.encode("utf-8"), actual.encode("utf-8")):
        raise StateMismatchError("State parameter mismatch - possible CSRF attack")


def redirect_endpoint(url: str) -> str:
    """Return the page URL with query and fragment stripped.

    This is the redirect endpoint (RFC 6749 Section 3.1.2) registered for a
    client that redirects back to the page it started from.
    """
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def page_origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def query_params(url: str) -> dict[str, str]:
    """First value of every query parameter in url."""
    return _first_values(urlsplit(url).query)


def fragment_params(url: str) -> dict[str, str]:
    """First value of every form-encoded parameter in the url fragment."""
    return _first_values(urlsplit(url).fragment)


def _first_values(encoded: str) -> dict[str, str]:
    parsed = parse_qs(encoded, keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items() if values}
