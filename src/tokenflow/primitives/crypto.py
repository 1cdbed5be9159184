"""Cryptographic primitives for PKCE and anti-forgery state.

Random bytes always come from the operating system CSPRNG via ``secrets``.
There is no fallback generator.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import secrets

from tokenflow.models.errors import PKCEError

OPAQUE_TOKEN_BYTES = 32


def random_opaque_token() -> bytes:
    """Return 32 cryptographically secure random bytes.

    Raises:
        PKCEError: If the operating system cannot supply secure randomness
    """
    try:
        return secrets.token_bytes(OPAQUE_TOKEN_BYTES)
    except NotImplementedError as e:
        raise PKCEError(f"No secure random source available: {e}") from e


def sha256(data: bytes) -> bytes:
    """Return the 32-byte SHA-256 digest of data."""
    return hashlib.sha256(data).digest()


def base64url_encode(data: bytes) -> str:
    """Encode bytes as unpadded base64url (RFC 4648 Section 5)."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def base64url_decode(value: str) -> bytes:
    """Decode unpadded (or padded) base64url text back to bytes.

    Raises:
        ValueError: If value is not valid base64url
    """
    padding = "=" * (-len(value) % 4)
    try:
        return base64.b64decode(value + padding, altchars=b"-_", validate=True)
    except binascii.Error as e:
        raise ValueError(f"Invalid base64url value: {value!r}") from e


def random_url_token() -> str:
    """Return a fresh base64url-encoded opaque token (43 characters)."""
    return base64url_encode(random_opaque_token())
