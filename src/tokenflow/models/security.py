"""PKCE proof material for one authorization attempt (RFC 7636)."""

from __future__ import annotations

from dataclasses import dataclass

CHALLENGE_METHOD = "S256"


@dataclass(frozen=True)
class PKCEParameters:
    """Verifier kept in session storage; challenge sent to the server."""

    code_verifier: str
    code_challenge: str
    code_challenge_method: str = CHALLENGE_METHOD

    def __post_init__(self) -> None:
        if not (43 <= len(self.code_verifier) <= 128):
            raise ValueError("code_verifier must be 43-128 characters")
        if not self.code_verifier.isascii():
            raise ValueError("code_verifier must be ASCII")
        if self.code_challenge_method != CHALLENGE_METHOD:
            raise ValueError("Only S256 code challenge method is supported")
