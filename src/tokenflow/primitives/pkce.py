"""PKCE (Proof Key for Code Exchange) parameter generation.

Implements the RFC 7636 S256 transform to bind an authorization code to the
client instance that requested it.
"""

from __future__ import annotations

from tokenflow.models.errors import PKCEError
from tokenflow.models.security import CHALLENGE_METHOD, PKCEParameters
from tokenflow.primitives.crypto import base64url_encode, random_url_token, sha256


class PKCEManager:
    """Manages PKCE parameter generation for authorization code flows.

    This implementation follows RFC 7636 requirements:
    - Uses S256 code challenge method (SHA256 + base64url)
    - Derives the code verifier from 32 bytes of CSPRNG output
    """

    def generate_parameters(self) -> PKCEParameters:
        """Generate new PKCE parameters for an authorization flow.

        Returns:
            PKCEParameters: Immutable parameters for the authorization flow

        Raises:
            PKCEError: If parameter generation fails
        """
        try:
            code_verifier = random_url_token()
            code_challenge = self.code_challenge(code_verifier)

            return PKCEParameters(
                code_verifier=code_verifier,
                code_challenge=code_challenge,
                code_challenge_method=CHALLENGE_METHOD,
            )

        except PKCEError:
            raise
        except Exception as e:
            raise PKCEError(f"Failed to generate PKCE parameters: {e}") from e

    @staticmethod
    def code_challenge(code_verifier: str) -> str:
        """Generate code challenge from code verifier using S256 method.

        RFC 7636 Section 4.2: For S256, the code challenge is:
        BASE64URL-ENCODE(SHA256(ASCII(code_verifier)))

        Args:
            code_verifier: The code verifier to hash

        Returns:
            Base64url-encoded SHA256 hash of the code verifier
        """
        return base64url_encode(sha256(code_verifier.encode("ascii")))
