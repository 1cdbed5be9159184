import base64
import hashlib

import pytest

from tokenflow.models.security import PKCEParameters
from tokenflow.primitives.pkce import PKCEManager

class TestPKCEManager:
    def test_generate_parameters_crypto_requirements(self) -> None:
        # Arrange
        pkce_manager = PKCEManager()

        # Act
        params = pkce_manager.generate_parameters()
        # Assert RFC 7636 requirements
        assert len(params.code_verifier) == 43
        assert 43 <= len(params.code_challenge) <= 128
        assert params.code_challenge_method == "S256"

        # Verify code_challenge is base64url(sha256(code_verifier))
        expected_challenge = (
            base64.urlsafe_b64encode(
                hashlib.sha256(params.code_verifier.encode("ascii")).digest()
            )
            .decode("ascii")
            .rstrip("=")
        )
        assert params.code_challenge == expected_challenge

    def test_generate_parameters_uniqueness(self) -> None:
        # Arrange
        pkce_manager = PKCEManager()

        # Act - Generate multiple parameters
        params1 = pkce_manager.generate_parameters()
        params2 = pkce_manager.generate_parameters()

        # Assert - Each generation is unique
        assert params1.code_verifier != params2.code_verifier
        assert params1.code_challenge != params2.code_challenge

    def test_code_challenge_is_deterministic(self) -> None:
        # Arrange
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

        # Act & Assert
        assert PKCEManager.code_challenge(verifier) == PKCEManager.code_challenge(
            verifier
        )
        assert (
            PKCEManager.code_challenge(verifier)
            == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"
        )

class TestPKCEParameters:
    def test_rejects_short_verifier(self) -> None:
        with pytest.raises(ValueError, match="43-128"):
            PKCEParameters(code_verifier="short", code_challenge="x")
    def test_rejects_plain_method(self) -> None:
        with pytest.raises(ValueError, match="S256"):
            PKCEParameters(
                code_verifier="a" * 43, code_challenge="x", code_challenge_method="plain"
            )
