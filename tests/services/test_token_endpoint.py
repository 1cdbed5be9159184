"""Tests for the OAuth 2.0 token endpoint client.

High-impact tests covering the token endpoint interactions:
- Authorization code exchange with PKCE
- Token refresh
- Error statuses and malformed responses
- Transport failures and timeouts
"""

from urllib.parse import parse_qs
from unittest.mock import AsyncMock

import httpx
import pytest

from tokenflow.config import ClientSettings
from tokenflow.models.errors import (
    NetworkError,
    TokenEndpointError,
    TokenTimeoutError,
)
from tokenflow.models.tokens import RefreshTokenRequest, TokenRequest
from tokenflow.services.tokens import OAuth2TokenEndpoint


def sent_request(http_client: AsyncMock) -> httpx.Request:
    return http_client.send.call_args[0][0]


def sent_form(http_client: AsyncMock) -> dict[str, list[str]]:
    return parse_qs(sent_request(http_client).content.decode())


class TestTokenExchange:
    """Test authorization code to access token exchange."""

    def setup_method(self):
        # Arrange
        self.http_client = AsyncMock()
        self.token_endpoint = OAuth2TokenEndpoint(http_client=self.http_client)
        self.code_verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        self.token_request = TokenRequest(
            token_endpoint="https://auth.example/token",
            code="XYZ",
            redirect_uri="https://app.example/page",
            code_verifier=self.code_verifier,
            client_id="abc123",
        )

    async def test_successful_token_exchange(self, make_response):
        # Arrange
        self.http_client.send.return_value = make_response(
            200,
            {"access_token": "AT1", "token_type": "Bearer", "expires_in": 3600},
        )

        # Act
        token_response = await self.token_endpoint.exchange_code_for_token(
            self.token_request
        )

        # Assert
        assert token_response.is_success()
        assert token_response.access_token == "AT1"
        assert token_response.token_type == "Bearer"
        assert token_response.expires_in == 3600
        assert token_response.refresh_token is None

        self.http_client.send.assert_awaited_once()
        request = sent_request(self.http_client)
        assert request.method == "POST"
        assert str(request.url) == "https://auth.example/token"
        assert request.headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert request.headers["Accept"] == "application/json"

    async def test_exchange_body_is_form_encoded_without_secret(self, make_response):
        # Arrange
        self.http_client.send.return_value = make_response(
            200,
            {"access_token": "AT1", "token_type": "Bearer", "expires_in": 3600},
        )

        # Act
        await self.token_endpoint.exchange_code_for_token(self.token_request)

        # Assert
        body = sent_request(self.http_client).content.decode()
        assert body.startswith("grant_type=authorization_code&code=XYZ")
        assert sent_form(self.http_client) == {
            "grant_type": ["authorization_code"],
            "code": ["XYZ"],
            "redirect_uri": ["https://app.example/page"],
            "code_verifier": [self.code_verifier],
            "client_id": ["abc123"],
        }
        assert "client_secret" not in body

    async def test_default_and_per_call_timeout(self, make_response):
        # Arrange
        endpoint = OAuth2TokenEndpoint(
            ClientSettings(timeout=5.0), http_client=self.http_client
        )
        self.http_client.send.return_value = make_response(
            200,
            {"access_token": "AT1", "token_type": "Bearer", "expires_in": 3600},
        )

        # Act
        await endpoint.exchange_code_for_token(self.token_request)
        default_timeout = sent_request(self.http_client).extensions["timeout"]
        await endpoint.exchange_code_for_token(self.token_request, timeout=1.5)
        override_timeout = sent_request(self.http_client).extensions["timeout"]

        # Assert
        assert default_timeout["read"] == 5.0
        assert override_timeout["read"] == 1.5


class TestTokenEndpointErrors:
    """Test error handling for token endpoint responses."""

    def setup_method(self):
        # Arrange
        self.http_client = AsyncMock()
        self.token_endpoint = OAuth2TokenEndpoint(http_client=self.http_client)
        self.token_request = TokenRequest(
            token_endpoint="https://auth.example/token",
            code="expired-code",
            redirect_uri="https://app.example/page",
            code_verifier="dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk",
            client_id="abc123",
        )

    async def test_invalid_grant_error(self, make_response):
        # Arrange
        self.http_client.send.return_value = make_response(
            400,
            {
                "error": "invalid_grant",
                "error_description": "Authorization code has expired",
            },
        )

        # Act & Assert
        with pytest.raises(TokenEndpointError) as exc_info:
            await self.token_endpoint.exchange_code_for_token(self.token_request)

        assert exc_info.value.status_code == 400
        assert exc_info.value.error == "invalid_grant"
        assert exc_info.value.error_description == "Authorization code has expired"

    async def test_non_json_response(self, make_response):
        # Arrange
        response = make_response(502)
        response.json.side_effect = ValueError("Not valid JSON")
        self.http_client.send.return_value = response

        # Act & Assert
        with pytest.raises(TokenEndpointError) as exc_info:
            await self.token_endpoint.exchange_code_for_token(self.token_request)

        assert exc_info.value.status_code == 502

    async def test_json_that_is_not_an_object(self, make_response):
        # Arrange
        self.http_client.send.return_value = make_response(200, ["access_token"])

        # Act & Assert
        with pytest.raises(TokenEndpointError):
            await self.token_endpoint.exchange_code_for_token(self.token_request)

    @pytest.mark.parametrize(
        "payload, missing",
        [
            ({"token_type": "Bearer", "expires_in": 60}, "access_token"),
            ({"access_token": "AT", "expires_in": 60}, "token_type"),
            ({"access_token": "AT", "token_type": "Bearer"}, "expires_in"),
        ],
    )
    async def test_missing_required_fields(self, make_response, payload, missing):
        # Arrange
        self.http_client.send.return_value = make_response(200, payload)

        # Act & Assert
        with pytest.raises(TokenEndpointError) as exc_info:
            await self.token_endpoint.exchange_code_for_token(self.token_request)

        assert missing in str(exc_info.value)

    async def test_non_integer_expires_in(self, make_response):
        # Arrange
        self.http_client.send.return_value = make_response(
            200, {"access_token": "AT", "token_type": "Bearer", "expires_in": "soon"}
        )

        # Act & Assert
        with pytest.raises(TokenEndpointError):
            await self.token_endpoint.exchange_code_for_token(self.token_request)

    async def test_network_error_raises_network_error(self):
        # Arrange
        self.http_client.send.side_effect = httpx.ConnectError("Connection failed")

        # Act & Assert
        with pytest.raises(NetworkError) as exc_info:
            await self.token_endpoint.exchange_code_for_token(self.token_request)

        assert not isinstance(exc_info.value, TokenTimeoutError)

    async def test_timeout_is_a_distinct_failure(self):
        # Arrange
        self.http_client.send.side_effect = httpx.ReadTimeout("too slow")

        # Act & Assert
        with pytest.raises(TokenTimeoutError) as exc_info:
            await self.token_endpoint.exchange_code_for_token(self.token_request)

        assert isinstance(exc_info.value, TimeoutError)


class TestTokenRefresh:
    """Test token refresh requests."""

    def setup_method(self):
        # Arrange
        self.http_client = AsyncMock()
        self.token_endpoint = OAuth2TokenEndpoint(http_client=self.http_client)
        self.refresh_request = RefreshTokenRequest(
            token_endpoint="https://auth.example/token",
            refresh_token="RT1",
            client_id="abc123",
        )

    async def test_successful_token_refresh(self, make_response):
        # Arrange
        self.http_client.send.return_value = make_response(
            200,
            {
                "access_token": "AT2",
                "token_type": "Bearer",
                "expires_in": 3600,
                "refresh_token": "RT2",
            },
        )

        # Act
        token_response = await self.token_endpoint.refresh_access_token(
            self.refresh_request
        )

        # Assert
        assert token_response.access_token == "AT2"
        assert token_response.refresh_token == "RT2"
        assert sent_request(self.http_client).content.decode() == (
            "grant_type=refresh_token&refresh_token=RT1&client_id=abc123"
        )

    async def test_reused_refresh_token_is_token_endpoint_error(self, make_response):
        # Arrange
        self.http_client.send.return_value = make_response(
            400,
            {"error": "invalid_grant", "error_description": "Token already used"},
        )

        # Act & Assert
        with pytest.raises(TokenEndpointError) as exc_info:
            await self.token_endpoint.refresh_access_token(self.refresh_request)

        assert exc_info.value.error == "invalid_grant"


class TestClientOwnership:
    async def test_close_leaves_shared_client_open(self):
        # Arrange
        http_client = AsyncMock()
        token_endpoint = OAuth2TokenEndpoint(http_client=http_client)

        # Act
        await token_endpoint.close()

        # Assert
        http_client.aclose.assert_not_awaited()

    async def test_close_owned_client(self):
        # Arrange
        token_endpoint = OAuth2TokenEndpoint()

        # Act
        await token_endpoint.close()

        # Assert
        assert token_endpoint._http_client.is_closed
