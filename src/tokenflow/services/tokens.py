"""OAuth 2.0 token endpoint client.

Implements RFC 6749 token endpoint interactions for a public client:
authorization code exchange with PKCE (RFC 7636) and refresh.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from tokenflow.config import DEFAULT_SETTINGS, ClientSettings
from tokenflow.models.errors import NetworkError, TokenEndpointError, TokenTimeoutError
from tokenflow.models.tokens import RefreshTokenRequest, TokenRequest, TokenResponse
from tokenflow.primitives.requests import RequestBuilder

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


def apply_timeout(request: httpx.Request, timeout: float) -> httpx.Request:
    """Attach a per-request timeout the way httpx.Client.build_request does."""
    request.extensions["timeout"] = httpx.Timeout(timeout).as_dict()
    return request


async def send_request(
    http_client: httpx.AsyncClient, request: httpx.Request
) -> httpx.Response:
    """Send a request, mapping transport failures onto the error taxonomy.

    Raises:
        TokenTimeoutError: If the request timed out
        NetworkError: For any other transport failure
    """
    try:
        return await http_client.send(request)
    except httpx.TimeoutException as e:
        raise TokenTimeoutError(f"Request to {request.url} timed out") from e
    except httpx.HTTPError as e:
        raise NetworkError(f"HTTP error during request to {request.url}: {e}") from e


class OAuth2TokenEndpoint:
    """Performs token endpoint requests for one or more registrations.

    Handles the token endpoint interactions including:
    - Authorization code to access token exchange (RFC 6749 Section 4.1.3)
    - Access token refresh (RFC 6749 Section 6)

    Uses application/x-www-form-urlencoded bodies and never sends a client
    secret.
    """

    def __init__(
        self,
        settings: ClientSettings = DEFAULT_SETTINGS,
        http_client: httpx.AsyncClient | None = None,
        request_builder: RequestBuilder | None = None,
    ):
        """Initialize the token endpoint client.

        Args:
            settings: Client settings (timeout, transport policy)
            http_client: Shared HTTP client; one is created when omitted
            request_builder: Builder applying the transport policy
        """
        self.timeout = settings.timeout
        self._request_builder = request_builder or RequestBuilder(
            policy=settings.request_policy
        )
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=settings.timeout, **self._request_builder.client_options()
        )

    async def exchange_code_for_token(
        self, token_request: TokenRequest, timeout: float | None = None
    ) -> TokenResponse:
        """Exchange authorization code for access token.

        Args:
            token_request: Token exchange request parameters
            timeout: Per-call timeout override in seconds

        Returns:
            TokenResponse: Successful, complete token response

        Raises:
            TokenEndpointError: Error status or malformed response
            NetworkError: Transport failure (TokenTimeoutError on timeout)
        """
        logger.debug(f"Exchanging authorization code at {token_request.token_endpoint}")

        form_data = token_request.to_form_data()
        logger.debug(
            f"Token request: grant_type={form_data['grant_type']}, "
            f"client_id={form_data['client_id']}"
        )

        response = await self._post_form(
            token_request.token_endpoint, form_data, timeout
        )
        return self._parse_token_response(response)

    async def refresh_access_token(
        self, refresh_request: RefreshTokenRequest, timeout: float | None = None
    ) -> TokenResponse:
        """Refresh an access token using a refresh token.

        Implements RFC 6749 Section 6 - Refreshing an Access Token.

        Raises:
            TokenEndpointError: Error status (including a rejected, reused
                refresh token) or malformed response
            NetworkError: Transport failure (TokenTimeoutError on timeout)
        """
        logger.debug(f"Refreshing access token at {refresh_request.token_endpoint}")

        form_data = refresh_request.to_form_data()
        logger.debug(f"Refresh request: client_id={form_data['client_id']}")

        response = await self._post_form(
            refresh_request.token_endpoint, form_data, timeout
        )
        return self._parse_token_response(response)

    async def _post_form(
        self, endpoint: str, form_data: Mapping[str, str], timeout: float | None
    ) -> httpx.Response:
        request = self._request_builder.post(
            endpoint, urlencode(form_data), headers=FORM_HEADERS
        )
        apply_timeout(request, self.timeout if timeout is None else timeout)
        return await send_request(self._http_client, request)

    def _parse_token_response(self, response: httpx.Response) -> TokenResponse:
        """Parse token endpoint response into TokenResponse.

        Raises:
            TokenEndpointError: If the status is not 2xx, the body is not a
                JSON object, or required fields are missing
        """
        try:
            response_data: Any = response.json()
        except ValueError as e:
            raise TokenEndpointError(
                f"Invalid token response format: {e}",
                status_code=response.status_code,
            ) from e

        if not isinstance(response_data, dict):
            raise TokenEndpointError(
                "Token response is not a JSON object",
                status_code=response.status_code,
            )

        if not 200 <= response.status_code < 300:
            # Error response (RFC 6749 Section 5.2)
            error_code = response_data.get("error", "unknown_error")
            error_description = response_data.get(
                "error_description", "No description provided"
            )

            logger.warning(
                f"Token request failed with {response.status_code}: "
                f"{error_code} - {error_description}"
            )

            raise TokenEndpointError(
                f"Token endpoint returned {response.status_code}: "
                f"{error_code} - {error_description}",
                status_code=response.status_code,
                error=error_code,
                error_description=error_description,
            )

        try:
            token_response = TokenResponse.model_validate(response_data)
        except ValidationError as e:
            raise TokenEndpointError(
                f"Invalid token response format: {e}",
                status_code=response.status_code,
            ) from e

        missing = token_response.missing_fields()
        if missing:
            raise TokenEndpointError(
                f"Token response missing required {', '.join(missing)}",
                status_code=response.status_code,
            )

        logger.info("Token request successful")
        return token_response

    async def close(self) -> None:
        """Close the HTTP client if this object created it."""
        if self._owns_client:
            await self._http_client.aclose()
