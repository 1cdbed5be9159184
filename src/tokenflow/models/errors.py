"""Exception hierarchy for browser OAuth 2.0 client errors.

Provides specific exception types for different failure modes to enable
precise error handling and recovery strategies. Every failure is recoverable
by starting a new authorization flow.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for all OAuth 2.0 related errors."""

    pass


class AuthorizationCallbackError(OAuth2Error):
    """Raised when the redirect back from the authorization server is malformed.

    This indicates the authorization server sent an invalid redirect URL,
    not that our redirect handling code failed.
    """

    pass


class MissingParameterError(AuthorizationCallbackError):
    """Raised when a required query or fragment parameter is absent."""

    def __init__(self, parameter: str, location: str = "query"):
        self.parameter = parameter
        self.location = location
        super().__init__(f"{parameter} parameter required in redirect {location}")


class InvalidParameterError(AuthorizationCallbackError):
    """Raised when a redirect parameter is present but malformed."""

    pass


class StateValidationError(AuthorizationCallbackError):
    """Raised when OAuth state parameter validation fails.

    This indicates either a missing state parameter or a state mismatch,
    which could indicate a CSRF attack or authorization server issue.
    """

    pass


class StateMismatchError(StateValidationError):
    """Raised when the returned state differs from the stored one."""

    pass


class AuthorizationError(OAuth2Error):
    """Raised when user authorization fails."""

    pass


class AuthorizationDeniedError(AuthorizationError):
    """Raised when the authorization server redirects back with an error."""

    def __init__(
        self,
        error: str,
        error_description: str | None = None,
        error_uri: str | None = None,
    ):
        self.error = error
        self.error_description = error_description
        self.error_uri = error_uri
        super().__init__(
            f"Authorization failed: {error} "
            f"({error_description or ''}) "
            f"{'See: ' + error_uri if error_uri else ''}".rstrip()
        )


class PendingAuthorizationError(OAuth2Error):
    """Raised when the stored pending authorization cannot be used."""

    pass


class UnsupportedGrantTypeError(PendingAuthorizationError):
    """Raised when the pending authorization carries an unknown grant tag."""

    def __init__(self, grant_type: str):
        self.grant_type = grant_type
        super().__init__(f"Invalid grant type: {grant_type}")


class TokenError(OAuth2Error):
    """Raised when token operations fail."""

    pass


class TokenEndpointError(TokenError):
    """Raised when the token endpoint answers with an error or garbage."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error: str | None = None,
        error_description: str | None = None,
    ):
        self.status_code = status_code
        self.error = error
        self.error_description = error_description
        super().__init__(message)


class TokenRefreshError(TokenError):
    """Raised when token refresh fails."""

    pass


class RefreshUnavailableError(TokenRefreshError):
    """Raised when a refresh is needed but no refresh token is held."""

    pass


class NetworkError(TokenError):
    """Raised when the transport fails before a response is received."""

    pass


class TokenTimeoutError(NetworkError, TimeoutError):
    """Raised when a token or resource request exceeds its timeout."""

    pass


class PKCEError(OAuth2Error):
    """Raised when PKCE parameter generation or validation fails."""

    pass
