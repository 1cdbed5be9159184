"""Resolution of a page load that returns from the authorization server.

The resolver is a state machine over explicit inputs: the current page URL
and the pending authorization taken from session storage. It never touches
the browser itself; the effects to apply (clear the slot, scrub the URL)
are returned alongside the result.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from tokenflow.models.errors import (
    AuthorizationDeniedError,
    InvalidParameterError,
    MissingParameterError,
    OAuth2Error,
    PendingAuthorizationError,
    StateMismatchError,
    UnsupportedGrantTypeError,
)
from tokenflow.models.flow import GrantVariant, PendingAuthorization
from tokenflow.models.redirect import RedirectEffects, RedirectOutcome, ResolverState
from tokenflow.models.tokens import AuthorizationResult, TokenRequest, TokenResponse
from tokenflow.services.security import (
    fragment_params,
    query_params,
    redirect_endpoint,
    validate_state,
)
from tokenflow.services.tokens import OAuth2TokenEndpoint

logger = logging.getLogger(__name__)

IMPLICIT_REQUIRED = ("access_token", "token_type", "expires_in", "state")

_RESOLVING = {
    GrantVariant.PKCE_ACCESS: ResolverState.RESOLVING_PKCE_ACCESS,
    GrantVariant.PKCE_REFRESH: ResolverState.RESOLVING_PKCE_REFRESH,
    GrantVariant.IMPLICIT_ACCESS: ResolverState.RESOLVING_IMPLICIT,
}


class RedirectResolver:
    """Completes the flow recorded in a pending authorization.

    States: IDLE when nothing is pending; otherwise one of the RESOLVING_*
    states, ending in RESOLVED or FAILED. Both terminal states carry effects
    that clear the pending slot and strip query and fragment from the URL so
    a code or token is never processed twice.
    """

    def __init__(self, token_endpoint: OAuth2TokenEndpoint, timeout: float | None = None):
        self._token_endpoint = token_endpoint
        self.timeout = timeout
        self.state = ResolverState.IDLE

    async def resolve(
        self, current_url: str, pending: PendingAuthorization | None
    ) -> RedirectOutcome:
        """Resolve one page load.

        Args:
            current_url: Full URL of the page, including query and fragment
            pending: Attempt taken from session storage, or None

        Returns:
            RedirectOutcome: IDLE with no effects, RESOLVED with an
            AuthorizationResult, or FAILED with the error. Failures specific
            to OAuth are returned, never raised.
        """
        if pending is None:
            self.state = ResolverState.IDLE
            return RedirectOutcome(state=ResolverState.IDLE)

        try:
            variant = self._variant_of(pending)
            self.state = _RESOLVING[variant]
            logger.debug(f"Resolving {variant.value} redirect for {pending.client_id}")

            if variant is GrantVariant.IMPLICIT_ACCESS:
                result = self._resolve_implicit(current_url, pending)
            else:
                result = await self._resolve_pkce(variant, current_url, pending)

        except OAuth2Error as e:
            return self.fail(current_url, e)

        self.state = ResolverState.RESOLVED
        logger.info(f"Authorization redirect resolved for client {pending.client_id}")
        return RedirectOutcome(
            state=ResolverState.RESOLVED,
            result=result,
            effects=self.scrub_effects(current_url),
        )

    def fail(self, current_url: str, error: OAuth2Error) -> RedirectOutcome:
        """Build a FAILED outcome that still scrubs the URL and the slot."""
        if isinstance(error, StateMismatchError):
            logger.warning(f"Rejected authorization redirect: {error}")
        else:
            logger.warning(f"Authorization redirect failed: {error}")

        self.state = ResolverState.FAILED
        return RedirectOutcome(
            state=ResolverState.FAILED,
            error=error,
            effects=self.scrub_effects(current_url),
        )

    @staticmethod
    def scrub_effects(current_url: str) -> RedirectEffects:
        return RedirectEffects(
            clear_pending=True, rewrite_url=redirect_endpoint(current_url)
        )

    @staticmethod
    def _variant_of(pending: PendingAuthorization) -> GrantVariant:
        try:
            variant = GrantVariant(pending.grant_type)
        except ValueError:
            raise UnsupportedGrantTypeError(pending.grant_type) from None

        if variant.uses_pkce and not pending.code_verifier:
            raise PendingAuthorizationError(
                f"Pending {variant.value} authorization has no code verifier"
            )
        return variant

    async def _resolve_pkce(
        self, variant: GrantVariant, current_url: str, pending: PendingAuthorization
    ) -> AuthorizationResult:
        params = query_params(current_url)
        _raise_for_server_error(params, pending.state)

        code = params.get("code")
        if code is None:
            raise MissingParameterError("code")
        state = params.get("state")
        if state is None:
            raise MissingParameterError("state")

        # CSRF protection; nothing is sent to the token endpoint on mismatch
        validate_state(pending.state, state)

        # Step (C) of Section 1.1 of RFC 7636
        token_request = TokenRequest(
            token_endpoint=pending.token_endpoint,
            code=code,
            redirect_uri=redirect_endpoint(current_url),
            code_verifier=pending.code_verifier,
            client_id=pending.client_id,
        )
        token_response = await self._token_endpoint.exchange_code_for_token(
            token_request, timeout=self.timeout
        )

        # Step (D): the access variant never asked for a refresh token
        refresh_token = None
        if variant is GrantVariant.PKCE_REFRESH:
            refresh_token = token_response.refresh_token

        return AuthorizationResult(
            client_id=pending.client_id,
            token_endpoint=pending.token_endpoint,
            access_token=token_response.access_token,
            token_type=token_response.token_type,
            expires_at=token_response.calculate_expires_at(),
            refresh_token=refresh_token,
        )

    def _resolve_implicit(
        self, current_url: str, pending: PendingAuthorization
    ) -> AuthorizationResult:
        # The token travels in the fragment, which never reaches a server
        params = fragment_params(current_url)
        _raise_for_server_error(params, pending.state)

        for name in IMPLICIT_REQUIRED:
            if name not in params:
                raise MissingParameterError(name, location="fragment")

        validate_state(pending.state, params["state"])

        try:
            token_response = TokenResponse.model_validate(
                {
                    "access_token": params["access_token"],
                    "token_type": params["token_type"],
                    "expires_in": params["expires_in"],
                }
            )
        except ValidationError as e:
            raise InvalidParameterError(
                f"Malformed implicit grant parameters: {e}"
            ) from e

        return AuthorizationResult(
            client_id=pending.client_id,
            token_endpoint=pending.token_endpoint,
            access_token=token_response.access_token,
            token_type=token_response.token_type,
            expires_at=token_response.calculate_expires_at(),
        )


def _raise_for_server_error(params: dict[str, str], expected_state: str) -> None:
    """Turn an RFC 6749 error redirect into AuthorizationDeniedError."""
    if "error" not in params:
        return

    # Still validate state for security before trusting the error
    received_state = params.get("state")
    if received_state is not None:
        validate_state(expected_state, received_state)

    raise AuthorizationDeniedError(
        params["error"],
        error_description=params.get("error_description"),
        error_uri=params.get("error_uri"),
    )
