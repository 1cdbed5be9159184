"""Per-registration token lifecycle for a browser OAuth 2.0 public client.

Holds the current token set, starts authorization flows by navigating the
browser away, refreshes expired access tokens, and decorates outgoing
requests with the Authorization header.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

import httpx

from tokenflow.browser import BrowserContext
from tokenflow.config import DEFAULT_SETTINGS, ClientSettings
from tokenflow.models.errors import RefreshUnavailableError
from tokenflow.models.flow import (
    AuthorizationRequest,
    GrantVariant,
    PendingAuthorization,
)
from tokenflow.models.tokens import (
    AuthorizationResult,
    RefreshTokenRequest,
    Registration,
    TokenSet,
    coerce_endpoint,
)
from tokenflow.primitives.pkce import PKCEManager
from tokenflow.primitives.requests import RequestBuilder
from tokenflow.services.security import generate_state, page_origin, redirect_endpoint
from tokenflow.services.storage import PendingAuthorizationStore
from tokenflow.services.tokens import OAuth2TokenEndpoint, apply_timeout, send_request

logger = logging.getLogger(__name__)

TokenObserver = Callable[[str | None, str | None], None]
SingleTokenObserver = Callable[[str | None], None]


class TokenManager:
    """Owns the token set for one client registration.

    The token set is replaced wholesale, never edited in place, and every
    replacement notifies observers synchronously in registration order.
    Concurrent callers that need a refresh share one in-flight refresh.
    """

    def __init__(
        self,
        registration: Registration,
        tokens: TokenSet | None = None,
        browser: BrowserContext | None = None,
        settings: ClientSettings = DEFAULT_SETTINGS,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the token manager.

        Args:
            registration: Client id and token endpoint
            tokens: Initial token set, if already known
            browser: Page the flows navigate from; required for begin_* flows
            settings: Client settings
            http_client: HTTP client for token and resource requests. A
                supplied client is used as is; build it with
                RequestBuilder.client_options() to keep cookies same-origin
                across redirects
        """
        self.registration = registration
        self._browser = browser
        self._settings = settings

        origin = page_origin(browser.current_url) if browser is not None else None
        self._request_builder = RequestBuilder(
            origin=origin, policy=settings.request_policy
        )
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient(
            timeout=settings.timeout, **self._request_builder.client_options()
        )
        self._token_endpoint = OAuth2TokenEndpoint(
            settings,
            http_client=self._http_client,
            request_builder=self._request_builder,
        )
        self._pkce_manager = PKCEManager()

        self._observers: list[TokenObserver] = []
        self._access_observers: list[SingleTokenObserver] = []
        self._refresh_observers: list[SingleTokenObserver] = []
        self._refresh_task: asyncio.Task[TokenSet] | None = None

        self._tokens: TokenSet | None = None
        if tokens is not None:
            self.replace_tokens(tokens)

    @classmethod
    def from_result(
        cls,
        result: AuthorizationResult,
        browser: BrowserContext | None = None,
        **kwargs,
    ) -> TokenManager:
        """Seed a manager from a completed redirect."""
        return cls(result.registration, result.to_token_set(), browser=browser, **kwargs)

    @property
    def client_id(self) -> str:
        return self.registration.client_id

    @property
    def token_endpoint(self) -> str:
        return self.registration.token_endpoint

    @property
    def tokens(self) -> TokenSet | None:
        return self._tokens

    @property
    def token_type(self) -> str | None:
        return self._tokens.token_type if self._tokens else None

    @property
    def expires_at(self) -> float | None:
        return self._tokens.expires_at if self._tokens else None

    def current_access_token(self) -> str | None:
        return self._tokens.access_token if self._tokens else None

    def current_refresh_token(self) -> str | None:
        return self._tokens.refresh_token if self._tokens else None

    def is_expired(self) -> bool:
        return self._tokens is None or self._tokens.is_expired()

    def is_exhausted(self) -> bool:
        """No usable access token and no way to get one without a new flow."""
        return self._tokens is None or self._tokens.is_exhausted()

    def replace_tokens(self, tokens: TokenSet) -> None:
        """Replace the whole token set and notify observers."""
        self._tokens = tokens

        for observer in list(self._observers):
            observer(tokens.access_token, tokens.refresh_token)
        for observer in list(self._access_observers):
            observer(tokens.access_token)
        for observer in list(self._refresh_observers):
            observer(tokens.refresh_token)

    def subscribe(self, observer: TokenObserver) -> Callable[[], None]:
        """Call observer(access_token, refresh_token) on every replacement.

        Returns:
            A callable that removes the observer
        """
        return _register(self._observers, observer)

    def on_access_token(self, observer: SingleTokenObserver) -> Callable[[], None]:
        return _register(self._access_observers, observer)

    def on_refresh_token(self, observer: SingleTokenObserver) -> Callable[[], None]:
        return _register(self._refresh_observers, observer)

    async def refresh(self, timeout: float | None = None) -> TokenSet:
        """Refresh the access token (RFC 6749 Section 6).

        Callers arriving while a refresh is in flight await that refresh
        instead of sending another; refresh tokens may be single-use.

        Args:
            timeout: Per-call timeout override in seconds

        Returns:
            TokenSet: The new token set

        Raises:
            RefreshUnavailableError: No refresh token is held
            TokenEndpointError: The token endpoint rejected the refresh
            NetworkError: Transport failure (TokenTimeoutError on timeout)
        """
        if self._refresh_task is None or self._refresh_task.done():
            if self._tokens is None or not self._tokens.can_refresh():
                raise RefreshUnavailableError(
                    "No refresh token available; start a new authorization flow"
                )
            self._refresh_task = asyncio.ensure_future(
                self._refresh(self._tokens, timeout)
            )
        else:
            logger.debug("Joining in-flight token refresh")

        return await asyncio.shield(self._refresh_task)

    async def _refresh(self, current: TokenSet, timeout: float | None) -> TokenSet:
        refresh_request = RefreshTokenRequest(
            token_endpoint=self.token_endpoint,
            refresh_token=current.refresh_token,
            client_id=self.client_id,
        )
        token_response = await self._token_endpoint.refresh_access_token(
            refresh_request, timeout=timeout
        )

        # Keep the old refresh token unless the server rotated it
        new_tokens = token_response.to_token_set(
            fallback_refresh_token=current.refresh_token
        )
        self.replace_tokens(new_tokens)

        logger.info(f"Successfully refreshed access token for {self.client_id}")
        return new_tokens

    async def authenticated_fetch(
        self, request: httpx.Request, timeout: float | None = None
    ) -> httpx.Response:
        """Send request with the current access token, refreshing first if expired.

        Args:
            request: Request to send; it is copied, never modified
                (a streaming body is read into memory first)
            timeout: Per-call timeout override in seconds

        Raises:
            RefreshUnavailableError: Token expired and cannot be refreshed
            TokenEndpointError: The refresh was rejected
            NetworkError: Transport failure (TokenTimeoutError on timeout)
        """
        if self.is_expired():
            await self.refresh(timeout=timeout)

        # Streaming bodies are buffered so the request can be copied
        await request.aread()
        authorized = self._request_builder.prepare(request)
        authorized.headers["Authorization"] = self._tokens.authorization_header()
        apply_timeout(authorized, self._settings.timeout if timeout is None else timeout)

        return await send_request(self._http_client, authorized)

    # Each begin_* flow navigates the browser away; nothing is returned to
    # the current page. The tokens arrive through PageLoad on the way back.

    def begin_pkce_access_flow(
        self, authorization_endpoint: str | httpx.URL, scope: str | None = None
    ) -> None:
        """Authorization code flow with PKCE, access token only (RFC 7636)."""
        self._begin_flow(GrantVariant.PKCE_ACCESS, authorization_endpoint, scope)

    def begin_pkce_refresh_flow(
        self, authorization_endpoint: str | httpx.URL, scope: str | None = None
    ) -> None:
        """Authorization code flow with PKCE, requesting offline access."""
        self._begin_flow(GrantVariant.PKCE_REFRESH, authorization_endpoint, scope)

    def begin_implicit_flow(
        self, authorization_endpoint: str | httpx.URL, scope: str | None = None
    ) -> None:
        """Implicit grant (RFC 6749 Section 4.2); no refresh token."""
        self._begin_flow(GrantVariant.IMPLICIT_ACCESS, authorization_endpoint, scope)

    def _begin_flow(
        self,
        variant: GrantVariant,
        authorization_endpoint: str | httpx.URL,
        scope: str | None,
    ) -> None:
        if self._browser is None:
            raise RuntimeError("A BrowserContext is required to start a flow")

        endpoint = coerce_endpoint(authorization_endpoint, "authorization_endpoint")
        redirect_uri = redirect_endpoint(self._browser.current_url)
        state = generate_state()

        if variant.uses_pkce:
            # Step (A) of Section 1.1 of RFC 7636
            pkce_params = self._pkce_manager.generate_parameters()
            extra_params = ()
            if variant is GrantVariant.PKCE_REFRESH:
                extra_params = (self._settings.offline_access_parameter,)

            auth_request = AuthorizationRequest(
                authorization_endpoint=endpoint,
                client_id=self.client_id,
                redirect_uri=redirect_uri,
                state=state,
                response_type="code",
                code_challenge=pkce_params.code_challenge,
                code_challenge_method=pkce_params.code_challenge_method,
                scope=scope,
                extra_params=extra_params,
            )
            code_verifier = pkce_params.code_verifier
        else:
            auth_request = AuthorizationRequest(
                authorization_endpoint=endpoint,
                client_id=self.client_id,
                redirect_uri=redirect_uri,
                state=state,
                response_type="token",
                scope=scope,
            )
            code_verifier = None

        store = PendingAuthorizationStore(
            self._browser.session_storage, key=self._settings.storage_key
        )
        store.save(
            PendingAuthorization(
                grant_type=variant.value,
                client_id=self.client_id,
                token_endpoint=self.token_endpoint,
                state=state,
                code_verifier=code_verifier,
            )
        )

        logger.info(f"Starting {variant.value} authorization for client {self.client_id}")
        self._browser.navigate(auth_request.build_authorization_url())

    async def aclose(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._owns_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> TokenManager:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def _register(observers: list, observer: Callable) -> Callable[[], None]:
    observers.append(observer)

    def unsubscribe() -> None:
        if observer in observers:
            observers.remove(observer)

    return unsubscribe
