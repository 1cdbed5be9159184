"""Page-load integration: the browser seam and the once-only redirect check.

A browser page is modelled as a BrowserContext. On every page load the
embedding application creates (or looks up) the PageLoad for its context;
the pending authorization is taken out of session storage synchronously and
resolution runs exactly once, however many times its outcome is awaited.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from typing import Protocol

from tokenflow.config import DEFAULT_SETTINGS, ClientSettings
from tokenflow.models.errors import PendingAuthorizationError
from tokenflow.models.flow import PendingAuthorization
from tokenflow.models.redirect import RedirectEffects, RedirectOutcome
from tokenflow.models.tokens import AuthorizationResult
from tokenflow.services.redirect import RedirectResolver
from tokenflow.services.storage import PendingAuthorizationStore, SessionStorage
from tokenflow.services.tokens import OAuth2TokenEndpoint

logger = logging.getLogger(__name__)


class BrowserContext(Protocol):
    """The parts of a browser window the client needs."""

    @property
    def current_url(self) -> str:
        """Full URL of the current page, query and fragment included."""
        ...

    @property
    def session_storage(self) -> SessionStorage: ...

    def navigate(self, url: str) -> None:
        """Leave the page for url. The current script instance is abandoned."""
        ...

    def replace_url(self, url: str) -> None:
        """Rewrite the visible URL and history entry without reloading."""
        ...


class PageLoad:
    """Runs redirect resolution once for one page load.

    Usage:
        page = on_page_load(browser)
        result = await page.received_tokens()
        if result is not None:
            manager = TokenManager.from_result(result, browser)
    """

    def __init__(
        self,
        browser: BrowserContext,
        settings: ClientSettings = DEFAULT_SETTINGS,
        token_endpoint: OAuth2TokenEndpoint | None = None,
    ):
        self._browser = browser
        self._url = browser.current_url
        self._store = PendingAuthorizationStore(
            browser.session_storage, key=settings.storage_key
        )
        self._owns_endpoint = token_endpoint is None
        self._token_endpoint = token_endpoint or OAuth2TokenEndpoint(settings)
        self._resolver = RedirectResolver(self._token_endpoint)

        self._taken = False
        self._pending: PendingAuthorization | None = None
        self._take_error: PendingAuthorizationError | None = None
        self._task: asyncio.Task[RedirectOutcome] | None = None

    def is_redirect(self) -> bool:
        """Whether this load carries a pending authorization to complete."""
        self._take()
        return self._pending is not None or self._take_error is not None

    def start(self) -> asyncio.Task[RedirectOutcome] | None:
        """Take the pending slot and schedule resolution once.

        The slot is always taken immediately. Without a running event loop
        no task can be created yet; the first outcome() call schedules it.

        Returns:
            The resolution task, or None when no loop is running
        """
        self._take()
        if self._task is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return None
            self._task = loop.create_task(self._run())
        return self._task

    async def outcome(self) -> RedirectOutcome:
        """Await the single resolution outcome."""
        return await asyncio.shield(self.start())

    async def received_tokens(self) -> AuthorizationResult | None:
        """Await the tokens obtained by this load.

        Returns:
            The AuthorizationResult, or None when the load was not a redirect

        Raises:
            OAuth2Error: The failure that ended resolution
        """
        outcome = await self.outcome()
        return outcome.unwrap()

    def _take(self) -> None:
        # Read and delete synchronously, before anything can suspend
        if self._taken:
            return
        self._taken = True
        try:
            self._pending = self._store.take_and_clear()
        except PendingAuthorizationError as e:
            self._take_error = e

    async def _run(self) -> RedirectOutcome:
        try:
            if self._take_error is not None:
                outcome = self._resolver.fail(self._url, self._take_error)
            else:
                outcome = await self._resolver.resolve(self._url, self._pending)
        except Exception:
            if self._pending is not None:
                self._apply(RedirectResolver.scrub_effects(self._url))
            raise
        finally:
            if self._owns_endpoint:
                await self._token_endpoint.close()

        self._apply(outcome.effects)
        return outcome

    def _apply(self, effects: RedirectEffects) -> None:
        if effects.clear_pending:
            self._store.clear()
        if effects.rewrite_url is not None:
            logger.debug("Scrubbing authorization parameters from page URL")
            self._browser.replace_url(effects.rewrite_url)


_page_loads: weakref.WeakKeyDictionary[BrowserContext, PageLoad] = (
    weakref.WeakKeyDictionary()
)


def on_page_load(
    browser: BrowserContext, settings: ClientSettings = DEFAULT_SETTINGS
) -> PageLoad:
    """Return the PageLoad for browser, creating and starting it once.

    Safe to call before an event loop runs; the pending slot is still taken
    right away and resolution starts when the outcome is first awaited.
    """
    page_load = _page_loads.get(browser)
    if page_load is None:
        page_load = PageLoad(browser, settings)
        _page_loads[browser] = page_load
        page_load.start()
    return page_load
