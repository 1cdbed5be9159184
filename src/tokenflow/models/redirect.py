"""Outcome of inspecting one page load for a returning authorization."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from tokenflow.models.errors import OAuth2Error
from tokenflow.models.tokens import AuthorizationResult


class ResolverState(str, Enum):
    IDLE = "idle"
    RESOLVING_PKCE_ACCESS = "resolving-pkce-access"
    RESOLVING_PKCE_REFRESH = "resolving-pkce-refresh"
    RESOLVING_IMPLICIT = "resolving-implicit"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True)
class RedirectEffects:
    """Side effects the page must apply once resolution finishes.

    Attributes:
        clear_pending: Delete the pending authorization slot
        rewrite_url: Replace the visible URL with this one (no reload), or
            None to leave it alone
    """

    clear_pending: bool = False
    rewrite_url: str | None = None


@dataclass(frozen=True)
class RedirectOutcome:
    state: ResolverState
    result: AuthorizationResult | None = None
    error: OAuth2Error | None = None
    effects: RedirectEffects = RedirectEffects()

    @property
    def is_idle(self) -> bool:
        return self.state is ResolverState.IDLE

    def unwrap(self) -> AuthorizationResult | None:
        """Return the result, raising the failure if resolution failed."""
        if self.error is not None:
            raise self.error
        return self.result
