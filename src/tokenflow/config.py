"""Client configuration.

All settings are explicit constructor values; nothing is read from the
environment.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from tokenflow.primitives.requests import DEFAULT_POLICY, RequestPolicy


@dataclass(frozen=True)
class ClientSettings:
    """Tunable settings shared by the token manager and page-load resolver."""

    # HTTP request timeout in seconds, overridable per call
    timeout: float = 30.0
    # Session storage key holding the single pending authorization
    storage_key: str = "OAuth2"
    # Authorization parameter requesting a refresh token (offline access)
    offline_access_parameter: tuple[str, str] = ("token_access_type", "offline")
    request_policy: RequestPolicy = field(default=DEFAULT_POLICY)

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if not self.storage_key:
            raise ValueError("storage_key must not be empty")


DEFAULT_SETTINGS = ClientSettings()
