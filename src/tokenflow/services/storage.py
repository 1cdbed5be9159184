"""Session-scoped storage of the single pending authorization attempt.

The attempt is written just before navigating to the authorization server
and read back exactly once when the browser returns. The backing store must
be scoped to one tab session so an abandoned attempt never outlives it.
"""

from __future__ import annotations

import logging
from typing import Protocol

from pydantic import ValidationError

from tokenflow.models.errors import PendingAuthorizationError
from tokenflow.models.flow import PendingAuthorization

logger = logging.getLogger(__name__)


class SessionStorage(Protocol):
    """Tab-session key/value store (the shape of window.sessionStorage)."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class InMemorySessionStorage:
    """SessionStorage living as long as the object (one tab session)."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._items

    def __len__(self) -> int:
        return len(self._items)


class PendingAuthorizationStore:
    """Single-slot store for the in-flight PendingAuthorization.

    Saving always overwrites: the last flow started in a tab wins.
    """

    def __init__(self, storage: SessionStorage, key: str = "OAuth2"):
        self._storage = storage
        self.key = key

    def save(self, attempt: PendingAuthorization) -> None:
        """Serialize and store the attempt, replacing any previous one."""
        if self._storage.get_item(self.key) is not None:
            logger.debug("Overwriting stale pending authorization")
        self._storage.set_item(self.key, attempt.to_json())

    def take_and_clear(self) -> PendingAuthorization | None:
        """Read and delete the slot in one step.

        Returns:
            The stored attempt, or None when no attempt is pending

        Raises:
            PendingAuthorizationError: If the slot held unreadable data; the
                slot is cleared regardless
        """
        raw = self._storage.get_item(self.key)
        self._storage.remove_item(self.key)

        if raw is None:
            return None

        try:
            return PendingAuthorization.model_validate_json(raw)
        except ValidationError as e:
            raise PendingAuthorizationError(
                f"Stored pending authorization is malformed: {e}"
            ) from e

    def clear(self) -> None:
        self._storage.remove_item(self.key)
