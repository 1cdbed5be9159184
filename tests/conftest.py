from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from tokenflow.services.storage import InMemorySessionStorage


class FakeBrowser:
    """Browser window stand-in recording navigations and URL rewrites."""

    def __init__(self, url: str = "https://app.example/oauth/page"):
        self._url = url
        self.session_storage = InMemorySessionStorage()
        self.navigations: list[str] = []
        self.replacements: list[str] = []

    @property
    def current_url(self) -> str:
        return self._url

    def navigate(self, url: str) -> None:
        self.navigations.append(url)

    def replace_url(self, url: str) -> None:
        self.replacements.append(url)
        self._url = url

    def load(self, url: str) -> "FakeBrowser":
        """Simulate a new page load in the same tab session."""
        page = FakeBrowser(url)
        page.session_storage = self.session_storage
        return page


@pytest.fixture
def browser() -> FakeBrowser:
    return FakeBrowser()


@pytest.fixture
def make_response():
    def _make(status_code: int = 200, payload: Any = None) -> MagicMock:
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = payload if payload is not None else {}
        return response

    return _make


@pytest.fixture
def http_client() -> AsyncMock:
    return AsyncMock()
