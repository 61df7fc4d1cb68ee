import json
from collections.abc import Callable
from http import HTTPStatus
from typing import Any

import httpx

from iplocate.clients.base import BaseProviderClient
from iplocate.clients.template import ProviderTemplate
from iplocate.models.common import CanonicalLocation
from iplocate.settings import Settings


class MockResponse:
    def __init__(
        self,
        status_code: int = HTTPStatus.OK,
        payload: Any = None,
        text: str | None = None,
        content_type: str | None = "application/json; charset=utf-8",
    ) -> None:
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload if payload is not None else {})
        self.headers = {"content-type": content_type} if content_type else {}


class MockAsyncClient:
    """Minimal async context-manager mock for httpx.AsyncClient.

    Every requested URL is appended to `requested_urls` so tests can check what was built.
    """

    def __init__(self, response: MockResponse, requested_urls: list[str] | None = None) -> None:
        self._response = response
        self.requested_urls = requested_urls if requested_urls is not None else []

    async def __aenter__(self) -> "MockAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def get(self, url: str, **kwargs: Any) -> MockResponse:
        self.requested_urls.append(url)
        return self._response


class FailingAsyncClient:
    """Async client that raises a RequestError on enter to simulate network failure."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        pass

    async def __aenter__(self) -> "FailingAsyncClient":
        request = httpx.Request("GET", "http://provider.invalid/")
        raise httpx.ConnectError("Network failure", request=request)

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None


def make_fake_async_client(
    response: MockResponse, requested_urls: list[str] | None = None
) -> Callable[..., MockAsyncClient]:
    """Factory for a fake httpx.AsyncClient returning a fixed response."""

    def _fake_client(*args: Any, **kwargs: Any) -> MockAsyncClient:
        return MockAsyncClient(response, requested_urls)

    return _fake_client


def make_settings(**overrides: Any) -> Settings:
    """Settings isolated from the environment and any `.env` file."""
    values: dict[str, Any] = {
        "providers": {},
        "cache_hold": True,
        "save_statistics": True,
        "restrict_api": False,
        "randomize_providers": False,
        "behavior": {"time": 60},
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class StubClient(BaseProviderClient):
    """Provider client answering with `answer` (a location, or an exception to raise) without any network access."""

    name = "Stub"
    template = ProviderTemplate(url_pattern="stub://{ip}")

    def __init__(self, answer: CanonicalLocation | Exception) -> None:
        super().__init__()
        self.answer = answer
        self.calls: list[str] = []

    async def lookup(self, ip: str, request_args: dict[str, Any] | None = None) -> CanonicalLocation:
        self.calls.append(ip)
        if isinstance(self.answer, Exception):
            raise self.answer
        return self.answer
