"""Pytest configuration and fixtures for docshub tests."""

import json

import httpx
import pytest

from docshub.models.repo import DocsHubConfig, RepoConfig
from docshub.registry import RepoRegistry


class FakePlatform:
    """
    Stand-in for a hosting platform API.

    Routes are keyed by (method, raw path) so percent-encoded segments are
    matched exactly as sent. A route registered with a query string (used for
    later pages) wins over the bare path. Unknown routes answer 404.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], tuple[int, object, dict]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, body=None, status: int = 200, headers: dict | None = None):
        self.routes[(method, path)] = (status, body, headers or {})
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        full_path = request.url.raw_path.decode()
        route = self.routes.get((request.method, full_path)) or self.routes.get(
            (request.method, full_path.split("?", 1)[0])
        )
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        status, body, headers = route
        if isinstance(body, str):
            return httpx.Response(status, text=body, headers=headers)
        return httpx.Response(status, json=body, headers=headers)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and r.url.raw_path.decode().split("?", 1)[0] == path
        ]

    def sent_json(self, method: str, path: str) -> dict:
        """Decoded body of the last matching request."""
        return json.loads(self.calls(method, path)[-1].content)


@pytest.fixture
def platform():
    return FakePlatform()


@pytest.fixture
def github_repo():
    return RepoConfig(
        name="handbook",
        type="github",
        url="https://github.com/acme/widgets.git",
        token="ghp_service",
    )


@pytest.fixture
def make_registry():
    def _make(*repos: RepoConfig) -> RepoRegistry:
        return RepoRegistry(config=DocsHubConfig(repos=list(repos)))
    return _make
