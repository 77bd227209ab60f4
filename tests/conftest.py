"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import httpx
import pytest

from tane.garden.gardener import Gardener
from tane.garden.repository import GardenRepository
from tane.provider.echo_agent import EchoResearchProvider
from tane.tools.web_search import WebSearchTool

SEARXNG_PAYLOAD = {
    "results": [
        {
            "title": "Rover",
            "url": "https://www.rover.com",
            "content": "Marketplace for pet sitters and dog walkers.",
        },
        {
            "title": "Wag!",
            "url": "https://wagwalking.com",
            "content": "On-demand dog walking app.",
        },
    ],
}


def searxng_transport(
    payload: object = SEARXNG_PAYLOAD,
    *,
    status_code: int = 200,
    requests: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """SearXNG stand-in answering every request with ``payload``."""

    def _handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, json=payload)

    return httpx.MockTransport(_handler)


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "garden.db"


@pytest.fixture()
def repository(db_path: Path) -> Iterator[GardenRepository]:
    repo = GardenRepository(db_path)
    repo.init_schema()
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture()
def search_tool() -> Iterator[WebSearchTool]:
    tool = WebSearchTool(base_url="http://searxng.test", transport=searxng_transport())
    try:
        yield tool
    finally:
        tool.close()


@pytest.fixture()
def echo_provider() -> EchoResearchProvider:
    return EchoResearchProvider()


@pytest.fixture()
def gardener(
    repository: GardenRepository,
    echo_provider: EchoResearchProvider,
    search_tool: WebSearchTool,
) -> Gardener:
    return Gardener(
        repository=repository,
        provider=echo_provider,
        tools=[search_tool.as_tool()],
    )


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Drop ambient TANE_* and provider key variables."""

    for name in list(os.environ):
        if name.startswith("TANE_") or name.endswith("_API_KEY") or name == "SEARXNG_URL":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TANE_AGENT_DIR", str(tmp_path / "agent"))


@pytest.fixture()
def make_search_tool() -> Iterator[Callable[..., WebSearchTool]]:
    """Factory for search tools backed by a canned SearXNG answer or handler."""

    created: list[WebSearchTool] = []

    def _make(
        payload: object = SEARXNG_PAYLOAD,
        *,
        status_code: int = 200,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
        requests: list[httpx.Request] | None = None,
    ) -> WebSearchTool:
        transport = (
            httpx.MockTransport(handler)
            if handler is not None
            else searxng_transport(payload, status_code=status_code, requests=requests)
        )
        tool = WebSearchTool(base_url="http://searxng.test", transport=transport)
        created.append(tool)
        return tool

    yield _make
    for tool in created:
        tool.close()
