"""Integration test fixtures.

Provides the Starlette app wired to the shared ``app_state`` fixture and an
httpx client talking to it through ASGI, so no real server is started.
Upstream HTTP is mocked with the ``upstream`` respx router.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from dashgate.server import create_app

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

    from starlette.applications import Starlette

    from dashgate.state import AppState


def asgi_client(app: Starlette) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://dashgate.test",
    )


@pytest.fixture()
def app(app_state: AppState) -> Starlette:
    return create_app(state=app_state)


@pytest.fixture()
async def client(app: Starlette) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with asgi_client(app) as http_client:
        yield http_client


@pytest.fixture()
async def make_client() -> AsyncGenerator[Callable[[AppState], httpx.AsyncClient], None]:
    """Factory building an ASGI client for an app wired to a custom AppState."""
    clients: list[httpx.AsyncClient] = []

    def factory(state: AppState) -> httpx.AsyncClient:
        http_client = asgi_client(create_app(state=state))
        clients.append(http_client)
        return http_client

    yield factory
    for http_client in clients:
        await http_client.aclose()
