"""Shared test fixtures for the dashgate test suite."""

from __future__ import annotations

from typing import TYPE_CHECKING

import aiosqlite
import pytest
import respx

from dashgate.cache import RenderCache, SqliteRenderStore
from dashgate.config import Settings
from dashgate.ratelimit import RateLimiter
from dashgate.resolver import Resolver
from dashgate.state import AppState
from dashgate.upstream import (
    GrafanaAPI,
    PageProbe,
    PrometheusAPI,
    build_grafana_client,
    build_probe_client,
    build_prometheus_client,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable, Iterator
    from pathlib import Path

    from dashgate.protocols import RenderStoreProtocol

GRAFANA_URL = "http://grafana.test"
PROMETHEUS_URL = "http://prometheus.test"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00fake-image-data\xff" * 4


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at fake upstreams, isolated from any local config."""
    return Settings(
        grafana={
            "url": GRAFANA_URL,
            "token": "test-token",
            "token_file": str(tmp_path / "no-such-token"),
        },
        prometheus={"url": PROMETHEUS_URL},
        cache={
            "backend": "sqlite",
            "ttl_seconds": 300,
            "redis_password_file": str(tmp_path / "no-such-password"),
        },
    )


@pytest.fixture()
async def sqlite_store() -> AsyncGenerator[SqliteRenderStore, None]:
    """In-memory SQLite render store."""
    db = await aiosqlite.connect(":memory:")
    store = SqliteRenderStore(db)
    await store.init_db()
    yield store
    await db.close()


@pytest.fixture()
def upstream() -> Iterator[respx.MockRouter]:
    """respx router intercepting every outbound httpx call."""
    with respx.mock(assert_all_called=False) as router:
        yield router


async def _make_state(
    settings: Settings,
    store: RenderStoreProtocol,
    *,
    token: str | None = None,
) -> AppState:
    """Wire an AppState the same way the lifespan does, with an injected store."""
    token = settings.grafana.token if token is None else token
    grafana_client = build_grafana_client(settings, token)
    probe_client = build_probe_client(settings)
    prometheus_client = build_prometheus_client(settings)
    grafana = GrafanaAPI(grafana_client, has_credential=bool(token))
    return AppState(
        settings=settings,
        grafana=grafana,
        prometheus=PrometheusAPI(prometheus_client),
        resolver=Resolver(grafana, PageProbe(probe_client)),
        render_cache=RenderCache(store, settings.cache.ttl_seconds),
        rate_limiter=RateLimiter.from_settings(settings.rate_limit),
        http_clients=[grafana_client, probe_client, prometheus_client],
    )


@pytest.fixture()
async def app_state(
    settings: Settings, sqlite_store: SqliteRenderStore
) -> AsyncGenerator[AppState, None]:
    """Fully wired AppState backed by the in-memory SQLite store."""
    state = await _make_state(settings, sqlite_store)
    yield state
    await state.render_cache.drain()
    for client in state.http_clients:
        await client.aclose()


@pytest.fixture()
async def make_state() -> AsyncGenerator[Callable[..., Awaitable[AppState]], None]:
    """Factory for AppState instances with a custom store or token.

    Clients created through the factory are closed at teardown.
    """
    created: list[AppState] = []

    async def factory(
        settings: Settings, store: RenderStoreProtocol, *, token: str | None = None
    ) -> AppState:
        state = await _make_state(settings, store, token=token)
        created.append(state)
        return state

    yield factory
    for state in created:
        await state.render_cache.drain()
        for client in state.http_clients:
            await client.aclose()


@pytest.fixture()
def png_bytes() -> bytes:
    return PNG_BYTES
