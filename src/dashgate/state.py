"""Application state container.

AppState is created once at server startup (inside the Starlette lifespan
context manager) and handed to every route handler. It owns every shared
resource: the upstream clients, the cache backend connection and the rate
limiter counters. ``aclose`` is the single shutdown path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from dashgate.cache import RenderCache
    from dashgate.config import Settings
    from dashgate.ratelimit import RateLimiter
    from dashgate.resolver import Resolver
    from dashgate.upstream import GrafanaAPI, PrometheusAPI


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every route handler."""

    settings: Settings
    grafana: GrafanaAPI
    prometheus: PrometheusAPI
    resolver: Resolver
    render_cache: RenderCache
    rate_limiter: RateLimiter

    # Owned clients, closed on shutdown
    http_clients: list[httpx.AsyncClient] = field(default_factory=list)

    async def aclose(self) -> None:
        await self.render_cache.aclose()
        for client in self.http_clients:
            await client.aclose()
