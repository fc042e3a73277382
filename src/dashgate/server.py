"""HTTP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Create AppState via the Starlette lifespan context manager
- Register routes and map DashgateError onto JSON error responses
- Start uvicorn
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sys
from contextlib import asynccontextmanager, suppress
from pathlib import Path
from typing import TYPE_CHECKING

import aiosqlite
import structlog
from starlette.applications import Starlette
from starlette.background import BackgroundTask
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Mount, Route
from starlette.staticfiles import StaticFiles

import dashgate.handlers.proxy as t_proxy
import dashgate.handlers.render_panel as t_render
import dashgate.handlers.resolve as t_resolve
import dashgate.handlers.snapshot as t_snapshot
from dashgate import __version__
from dashgate.cache import NullRenderStore, RedisRenderStore, RenderCache, SqliteRenderStore
from dashgate.config import Settings
from dashgate.credentials import resolve_grafana_token, resolve_redis_url
from dashgate.errors import DashgateError, ErrorCode
from dashgate.ratelimit import RateLimiter
from dashgate.resolver import Resolver
from dashgate.schedulers import run_cache_cleanup_scheduler
from dashgate.state import AppState
from dashgate.transport import RequestContextMiddleware, run_http_server
from dashgate.upstream import (
    GrafanaAPI,
    PageProbe,
    PrometheusAPI,
    build_grafana_client,
    build_probe_client,
    build_prometheus_client,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from starlette.requests import Request

    from dashgate.handlers.render_panel import RenderOutcome
    from dashgate.protocols import RenderStoreProtocol

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# State construction and lifespan
# ---------------------------------------------------------------------------


async def open_render_store(settings: Settings) -> RenderStoreProtocol:
    """Open the configured render-cache backend."""
    backend = settings.cache.backend
    if backend == "redis":
        return RedisRenderStore.from_url(resolve_redis_url(settings))
    if backend == "sqlite":
        db_path = Path(settings.cache.db_path).expanduser()
        db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(db_path))
        store = SqliteRenderStore(db)
        await store.init_db()
        return store
    return NullRenderStore()


async def build_state(settings: Settings) -> AppState:
    """Create every shared resource. The caller owns ``AppState.aclose``."""
    token = resolve_grafana_token(settings)
    if not token:
        log.warning(
            "grafana_token_missing",
            message="API calls will fail if the dashboard backend requires auth",
        )

    grafana_client = build_grafana_client(settings, token)
    probe_client = build_probe_client(settings)
    prometheus_client = build_prometheus_client(settings)

    grafana = GrafanaAPI(grafana_client, has_credential=bool(token))
    store = await open_render_store(settings)

    return AppState(
        settings=settings,
        grafana=grafana,
        prometheus=PrometheusAPI(prometheus_client),
        resolver=Resolver(grafana, PageProbe(probe_client)),
        render_cache=RenderCache(store, settings.cache.ttl_seconds),
        rate_limiter=RateLimiter.from_settings(settings.rate_limit),
        http_clients=[grafana_client, probe_client, prometheus_client],
    )


@asynccontextmanager
async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings: Settings = app.state.settings

    log.info("server_starting", version=__version__, cache_backend=settings.cache.backend)

    state = getattr(app.state, "dashgate", None)
    owns_state = state is None
    if state is None:
        state = await build_state(settings)
        app.state.dashgate = state

    cleanup_task: asyncio.Task[None] | None = None
    if settings.cache.backend == "sqlite":
        cleanup_task = asyncio.create_task(run_cache_cleanup_scheduler(state))

    log.info("server_started", version=__version__)
    try:
        yield
    finally:
        if cleanup_task is not None:
            cleanup_task.cancel()
            with suppress(asyncio.CancelledError):
                await cleanup_task
        if owns_state:
            await state.aclose()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _state(request: Request) -> AppState:
    return request.app.state.dashgate


def _client_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _error_response(error: DashgateError) -> JSONResponse:
    headers = None
    if error.code == ErrorCode.RATE_LIMITED and isinstance(error.details, dict):
        headers = {"Retry-After": str(error.details["retry_after"])}
    return JSONResponse(error.to_dict(), status_code=error.status_code, headers=headers)


def _route(
    name: str,
) -> Callable[[Callable[[Request], Awaitable[Response]]], Callable[[Request], Awaitable[Response]]]:
    """Wrap a route so DashgateError becomes a JSON error envelope."""

    def decorator(
        func: Callable[[Request], Awaitable[Response]],
    ) -> Callable[[Request], Awaitable[Response]]:
        @functools.wraps(func)
        async def wrapper(request: Request) -> Response:
            try:
                return await func(request)
            except DashgateError as exc:
                log.warning(
                    "route_error",
                    route=name,
                    code=exc.code,
                    message=exc.message,
                    status_code=exc.status_code,
                )
                return _error_response(exc)
            except Exception:
                log.error("route_unexpected_error", route=name, exc_info=True)
                raise

        return wrapper

    return decorator


async def health(request: Request) -> Response:
    return JSONResponse({"ok": True})


@_route("dashboard")
async def dashboard(request: Request) -> Response:
    uid = request.path_params["uid"]
    return JSONResponse(await t_proxy.get_dashboard(uid, _state(request)))


@_route("search")
async def search(request: Request) -> Response:
    return JSONResponse(await t_proxy.search(request.query_params, _state(request)))


@_route("resolve_public")
async def resolve_public(request: Request) -> Response:
    public_uid = request.path_params["public_uid"]
    return JSONResponse(await t_resolve.handle_public(public_uid, _state(request)))


@_route("resolve_goto")
async def resolve_goto(request: Request) -> Response:
    key = request.path_params["key"]
    return JSONResponse(await t_resolve.handle_goto(key, _state(request)))


@_route("query")
async def query(request: Request) -> Response:
    return JSONResponse(await t_proxy.instant_query(request.query_params, _state(request)))


@_route("query_range")
async def query_range(request: Request) -> Response:
    return JSONResponse(await t_proxy.range_query(request.query_params, _state(request)))


@_route("create_snapshot")
async def create_snapshot(request: Request) -> Response:
    try:
        body = await request.json()
    except ValueError:
        body = None
    result = await t_snapshot.handle_create(body, _client_id(request), _state(request))
    return JSONResponse(result)


@_route("get_snapshot")
async def get_snapshot(request: Request) -> Response:
    key = request.path_params["key"]
    return JSONResponse(await t_snapshot.handle_get(key, _state(request)))


async def _populate_render_cache(state: AppState, outcome: RenderOutcome) -> None:
    # Runs after the response has been sent; the write itself is detached
    state.render_cache.set_async(outcome.cache_key, outcome.content)


@_route("render_panel")
async def render_panel(request: Request) -> Response:
    state = _state(request)
    outcome = await t_render.handle(request.query_params, _client_id(request), state)
    background = None
    if not outcome.cached:
        background = BackgroundTask(_populate_render_cache, state, outcome)
    return Response(outcome.content, media_type="image/png", background=background)


def _routes(settings: Settings) -> list[Route | Mount]:
    routes: list[Route | Mount] = [
        Route("/health", health),
        Route("/api/dashboard/{uid}", dashboard),
        Route("/api/search", search),
        Route("/api/public/{public_uid}", resolve_public),
        Route("/api/resolve-goto/{key}", resolve_goto),
        Route("/api/query", query),
        Route("/api/query_range", query_range),
        Route("/api/snapshot", create_snapshot, methods=["POST"]),
        Route("/api/snapshots/{key}", get_snapshot),
        Route("/api/render-panel", render_panel),
    ]
    static_dir = settings.server.static_dir
    if static_dir and Path(static_dir).is_dir():
        # Mounted last so API routes always win
        routes.append(Mount("/", StaticFiles(directory=static_dir, html=True), name="static"))
    elif static_dir:
        log.warning("static_dir_missing", static_dir=static_dir)
    return routes


def create_app(settings: Settings | None = None, *, state: AppState | None = None) -> Starlette:
    """Build the Starlette application.

    When ``state`` is given it is used as-is and left open on shutdown;
    otherwise the lifespan builds and owns it.
    """
    settings = settings or (state.settings if state is not None else Settings())
    app = Starlette(
        routes=_routes(settings),
        middleware=[
            Middleware(RequestContextMiddleware),
            Middleware(
                CORSMiddleware,
                allow_origins=settings.server.cors_origins,
                allow_methods=["*"],
                allow_headers=["*"],
            ),
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    if state is not None:
        app.state.dashgate = state
    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    _setup_logging(settings)
    run_http_server(create_app(settings), settings)


if __name__ == "__main__":
    main()
