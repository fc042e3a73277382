"""HTTP transport: request-context middleware and the uvicorn runner."""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.datastructures import Headers, MutableHeaders

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

    from dashgate.config import Settings

log = structlog.get_logger()

REQUEST_ID_HEADER = "x-request-id"


class RequestContextMiddleware:
    """Pure ASGI middleware binding per-request logging context.

    Binds ``request_id``, ``method``, ``path`` and ``client`` into structlog
    contextvars for the lifetime of the request, echoes the request id back
    in the ``X-Request-ID`` response header and logs one ``request_complete``
    line per request.

    Implemented as pure ASGI (not BaseHTTPMiddleware) so that response
    bodies are never buffered and background tasks keep their context.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        request_id = headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        client = scope.get("client")

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=scope.get("method"),
            path=scope.get("path"),
            client=client[0] if client else None,
        )

        status_code = 500
        started = time.perf_counter()

        async def send_with_request_id(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            log.info(
                "request_complete",
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 1),
            )
            structlog.contextvars.clear_contextvars()


def run_http_server(app: ASGIApp, settings: Settings) -> None:
    """Serve ``app`` with uvicorn until interrupted."""
    log.bind(transport="http").info(
        "http_server_starting",
        host=settings.server.host,
        port=settings.server.port,
        grafana=settings.grafana.url,
        prometheus=settings.prometheus.url,
    )
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )
