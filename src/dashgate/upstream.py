"""Upstream HTTP adapters.

All network I/O towards the dashboarding and metrics backends goes through
the adapters in this module. Each adapter receives an httpx.AsyncClient via
constructor injection; the lifespan owns the client lifecycle.

``GrafanaAPI`` and ``PrometheusAPI`` raise ``DashgateError`` carrying the
upstream status and body on any non-2xx response. ``PageProbe`` returns raw
responses: redirects and error pages are signals for the resolver, not
failures.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx
import structlog

from dashgate import __version__
from dashgate.errors import DashgateError, ErrorCode

if TYPE_CHECKING:
    from dashgate.config import Settings

log = structlog.get_logger()

_USER_AGENT = f"dashgate/{__version__}"


def build_grafana_client(settings: Settings, token: str) -> httpx.AsyncClient:
    """Create the authenticated dashboard-API client. Called once at startup.

    Follows redirects; httpx drops the bearer header on cross-origin hops.
    """
    headers = {"User-Agent": _USER_AGENT}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return httpx.AsyncClient(
        base_url=settings.grafana.url,
        follow_redirects=True,
        timeout=httpx.Timeout(settings.grafana.timeout_seconds),
        headers=headers,
    )


def build_probe_client(settings: Settings) -> httpx.AsyncClient:
    """Create the unauthenticated client used for short-link and page probes.

    Never carries the service credential: some deployments answer 401 to
    authenticated requests for public short-link paths.
    """
    return httpx.AsyncClient(
        base_url=settings.grafana.url,
        follow_redirects=False,
        timeout=httpx.Timeout(settings.grafana.timeout_seconds),
        headers={"User-Agent": _USER_AGENT},
    )


def build_prometheus_client(settings: Settings) -> httpx.AsyncClient:
    """Create the unauthenticated metrics-query client. Called once at startup."""
    return httpx.AsyncClient(
        base_url=settings.prometheus.url,
        timeout=httpx.Timeout(settings.prometheus.timeout_seconds),
        headers={"User-Agent": _USER_AGENT},
    )


def _segment(value: str) -> str:
    return quote(value, safe="")


def response_body(response: httpx.Response) -> Any:
    """Return the decoded JSON body, falling back to text."""
    try:
        return response.json()
    except ValueError:
        return response.text


async def _send(
    client: httpx.AsyncClient,
    method: str,
    path: str,
    *,
    upstream: str,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request and translate transport failures and non-2xx responses."""
    try:
        response = await client.request(method, path, **kwargs)
    except httpx.TimeoutException as exc:
        log.warning("upstream_timeout", upstream=upstream, path=path)
        raise DashgateError(
            code=ErrorCode.UPSTREAM_TIMEOUT,
            message=f"Timed out calling {upstream} at {path}",
            status_code=504,
        ) from exc
    except httpx.HTTPError as exc:
        log.warning("upstream_unavailable", upstream=upstream, path=path, error=str(exc))
        raise DashgateError(
            code=ErrorCode.UPSTREAM_UNAVAILABLE,
            message=f"Network error calling {upstream} at {path}: {exc}",
            status_code=502,
        ) from exc

    if not response.is_success:
        log.warning(
            "upstream_error",
            upstream=upstream,
            path=path,
            status_code=response.status_code,
        )
        raise DashgateError(
            code=ErrorCode.UPSTREAM_ERROR,
            message=f"HTTP {response.status_code} from {upstream} at {path}",
            status_code=response.status_code,
            details=response_body(response),
        )
    return response


class GrafanaAPI:
    """Authenticated client for the dashboard API and panel renderer."""

    def __init__(self, client: httpx.AsyncClient, *, has_credential: bool) -> None:
        self._client = client
        self.has_credential = has_credential

    async def _get_json(self, path: str, **kwargs: Any) -> Any:
        response = await _send(self._client, "GET", path, upstream="grafana", **kwargs)
        return response_body(response)

    async def get_dashboard(self, uid: str) -> Any:
        return await self._get_json(f"/api/dashboards/uid/{_segment(uid)}")

    async def search_dashboards(self, query: str) -> Any:
        return await self._get_json("/api/search", params={"query": query, "type": "dash-db"})

    async def get_public_dashboard(self, token: str) -> Any:
        return await self._get_json(f"/api/public-dashboards/{_segment(token)}")

    async def get_snapshot(self, key: str) -> Any:
        return await self._get_json(f"/api/snapshots/{_segment(key)}")

    async def create_snapshot(self, payload: dict) -> Any:
        response = await _send(
            self._client, "POST", "/api/snapshots", upstream="grafana", json=payload
        )
        return response_body(response)

    async def render_panel(self, uid: str, slug: str, params: dict[str, str]) -> bytes:
        """Render a single panel through the image renderer. Returns raw image bytes."""
        path = f"/render/d-solo/{_segment(uid)}/{_segment(slug)}"
        response = await _send(self._client, "GET", path, upstream="grafana", params=params)
        return response.content


class PrometheusAPI:
    """Unauthenticated client for the metrics-query API."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def query(self, query: str) -> Any:
        response = await _send(
            self._client,
            "GET",
            "/api/v1/query",
            upstream="prometheus",
            params={"query": query},
        )
        return response_body(response)

    async def query_range(
        self,
        query: str,
        *,
        start: str | None = None,
        end: str | None = None,
        step: str | None = None,
    ) -> Any:
        params = {"query": query, "start": start, "end": end, "step": step}
        response = await _send(
            self._client,
            "GET",
            "/api/v1/query_range",
            upstream="prometheus",
            params={k: v for k, v in params.items() if v is not None},
        )
        return response_body(response)


class PageProbe:
    """Unauthenticated raw access to dashboard short-link and public pages.

    Transport errors (including timeouts) propagate as ``httpx.HTTPError``.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @staticmethod
    def goto_path(key: str) -> str:
        return f"/goto/{_segment(key)}"

    @staticmethod
    def public_dashboard_path(token: str) -> str:
        return f"/public-dashboards/{_segment(token)}"

    async def probe_redirect(self, path: str) -> httpx.Response:
        """GET ``path`` without following redirects."""
        return await self._client.get(path, follow_redirects=False)

    async def fetch_page(self, path: str) -> httpx.Response:
        """GET ``path`` following redirects to the final page."""
        return await self._client.get(path, follow_redirects=True)
