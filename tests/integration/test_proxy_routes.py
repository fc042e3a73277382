"""Integration tests for the pass-through routes and /health."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    import respx

_G = "http://grafana.test"
_P = "http://prometheus.test"


async def test_health(client: httpx.AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


async def test_request_id_header(client: httpx.AsyncClient) -> None:
    response = await client.get("/health", headers={"X-Request-ID": "req-42"})

    assert response.headers["x-request-id"] == "req-42"


class TestDashboardProxy:
    async def test_dashboard_passthrough(
        self, client: httpx.AsyncClient, upstream: respx.MockRouter
    ) -> None:
        body = {"dashboard": {"uid": "abc"}, "meta": {"slug": "cpu"}}
        route = upstream.get(f"{_G}/api/dashboards/uid/abc").mock(
            return_value=httpx.Response(200, json=body)
        )

        response = await client.get("/api/dashboard/abc")

        assert response.status_code == 200
        assert response.json() == body
        assert route.calls.last.request.headers["authorization"] == "Bearer test-token"

    async def test_dashboard_upstream_error(
        self, client: httpx.AsyncClient, upstream: respx.MockRouter
    ) -> None:
        upstream.get(f"{_G}/api/dashboards/uid/nope").mock(
            return_value=httpx.Response(404, json={"message": "Dashboard not found"})
        )

        response = await client.get("/api/dashboard/nope")

        assert response.status_code == 404
        assert response.json()["error"]["details"] == {"message": "Dashboard not found"}

    async def test_dashboard_redirect_is_followed(
        self, client: httpx.AsyncClient, upstream: respx.MockRouter
    ) -> None:
        upstream.get(f"{_G}/api/dashboards/uid/abc").mock(
            return_value=httpx.Response(301, headers={"Location": "/api/dashboards/uid/abc2"})
        )
        final = upstream.get(f"{_G}/api/dashboards/uid/abc2").mock(
            return_value=httpx.Response(200, json={"dashboard": {"uid": "abc2"}})
        )

        response = await client.get("/api/dashboard/abc")

        assert response.status_code == 200
        assert response.json() == {"dashboard": {"uid": "abc2"}}
        assert final.calls.last.request.headers["authorization"] == "Bearer test-token"

    async def test_dashboard_timeout_is_504(
        self, client: httpx.AsyncClient, upstream: respx.MockRouter
    ) -> None:
        upstream.get(f"{_G}/api/dashboards/uid/abc").mock(
            side_effect=httpx.ReadTimeout("timed out")
        )

        response = await client.get("/api/dashboard/abc")

        assert response.status_code == 504
        assert response.json()["error"]["code"] == "UPSTREAM_TIMEOUT"

    async def test_search(self, client: httpx.AsyncClient, upstream: respx.MockRouter) -> None:
        route = upstream.get(f"{_G}/api/search").mock(
            return_value=httpx.Response(200, json=[{"uid": "abc", "title": "CPU"}])
        )

        response = await client.get("/api/search", params={"q": "cpu"})

        assert response.json() == [{"uid": "abc", "title": "CPU"}]
        params = route.calls.last.request.url.params
        assert params["query"] == "cpu"
        assert params["type"] == "dash-db"

    async def test_search_without_q_uses_empty_query(
        self, client: httpx.AsyncClient, upstream: respx.MockRouter
    ) -> None:
        route = upstream.get(f"{_G}/api/search").mock(return_value=httpx.Response(200, json=[]))

        response = await client.get("/api/search")

        assert response.status_code == 200
        assert route.calls.last.request.url.params["query"] == ""


class TestMetricsProxy:
    async def test_instant_query(self, client: httpx.AsyncClient, upstream: respx.MockRouter) -> None:
        body = {"status": "success", "data": {"resultType": "vector", "result": []}}
        route = upstream.get(f"{_P}/api/v1/query").mock(return_value=httpx.Response(200, json=body))

        response = await client.get("/api/query", params={"q": "up"})

        assert response.json() == body
        assert route.calls.last.request.url.params["query"] == "up"
        assert "authorization" not in route.calls.last.request.headers

    async def test_missing_q_is_400(
        self, client: httpx.AsyncClient, upstream: respx.MockRouter
    ) -> None:
        route = upstream.get(f"{_P}/api/v1/query").mock(return_value=httpx.Response(200, json={}))

        response = await client.get("/api/query")

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "missing query param q"
        assert route.call_count == 0

    async def test_range_query_forwards_window(
        self, client: httpx.AsyncClient, upstream: respx.MockRouter
    ) -> None:
        route = upstream.get(f"{_P}/api/v1/query_range").mock(
            return_value=httpx.Response(200, json={"status": "success"})
        )

        await client.get(
            "/api/query_range", params={"q": "up", "start": "1", "end": "2", "step": "15s"}
        )

        params = route.calls.last.request.url.params
        assert dict(params) == {"query": "up", "start": "1", "end": "2", "step": "15s"}

    async def test_range_query_omits_missing_params(
        self, client: httpx.AsyncClient, upstream: respx.MockRouter
    ) -> None:
        route = upstream.get(f"{_P}/api/v1/query_range").mock(
            return_value=httpx.Response(200, json={"status": "success"})
        )

        await client.get("/api/query_range", params={"q": "up"})

        assert dict(route.calls.last.request.url.params) == {"query": "up"}

    async def test_prometheus_error_passthrough(
        self, client: httpx.AsyncClient, upstream: respx.MockRouter
    ) -> None:
        upstream.get(f"{_P}/api/v1/query").mock(
            return_value=httpx.Response(
                400, json={"status": "error", "errorType": "bad_data", "error": "parse error"}
            )
        )

        response = await client.get("/api/query", params={"q": "up{"})

        assert response.status_code == 400
        assert response.json()["error"]["details"]["errorType"] == "bad_data"
