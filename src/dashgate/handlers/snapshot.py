"""Route handlers for dashboard snapshots."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import structlog

from dashgate.errors import DashgateError, ErrorCode
from dashgate.models.routes import SnapshotInput
from dashgate.ratelimit import RouteClass

if TYPE_CHECKING:
    from dashgate.state import AppState


async def handle_create(body: Any, client_id: str, state: AppState) -> Any:
    """Handle POST /api/snapshot: freeze a dashboard into a shareable snapshot."""
    log = structlog.get_logger().bind(route="create_snapshot", client=client_id)

    state.rate_limiter.check(client_id, RouteClass.SNAPSHOT)

    try:
        validated = SnapshotInput.model_validate(body if isinstance(body, dict) else {})
    except ValueError as exc:
        raise DashgateError(
            code=ErrorCode.INVALID_INPUT,
            message="missing dashboardUid in body",
            status_code=400,
            details=str(exc),
        ) from exc

    # Checked before any upstream call: without a credential the dashboard
    # API would only answer 401, so fail fast with a configuration error.
    if not state.grafana.has_credential:
        log.warning("snapshot_credential_missing")
        raise DashgateError(
            code=ErrorCode.CREDENTIAL_MISSING,
            message="server missing dashboard API token; snapshot creation disabled",
            status_code=403,
        )

    uid = validated.dashboard_uid
    dashboard_body = await state.grafana.get_dashboard(uid)
    dashboard = dashboard_body.get("dashboard") if isinstance(dashboard_body, dict) else None
    if not dashboard:
        raise DashgateError(
            code=ErrorCode.DASHBOARD_NOT_FOUND,
            message="dashboard not found",
            status_code=404,
        )

    name = validated.name or f"snapshot-{uid}-{int(time.time() * 1000)}"
    result = await state.grafana.create_snapshot({"dashboard": dashboard, "name": name})
    log.info("snapshot_created", dashboard_uid=uid, name=name)
    return result


async def handle_get(key: str, state: AppState) -> Any:
    """Handle GET /api/snapshots/{key}."""
    return await state.grafana.get_snapshot(key)
