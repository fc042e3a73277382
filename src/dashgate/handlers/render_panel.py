"""Route handler for render_panel.

Receives AppState, orchestrates rate limiting / cache lookup / upstream
render, and returns the image bytes. Populating the cache after a miss is
left to the caller, which must only do so once the response has been sent.
No Starlette imports: server.py handles the HTTP wiring.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from dashgate.cache import render_cache_key_for
from dashgate.errors import DashgateError, ErrorCode
from dashgate.models.routes import RenderParams
from dashgate.ratelimit import RouteClass

if TYPE_CHECKING:
    from collections.abc import Mapping

    from dashgate.state import AppState


@dataclass(frozen=True)
class RenderOutcome:
    content: bytes
    cache_key: str
    cached: bool


async def handle(query: Mapping[str, str], client_id: str, state: AppState) -> RenderOutcome:
    """Handle a render_panel request."""
    log = structlog.get_logger().bind(route="render_panel", client=client_id)

    # Quota first: a rejected request must not touch the cache or upstream
    state.rate_limiter.check(client_id, RouteClass.RENDER)

    try:
        params = RenderParams.model_validate(dict(query))
    except ValueError as exc:
        raise DashgateError(
            code=ErrorCode.INVALID_INPUT,
            message="missing uid or panelId",
            status_code=400,
            details=str(exc),
        ) from exc

    cache_key = render_cache_key_for(params)
    log = log.bind(cache_key=cache_key)

    cached = await state.render_cache.get(cache_key)
    if cached is not None:
        log.info("render_served_from_cache", size=len(cached))
        return RenderOutcome(content=cached, cache_key=cache_key, cached=True)

    slug = await _dashboard_slug(params.uid, state)
    content = await state.grafana.render_panel(params.uid, slug, _render_query(params))
    log.info("render_complete", size=len(content))
    return RenderOutcome(content=content, cache_key=cache_key, cached=False)


async def _dashboard_slug(uid: str, state: AppState) -> str:
    body = await state.grafana.get_dashboard(uid)
    meta = body.get("meta") if isinstance(body, dict) else None
    slug = meta.get("slug") if isinstance(meta, dict) else None
    if not slug:
        raise DashgateError(
            code=ErrorCode.DASHBOARD_SLUG_MISSING,
            message="cannot determine dashboard slug",
            status_code=500,
        )
    return slug


def _render_query(params: RenderParams) -> dict[str, str]:
    query = {
        "panelId": params.panel_id,
        "from": params.from_,
        "to": params.to,
        "width": params.width,
        "height": params.height,
        "orgId": params.org_id,
    }
    return {name: value for name, value in query.items() if value is not None}
