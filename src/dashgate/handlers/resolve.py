"""Route handlers for public-token and goto-key resolution.

Receive AppState, delegate to the Resolver, and turn the verdict into
either a response dict or a 404 DashgateError carrying the evidence of
every attempted strategy. No Starlette imports: server.py handles the
HTTP wiring.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from dashgate.errors import DashgateError, ErrorCode
from dashgate.models.resolution import (
    ResolutionKind,
    ResolutionRequest,
    ResolutionSource,
    ResolutionVerdict,
)
from dashgate.models.routes import ResolveOutput

if TYPE_CHECKING:
    from dashgate.state import AppState


async def handle_public(public_uid: str, state: AppState) -> dict:
    """Handle GET /api/public/{publicUid}."""
    log = structlog.get_logger().bind(route="resolve_public", public_uid=public_uid)
    log.info("handler_called")

    request = ResolutionRequest(kind=ResolutionKind.PUBLIC_TOKEN, value=public_uid)
    verdict = await state.resolver.resolve(request)
    if not verdict.resolved:
        raise DashgateError(
            code=ErrorCode.PUBLIC_DASHBOARD_NOT_FOUND,
            message="public dashboard not found",
            status_code=404,
            details=diagnostics(verdict),
        )
    return build_output(verdict)


async def handle_goto(key: str, state: AppState) -> dict:
    """Handle GET /api/resolve-goto/{key}."""
    log = structlog.get_logger().bind(route="resolve_goto", key=key)
    log.info("handler_called")

    request = ResolutionRequest(kind=ResolutionKind.GOTO_KEY, value=key)
    verdict = await state.resolver.resolve(request)
    if not verdict.resolved:
        raise DashgateError(
            code=ErrorCode.GOTO_KEY_NOT_RESOLVABLE,
            message="goto key not resolvable",
            status_code=404,
            details=diagnostics(verdict),
        )
    return build_output(verdict)


def build_output(verdict: ResolutionVerdict) -> dict:
    output = ResolveOutput(
        source=verdict.source,
        mapped_uid=verdict.canonical_uid,
        location=verdict.location,
        data=verdict.data if verdict.source is ResolutionSource.API else None,
        html_sample=verdict.evidence if verdict.source is ResolutionSource.HTML else None,
    )
    return output.model_dump(mode="json", by_alias=True, exclude_none=True)


def diagnostics(verdict: ResolutionVerdict) -> dict:
    """Per-strategy failure summary attached to not-found responses."""
    return {
        "evidence": verdict.evidence,
        "attempts": [
            {"source": attempt.source, "detail": attempt.detail}
            for attempt in verdict.attempts
        ],
    }
