"""Pass-through route handlers.

Thin calls into the upstream adapters; upstream status and body surface
unchanged through DashgateError.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from dashgate.errors import DashgateError, ErrorCode
from dashgate.models.routes import QueryInput

if TYPE_CHECKING:
    from collections.abc import Mapping

    from dashgate.state import AppState


async def get_dashboard(uid: str, state: AppState) -> Any:
    return await state.grafana.get_dashboard(uid)


async def search(query: Mapping[str, str], state: AppState) -> Any:
    return await state.grafana.search_dashboards(query.get("q", ""))


def _validate_query(query: Mapping[str, str]) -> QueryInput:
    try:
        return QueryInput.model_validate(dict(query))
    except ValueError as exc:
        raise DashgateError(
            code=ErrorCode.INVALID_INPUT,
            message="missing query param q",
            status_code=400,
            details=str(exc),
        ) from exc


async def instant_query(query: Mapping[str, str], state: AppState) -> Any:
    validated = _validate_query(query)
    return await state.prometheus.query(validated.q)


async def range_query(query: Mapping[str, str], state: AppState) -> Any:
    validated = _validate_query(query)
    return await state.prometheus.query_range(
        validated.q,
        start=validated.start,
        end=validated.end,
        step=validated.step,
    )
