"""Dashboard reference resolution.

Maps goto keys and public-dashboard tokens onto canonical dashboard uids by
trying progressively weaker signal sources:

  1. Dashboard API lookup (public tokens only)
  2. ``Location`` header of the unauthenticated short-link response
  3. Scraping the final HTML page (see ``dashgate.extractor``)

Strategies run strictly in order and the first one that yields a uid wins.
Strategy failures are recorded as attempts, never raised; the resolver
always returns a ``ResolutionVerdict``.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from dashgate.errors import DashgateError
from dashgate.extractor import extract_uid, extract_uid_from_location
from dashgate.models.resolution import (
    DETAIL_MAX_CHARS,
    EVIDENCE_MAX_CHARS,
    ResolutionKind,
    ResolutionRequest,
    ResolutionSource,
    ResolutionVerdict,
    StrategyAttempt,
)

if TYPE_CHECKING:
    from dashgate.upstream import GrafanaAPI, PageProbe

log = structlog.get_logger()

Strategy = Callable[[ResolutionRequest], Awaitable[StrategyAttempt]]


def truncate_evidence(text: str) -> str:
    return text[:EVIDENCE_MAX_CHARS]


def uid_from_api_body(body: Any) -> str | None:
    """Pick the canonical uid out of a public-dashboard API response body."""
    if not isinstance(body, dict):
        return None
    candidates = [body.get("dashboardUid"), body.get("uid")]
    dashboard = body.get("dashboard")
    if isinstance(dashboard, dict):
        candidates.insert(1, dashboard.get("uid"))
    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return None


def _describe_failure(exc: Exception) -> str:
    if isinstance(exc, DashgateError):
        return exc.message
    if isinstance(exc, httpx.TimeoutException):
        return "timed out"
    return f"{type(exc).__name__}: {exc}"


def _bounded(attempt: StrategyAttempt) -> StrategyAttempt:
    """Cap the attempt detail so not-found diagnostics stay small."""
    if len(attempt.detail) <= DETAIL_MAX_CHARS:
        return attempt
    return attempt.model_copy(update={"detail": attempt.detail[:DETAIL_MAX_CHARS]})


def _resolved_verdict(
    attempt: StrategyAttempt, attempts: list[StrategyAttempt]
) -> ResolutionVerdict:
    evidence = attempt.sample or attempt.location or attempt.detail
    return ResolutionVerdict(
        resolved=True,
        canonical_uid=attempt.uid,
        source=attempt.source,
        evidence=truncate_evidence(evidence),
        location=attempt.location,
        data=attempt.data,
        attempts=tuple(attempts),
    )


def _unresolved_verdict(attempts: list[StrategyAttempt]) -> ResolutionVerdict:
    evidence = "\n".join(f"{a.source}: {a.detail}" for a in attempts)
    return ResolutionVerdict(
        resolved=False,
        source=ResolutionSource.NONE,
        evidence=truncate_evidence(evidence),
        attempts=tuple(attempts),
    )


async def run_strategies(
    request: ResolutionRequest,
    strategies: Sequence[tuple[ResolutionSource, Strategy]],
) -> ResolutionVerdict:
    """Evaluate ``strategies`` in order, stopping at the first uid.

    Upstream and transport errors raised by a strategy are converted into a
    failed attempt for that strategy and the loop moves on.
    """
    attempts: list[StrategyAttempt] = []
    bound_log = log.bind(kind=request.kind, value=request.value)

    for source, strategy in strategies:
        try:
            attempt = await strategy(request)
        except (DashgateError, httpx.HTTPError) as exc:
            attempt = StrategyAttempt(source=source, detail=_describe_failure(exc))

        attempt = _bounded(attempt)
        attempts.append(attempt)
        if attempt.uid:
            bound_log.info("resolve_complete", source=attempt.source, uid=attempt.uid)
            return _resolved_verdict(attempt, attempts)
        bound_log.info("resolve_strategy_failed", source=source, detail=attempt.detail)

    bound_log.warning("resolve_exhausted", attempted=[a.source for a in attempts])
    return _unresolved_verdict(attempts)


class Resolver:
    """Resolves goto keys and public tokens against the dashboard backend."""

    def __init__(self, grafana: GrafanaAPI, probe: PageProbe) -> None:
        self._grafana = grafana
        self._probe = probe

    def strategies_for(self, kind: ResolutionKind) -> list[tuple[ResolutionSource, Strategy]]:
        """Return the ordered strategy chain for a request kind."""
        chain: list[tuple[ResolutionSource, Strategy]] = []
        if kind is ResolutionKind.PUBLIC_TOKEN:
            chain.append((ResolutionSource.API, self._api_strategy))
        chain.append((ResolutionSource.REDIRECT_HEADER, self._redirect_strategy))
        chain.append((ResolutionSource.HTML, self._html_strategy))
        return chain

    async def resolve(self, request: ResolutionRequest) -> ResolutionVerdict:
        return await run_strategies(request, self.strategies_for(request.kind))

    def _page_path(self, request: ResolutionRequest) -> str:
        if request.kind is ResolutionKind.GOTO_KEY:
            return self._probe.goto_path(request.value)
        return self._probe.public_dashboard_path(request.value)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _api_strategy(self, request: ResolutionRequest) -> StrategyAttempt:
        body = await self._grafana.get_public_dashboard(request.value)
        uid = uid_from_api_body(body)
        return StrategyAttempt(
            source=ResolutionSource.API,
            uid=uid,
            detail="dashboard uid in API response" if uid else "API response has no dashboard uid",
            data=body,
        )

    async def _redirect_strategy(self, request: ResolutionRequest) -> StrategyAttempt:
        response = await self._probe.probe_redirect(self._page_path(request))
        location = response.headers.get("location")
        if not response.is_redirect or not location:
            return StrategyAttempt(
                source=ResolutionSource.REDIRECT_HEADER,
                detail=f"HTTP {response.status_code} without redirect",
            )

        uid = extract_uid_from_location(location)
        return StrategyAttempt(
            source=ResolutionSource.REDIRECT_HEADER,
            uid=uid,
            detail=f"HTTP {response.status_code} redirect to {location}",
            location=location,
        )

    async def _html_strategy(self, request: ResolutionRequest) -> StrategyAttempt:
        response = await self._probe.fetch_page(self._page_path(request))
        if not response.is_success:
            return StrategyAttempt(
                source=ResolutionSource.HTML,
                detail=f"HTTP {response.status_code} fetching page",
            )

        html = response.text
        uid = extract_uid(html)
        return StrategyAttempt(
            source=ResolutionSource.HTML,
            uid=uid,
            detail="dashboard uid found in page" if uid else "no dashboard uid in page",
            sample=truncate_evidence(html),
        )
