from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator

EVIDENCE_MAX_CHARS = 2000
DETAIL_MAX_CHARS = 500


class ResolutionKind(StrEnum):
    GOTO_KEY = "goto"
    PUBLIC_TOKEN = "public"


class ResolutionSource(StrEnum):
    API = "api"
    REDIRECT_HEADER = "location-header"
    HTML = "html"
    NONE = "none"


class ResolutionRequest(BaseModel):
    """An opaque identifier to be mapped onto a canonical dashboard uid."""

    model_config = ConfigDict(frozen=True)

    kind: ResolutionKind
    value: str


class StrategyAttempt(BaseModel):
    """Outcome of running a single resolution strategy."""

    model_config = ConfigDict(frozen=True)

    source: ResolutionSource
    uid: str | None = None
    detail: str = ""  # Short human-readable reason, e.g. "HTTP 404"
    location: str | None = None  # Redirect target, redirect-header strategy only
    data: Any = None  # Upstream response body, API strategy only
    sample: str | None = None  # Truncated page body, HTML strategy only


class ResolutionVerdict(BaseModel):
    """Final answer of the resolver. ``source`` is NONE iff ``resolved`` is False."""

    model_config = ConfigDict(frozen=True)

    resolved: bool
    canonical_uid: str | None = None
    source: ResolutionSource = ResolutionSource.NONE
    evidence: str = ""  # At most EVIDENCE_MAX_CHARS
    location: str | None = None
    data: Any = None
    attempts: tuple[StrategyAttempt, ...] = ()

    @model_validator(mode="after")
    def _source_matches_resolved(self) -> ResolutionVerdict:
        if self.resolved == (self.source is ResolutionSource.NONE):
            raise ValueError("source must be NONE exactly when the verdict is unresolved")
        return self
