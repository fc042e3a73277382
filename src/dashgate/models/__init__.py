from __future__ import annotations

from dashgate.models.cache import CacheEntry
from dashgate.models.resolution import (
    DETAIL_MAX_CHARS,
    EVIDENCE_MAX_CHARS,
    ResolutionKind,
    ResolutionRequest,
    ResolutionSource,
    ResolutionVerdict,
    StrategyAttempt,
)
from dashgate.models.routes import QueryInput, RenderParams, ResolveOutput, SnapshotInput

__all__ = [
    # resolution
    "DETAIL_MAX_CHARS",
    "EVIDENCE_MAX_CHARS",
    "ResolutionKind",
    "ResolutionRequest",
    "ResolutionSource",
    "ResolutionVerdict",
    "StrategyAttempt",
    # cache
    "CacheEntry",
    # routes
    "RenderParams",
    "SnapshotInput",
    "QueryInput",
    "ResolveOutput",
]
