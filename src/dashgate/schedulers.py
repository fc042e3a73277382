"""Background scheduler coroutines."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from dashgate.state import AppState

log = structlog.get_logger()


async def run_cache_cleanup_scheduler(state: AppState) -> None:
    """Delete expired render-cache entries at startup and on the configured interval."""
    interval_seconds = state.settings.cache.cleanup_interval_minutes * 60

    while True:
        await state.render_cache.cleanup_expired()
        await asyncio.sleep(interval_seconds)
