"""Fixed-window request quotas per client address.

Counting is delegated to the ``limits`` library (the engine behind
slowapi). Each route class has its own policy, e.g. ``"30/minute"``.
The in-memory storage expires every window key once its window has
elapsed, so idle clients do not accumulate counters.
"""

from __future__ import annotations

import time
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter

from dashgate.errors import DashgateError, ErrorCode

if TYPE_CHECKING:
    from collections.abc import Mapping

    from limits import RateLimitItem
    from limits.storage import Storage

    from dashgate.config import RateLimitSettings

log = structlog.get_logger()


class RouteClass(StrEnum):
    RENDER = "render"
    SNAPSHOT = "snapshot"


class RateLimiter:
    """Gate expensive routes before they reach any upstream or cache work."""

    def __init__(
        self,
        policies: Mapping[RouteClass, str],
        storage: Storage | None = None,
    ) -> None:
        self._storage = storage if storage is not None else MemoryStorage()
        self._strategy = FixedWindowRateLimiter(self._storage)
        self._policies: dict[RouteClass, RateLimitItem] = {
            route_class: parse(policy) for route_class, policy in policies.items()
        }

    @classmethod
    def from_settings(cls, settings: RateLimitSettings) -> RateLimiter:
        return cls({RouteClass.RENDER: settings.render, RouteClass.SNAPSHOT: settings.snapshot})

    def allow(self, client_id: str, route_class: RouteClass) -> bool:
        """Count one request and return False once the window quota is exceeded.

        Route classes without a configured policy are never limited.
        """
        item = self._policies.get(route_class)
        if item is None:
            return True
        allowed = self._strategy.hit(item, route_class, client_id)
        if not allowed:
            log.warning("rate_limited", client=client_id, route_class=route_class, limit=str(item))
        return allowed

    def retry_after(self, client_id: str, route_class: RouteClass) -> int:
        """Seconds until the client's current window resets (at least 1)."""
        item = self._policies.get(route_class)
        if item is None:
            return 0
        stats = self._strategy.get_window_stats(item, route_class, client_id)
        return max(1, int(stats.reset_time - time.time()) + 1)

    def reset(self) -> None:
        """Drop all counters."""
        self._storage.reset()

    def check(self, client_id: str, route_class: RouteClass) -> None:
        """Raise a RATE_LIMITED DashgateError if ``allow`` rejects the request."""
        if self.allow(client_id, route_class):
            return
        retry_after = self.retry_after(client_id, route_class)
        raise DashgateError(
            code=ErrorCode.RATE_LIMITED,
            message=f"Too many {route_class} requests, retry in {retry_after}s",
            status_code=429,
            details={"retry_after": retry_after},
        )
