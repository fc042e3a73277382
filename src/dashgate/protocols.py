"""Protocol interfaces for swappable components.

RenderCache and AppState reference these protocols, not the concrete
implementations. This allows:
- Tests to use lightweight in-memory implementations
- Cache backends (Redis, SQLite, disabled) to be swapped without touching
  the route handlers
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from dashgate.models.cache import CacheEntry


class RenderStoreProtocol(Protocol):
    """Interface for the rendered-image cache backend.

    Implementations raise their library's native errors; RenderCache is
    responsible for turning those into cache misses.
    """

    async def get_bytes(self, key: str) -> bytes | None: ...

    async def set_entry(self, entry: CacheEntry) -> None: ...

    async def cleanup_expired(self) -> None: ...

    async def close(self) -> None: ...
