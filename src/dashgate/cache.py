"""Rendered-panel image cache.

``RenderCache`` applies the serving policy (TTL floor, miss-on-failure,
detached writes) on top of a pluggable ``RenderStoreProtocol`` backend:

- ``RedisRenderStore``: redis.asyncio, binary-safe values, native expiry
- ``SqliteRenderStore``: aiosqlite table with an ``expires_at`` column
- ``NullRenderStore``: caching disabled

All backend failures are caught inside ``RenderCache`` and degrade
gracefully: read failures are treated as a cache miss, write failures are
logged and dropped. Infrastructure errors never cross the RenderCache
boundary, so a broken cache can never fail or delay a client response.
Errors are still logged with ``exc_info=True`` so they remain observable.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import aiosqlite
import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from dashgate.models.cache import CacheEntry

if TYPE_CHECKING:
    from dashgate.models.routes import RenderParams
    from dashgate.protocols import RenderStoreProtocol

log = structlog.get_logger()

MIN_TTL_SECONDS = 30
KEY_SENTINEL = "auto"

# Anything a backend can raise for an unavailable or broken store
CACHE_BACKEND_ERRORS: tuple[type[Exception], ...] = (RedisError, aiosqlite.Error, OSError)


def render_cache_key(
    uid: str,
    panel_id: str,
    from_: str | None = None,
    to: str | None = None,
    width: str | None = None,
    height: str | None = None,
) -> str:
    """Derive the cache key for a render request.

    Missing fields map to the ``"auto"`` sentinel so that logically equal
    requests always land on the same key.
    """
    parts = [value or KEY_SENTINEL for value in (from_, to, width, height)]
    return f"render:{uid}:{panel_id}:{parts[0]}:{parts[1]}:{parts[2]}x{parts[3]}"


def render_cache_key_for(params: RenderParams) -> str:
    return render_cache_key(
        params.uid, params.panel_id, params.from_, params.to, params.width, params.height
    )


def effective_ttl(ttl_seconds: int) -> int:
    """Apply the TTL floor so near-zero or negative TTLs still cache briefly."""
    return max(MIN_TTL_SECONDS, ttl_seconds)


# ----------------------------------------------------------------------
# Backends
# ----------------------------------------------------------------------


class RedisRenderStore:
    """Redis-backed render store. Expiry is delegated to Redis."""

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, timeout_seconds: float = 10.0) -> RedisRenderStore:
        # decode_responses stays off: payloads are raw image bytes
        client = aioredis.Redis.from_url(
            url,
            decode_responses=False,
            socket_timeout=timeout_seconds,
            socket_connect_timeout=timeout_seconds,
        )
        return cls(client)

    async def get_bytes(self, key: str) -> bytes | None:
        value = await self._client.get(key)
        return bytes(value) if value else None

    async def set_entry(self, entry: CacheEntry) -> None:
        await self._client.set(entry.key, entry.payload, ex=entry.ttl_seconds)

    async def cleanup_expired(self) -> None:
        """No-op: Redis evicts expired keys itself."""

    async def close(self) -> None:
        await self._client.aclose()


_CREATE_RENDER_TABLE = """
CREATE TABLE IF NOT EXISTS render_cache (
    cache_key   TEXT PRIMARY KEY,
    payload     BLOB NOT NULL,
    stored_at   TEXT NOT NULL,
    expires_at  TEXT NOT NULL
)
"""

_CREATE_RENDER_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_render_expires ON render_cache(expires_at)"
)


def _timestamp(moment: datetime) -> str:
    # Fixed width so that string comparison in SQL orders correctly
    return moment.isoformat(timespec="microseconds")


class SqliteRenderStore:
    """SQLite-backed render store for single-node deployments without Redis."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def init_db(self) -> None:
        """Create tables and set WAL mode. Called once at startup."""
        await self._db.execute("PRAGMA journal_mode = WAL")
        await self._db.execute(_CREATE_RENDER_TABLE)
        await self._db.execute(_CREATE_RENDER_INDEX)
        await self._db.commit()

    async def get_bytes(self, key: str) -> bytes | None:
        cursor = await self._db.execute(
            "SELECT payload FROM render_cache WHERE cache_key = ? AND expires_at > ?",
            (key, _timestamp(datetime.now(UTC))),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return bytes(row[0])

    async def set_entry(self, entry: CacheEntry) -> None:
        now = datetime.now(UTC)
        expires_at = now + timedelta(seconds=entry.ttl_seconds)
        await self._db.execute(
            "INSERT OR REPLACE INTO render_cache (cache_key, payload, stored_at, expires_at) "
            "VALUES (?, ?, ?, ?)",
            (entry.key, entry.payload, _timestamp(now), _timestamp(expires_at)),
        )
        await self._db.commit()

    async def cleanup_expired(self) -> None:
        cursor = await self._db.execute(
            "DELETE FROM render_cache WHERE expires_at <= ?",
            (_timestamp(datetime.now(UTC)),),
        )
        deleted = cursor.rowcount
        await self._db.commit()
        log.info("cache_cleanup_complete", deleted=deleted)

    async def close(self) -> None:
        await self._db.close()


class NullRenderStore:
    """Store used when caching is disabled: every read misses."""

    async def get_bytes(self, key: str) -> bytes | None:
        return None

    async def set_entry(self, entry: CacheEntry) -> None:
        return None

    async def cleanup_expired(self) -> None:
        return None

    async def close(self) -> None:
        return None


# ----------------------------------------------------------------------
# Policy
# ----------------------------------------------------------------------


class RenderCache:
    """TTL-bounded cache of rendered panel images."""

    def __init__(self, store: RenderStoreProtocol, ttl_seconds: int) -> None:
        self._store = store
        self.ttl_seconds = effective_ttl(ttl_seconds)
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def store(self) -> RenderStoreProtocol:
        return self._store

    async def get(self, key: str) -> bytes | None:
        """Return cached bytes, or None on miss or backend failure."""
        try:
            payload = await self._store.get_bytes(key)
        except CACHE_BACKEND_ERRORS:
            log.warning("cache_read_error", key=key, exc_info=True)
            return None
        if payload:
            log.info("cache_hit", key=key, size=len(payload))
            return payload
        log.info("cache_miss", key=key)
        return None

    def set_async(
        self, key: str, payload: bytes, ttl_seconds: int | None = None
    ) -> asyncio.Task[None]:
        """Schedule a detached cache write and return its task.

        Callers must not await the task on their response path. Failures
        are logged by the task itself and never re-joined with the caller.
        """
        ttl = effective_ttl(self.ttl_seconds if ttl_seconds is None else ttl_seconds)
        entry = CacheEntry(key=key, payload=payload, ttl_seconds=ttl)
        task = asyncio.create_task(self._write(entry), name=f"render-cache-write:{key}")
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _write(self, entry: CacheEntry) -> None:
        try:
            await self._store.set_entry(entry)
        except CACHE_BACKEND_ERRORS:
            log.warning("cache_write_error", key=entry.key, exc_info=True)
            return
        log.debug("cache_write_complete", key=entry.key, ttl_seconds=entry.ttl_seconds)

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for all in-flight cache writes to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def cleanup_expired(self) -> None:
        """Delete expired entries from the backend. Non-fatal on failure."""
        try:
            await self._store.cleanup_expired()
        except CACHE_BACKEND_ERRORS:
            log.warning("cache_cleanup_error", exc_info=True)

    async def aclose(self) -> None:
        """Drain pending writes and close the backend."""
        await self.drain()
        try:
            await self._store.close()
        except CACHE_BACKEND_ERRORS:
            log.warning("cache_close_error", exc_info=True)
