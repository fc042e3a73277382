from __future__ import annotations

from pydantic import BaseModel


class CacheEntry(BaseModel):
    """A rendered panel image as stored in the cache backend."""

    key: str
    payload: bytes  # Opaque image bytes, usually PNG
    ttl_seconds: int
