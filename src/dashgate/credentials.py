"""Credential resolution for upstream services.

Both credentials follow the same rule: a non-empty mounted secret file wins
over the value configured through settings/environment.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import quote, urlsplit, urlunsplit

import structlog

if TYPE_CHECKING:
    from dashgate.config import Settings

log = structlog.get_logger()


def read_secret_file(path: str | None) -> str | None:
    """Return the stripped contents of a secret file, or None if unreadable/empty."""
    if not path:
        return None
    try:
        value = Path(path).read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return value or None


def resolve_grafana_token(settings: Settings) -> str:
    """Return the dashboard-API bearer token, or ``""`` when none is configured."""
    secret = read_secret_file(settings.grafana.token_file)
    if secret is not None:
        log.debug("grafana_token_loaded", source="secret_file")
        return secret
    return settings.grafana.token


def resolve_redis_url(settings: Settings) -> str:
    """Return the Redis URL, embedding the password from the secret file if present."""
    url = settings.cache.redis_url
    password = read_secret_file(settings.cache.redis_password_file)
    if password is None:
        return url

    parts = urlsplit(url)
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    netloc = f":{quote(password, safe='')}@{host}"
    if parts.port is not None:
        netloc += f":{parts.port}"
    log.debug("redis_password_loaded", source="secret_file")
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
