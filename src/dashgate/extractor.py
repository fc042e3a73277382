"""Dashboard uid extraction from raw HTML and redirect targets.

Heuristic, not a parser: two ordered regex rules are applied to the raw text
and the first match wins. Malformed or truncated HTML never raises.
"""

from __future__ import annotations

import re

# Rule (a): canonical dashboard path, e.g. "/d/abc12/my-dashboard"
_CANONICAL_PATH_RE = re.compile(r"/d/([a-zA-Z0-9\-_:]{5,})")
# Rule (b): embedded boot data field, e.g. "dashboardUid":"abc12"
_DASHBOARD_UID_FIELD_RE = re.compile(r'dashboardUid"\s*[:=]\s*"([a-zA-Z0-9\-_:]+)"')
# Redirect targets are trusted more, so any non-empty segment is accepted
_LOCATION_PATH_RE = re.compile(r"/d/([^/?#]+)")


def extract_uid(html: str | bytes | None) -> str | None:
    """Return the first dashboard uid found in ``html``, or None.

    The canonical ``/d/<uid>`` path takes priority; the ``dashboardUid``
    field is only consulted when no path matches.
    """
    if not html:
        return None
    if isinstance(html, bytes):
        html = html.decode("utf-8", errors="replace")

    match = _CANONICAL_PATH_RE.search(html)
    if match is None:
        match = _DASHBOARD_UID_FIELD_RE.search(html)
    return match.group(1) if match else None


def extract_uid_from_location(location: str | None) -> str | None:
    """Return the dashboard uid from a redirect ``Location`` value, or None."""
    if not location:
        return None
    match = _LOCATION_PATH_RE.search(location)
    return match.group(1) if match else None
