from __future__ import annotations

from enum import StrEnum
from typing import Any


class ErrorCode(StrEnum):
    INVALID_INPUT = "INVALID_INPUT"
    RATE_LIMITED = "RATE_LIMITED"
    CREDENTIAL_MISSING = "CREDENTIAL_MISSING"
    UPSTREAM_ERROR = "UPSTREAM_ERROR"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"
    DASHBOARD_NOT_FOUND = "DASHBOARD_NOT_FOUND"
    DASHBOARD_SLUG_MISSING = "DASHBOARD_SLUG_MISSING"
    PUBLIC_DASHBOARD_NOT_FOUND = "PUBLIC_DASHBOARD_NOT_FOUND"
    GOTO_KEY_NOT_RESOLVABLE = "GOTO_KEY_NOT_RESOLVABLE"


class DashgateError(Exception):
    """Raised by route handlers for all expected failure conditions.

    Caught by server.py and serialised into the JSON error envelope with
    ``status_code`` as the HTTP status. The only place it is caught inside
    business logic is ``resolver.run_strategies``, which records a failing
    strategy as an attempt and moves on. Everywhere else, let it propagate
    to the route layer so the caller receives the upstream status and
    details unchanged.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }
