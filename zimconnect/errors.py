"""
ZimConnect — Error taxonomy shared by the services, the client core and the
HTTP surface.
"""

from __future__ import annotations


class ZimConnectError(Exception):
    """Base class for every error the core raises on purpose."""

    code: str = "error"

    def __init__(self, message: str = "", **context) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.context}


class NotAuthenticated(ZimConnectError):
    """No current user is available for an operation that needs one."""

    code = "not_authenticated"


class ValidationFailed(ZimConnectError):
    """The store rejected a write (uniqueness, party membership, bad input)."""

    code = "validation_failed"


class FetchFailed(ZimConnectError):
    """Transient network or store failure; the caller decides whether to retry."""

    code = "fetch_failed"


class StaleReference(ZimConnectError):
    """The operation targets a profile, match or candidate that is gone."""

    code = "stale_reference"


class LikeFailed(ZimConnectError):
    """A like could not be recorded; the candidate stays in place."""

    code = "like_failed"

    def __init__(self, message: str = "", cause: ZimConnectError | None = None, **context) -> None:
        super().__init__(message, **context)
        self.cause = cause
