"""
Error taxonomy for catalog operations.

Every core operation either returns its payload or raises exactly one of
these kinds. The HTTP layer maps them to status codes with a single
exception handler, so handlers never build error responses by hand.
"""

from __future__ import annotations

from typing import Any


class CatalogError(Exception):
    """Base class for all errors a catalog operation can report."""

    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: str | None = None, *, details: Any = None):
        self.detail = detail or self.default_detail
        self.details = details
        super().__init__(self.detail)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.detail}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(CatalogError):
    """Malformed id or input record."""

    status_code = 400
    default_detail = "Invalid input"


class Unauthenticated(CatalogError):
    """No verified identity is attached to the request."""

    status_code = 401
    default_detail = "Authentication required"


class Forbidden(CatalogError):
    """The caller is identified but lacks permission."""

    status_code = 403
    default_detail = "Access denied"


class NotFoundError(CatalogError):
    """A valid request for an entity that does not exist."""

    status_code = 404
    default_detail = "Not found"


class InternalError(CatalogError):
    """Storage or other server-side failure. Detail stays server-side."""

    status_code = 500
    default_detail = "Internal server error"
