"""Expected engine errors. Each carries a machine-readable outcome token."""
from __future__ import annotations

from typing import Any, Optional


class HQError(Exception):
    """Base for expected failures surfaced to the caller."""

    status_code = 400
    kind = "error"

    def __init__(self, code: str, message: Optional[str] = None, **context: Any):
        super().__init__(message or code)
        self.code = code
        self.message = message or code.replace("_", " ")
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message, "kind": self.kind, **self.context}


class ValidationError(HQError):
    """Malformed or missing input. Raised before touching storage."""

    status_code = 400
    kind = "validation"


class UnauthorizedError(HQError):
    """Caller lacks the capability or captain relationship."""

    status_code = 403
    kind = "unauthorized"


class NotFoundError(HQError):
    status_code = 404
    kind = "not_found"


class ConflictError(HQError):
    """A business invariant would be violated."""

    status_code = 409
    kind = "conflict"


class WindowClosedError(HQError):
    """Time-gated action attempted after its deadline."""

    status_code = 409
    kind = "window_closed"
