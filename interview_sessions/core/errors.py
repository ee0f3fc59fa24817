"""
Error taxonomy for the interview session engine.

Every error carries a machine-readable ``code``, the HTTP status the API layer
maps it to, and a ``context`` dictionary with whatever the client needs to
explain the outcome to the candidate (session status, window bounds, minutes
remaining, attempts remaining).
"""
from typing import Any, Dict, Optional


class InterviewSessionError(Exception):
    """Base class for all engine errors surfaced to the API boundary."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"success": False, "error": self.message, "code": self.code}
        payload.update(self.context)
        return payload


class ValidationError(InterviewSessionError):
    """Missing or malformed required fields."""
    code = "validation_error"
    status_code = 400


class Unauthorized(InterviewSessionError):
    """Token mismatch while attempts remain."""
    code = "unauthorized"
    status_code = 401


class Forbidden(InterviewSessionError):
    """Window or status disallows the action."""
    code = "forbidden"
    status_code = 403


class NotFound(InterviewSessionError):
    code = "not_found"
    status_code = 404


class Conflict(InterviewSessionError):
    """A non-terminal session already exists."""
    code = "conflict"
    status_code = 409


class Locked(InterviewSessionError):
    """Attempt ceiling reached; terminal until a manual reset."""
    code = "locked"
    status_code = 423


class ExternalServiceFailure(InterviewSessionError):
    """The storage layer is unreachable."""
    code = "external_service_failure"
    status_code = 503


class GenerationError(Exception):
    """The text-generation capability failed, timed out or returned nothing usable.

    Never crosses the API boundary; callers fall back to fixed content.
    """
