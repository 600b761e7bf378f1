"""Typed failures raised by the pipeline engine.

Every error carries a stable ``code`` and optional ``details`` so the HTTP
boundary can render them without inspecting messages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class PipelineError(Exception):
    status_code = 400
    code = "pipeline_error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if code:
            self.code = code

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": {"code": self.code, "message": self.message}}
        if self.details is not None:
            payload["error"]["details"] = self.details
        return payload


class ValidationError(PipelineError):
    """Malformed or missing required input."""

    status_code = 400
    code = "validation_error"


class NotFoundError(PipelineError):
    status_code = 404
    code = "not_found"


class ConflictError(PipelineError):
    """Interviewer double-booking. Details name the conflicting slot."""

    status_code = 409
    code = "interviewer_conflict"

    def __init__(
        self,
        message: str,
        *,
        conflict_time: str,
        interview_id: int | None = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        merged = {"conflict_time": conflict_time, "interview_id": interview_id}
        if details:
            merged.update(details)
        super().__init__(message, details=merged)
        self.conflict_time = conflict_time
        self.interview_id = interview_id


class PreconditionError(PipelineError):
    """An illegal state transition was attempted."""

    status_code = 409
    code = "precondition_failed"


class ForbiddenError(PipelineError):
    status_code = 403
    code = "forbidden"
