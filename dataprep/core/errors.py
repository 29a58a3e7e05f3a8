"""
Error taxonomy shared by the pipeline core and its collaborators.

Each error carries a stable ``code`` and an HTTP-style ``status_code`` so the
web layer can translate them without knowing pipeline internals.
"""

from typing import Any


class PipelineError(Exception):
    """Base class for all caller-visible pipeline errors."""

    code = "PIPELINE_ERROR"
    status_code = 500

    def __init__(self, message: str, details: str | None = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(PipelineError):
    """Caller-correctable configuration problem (bad regex, malformed date range, ...)."""

    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(
        self,
        message: str = "Validation failed",
        fields: dict[str, list[str]] | None = None,
        details: str | None = None,
    ):
        super().__init__(message, details)
        self.fields = fields or {}

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.fields:
            payload["fields"] = self.fields
        return payload


class PatternError(ValidationError):
    """Raised when a custom detection pattern is not a valid regular expression."""

    def __init__(self, pattern: str, reason: str):
        self.pattern = pattern
        self.reason = reason
        super().__init__(f"Invalid regex pattern '{pattern}': {reason}")


class NotFoundError(PipelineError):
    """Referenced source, run, configuration or artifact does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str = "Resource", details: str | None = None):
        self.resource = resource
        super().__init__(f"{resource} not found", details)


class ConflictError(PipelineError):
    """Operation collides with current state (e.g. a second active run)."""

    code = "CONFLICT"
    status_code = 409


class BadRequestError(PipelineError):
    """Request cannot be served as issued (unsupported format, source not ready)."""

    code = "BAD_REQUEST"
    status_code = 400
