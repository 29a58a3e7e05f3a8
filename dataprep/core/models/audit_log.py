"""
AuditEvent model recording run lifecycle and artifact operations.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

AuditAction = Literal[
    "processing_started",
    "processing_completed",
    "processing_failed",
    "processing_cancelled",
    "output_deleted",
]


class AuditEvent(BaseModel):
    """
    Audit trail entry.

    Attributes:
        event_id: Identifier assigned by the store
        source_id: Source the event concerns
        action: What happened
        run_id: Related processing run, if any
        actor: Who triggered the event
        details: Free-form context (counts, error message, filename)
        created_at: When the event occurred
    """

    event_id: int | None = None
    source_id: str
    action: AuditAction
    run_id: int | None = None
    actor: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
