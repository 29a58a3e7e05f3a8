"""
OutputArtifact model: the immutable bytes produced by a completed run.
"""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .processing_run import OutputFormat


class OutputArtifact(BaseModel):
    """
    Output file of one completed processing run. Never mutated after creation.

    Attributes:
        artifact_id: Identifier assigned by the store
        run_id: Run that produced the artifact
        source_id: Source the run processed
        filename: Download filename
        format: Output encoding
        file_size: Size of content in bytes
        record_count: Emitted units (conversations, QA pairs or records)
        content: Serialized output
        created_at: Creation time
    """

    model_config = ConfigDict(frozen=True)

    artifact_id: int | None = None
    run_id: int
    source_id: str
    filename: str = Field(..., min_length=1)
    format: OutputFormat
    file_size: int = Field(0, ge=0)
    record_count: int = Field(..., ge=0)
    content: bytes
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @model_validator(mode="before")
    @classmethod
    def fill_file_size(cls, data):
        if isinstance(data, dict) and not data.get("file_size") and data.get("content") is not None:
            data = {**data, "file_size": len(data["content"])}
        return data

    @property
    def mime_type(self) -> str:
        return self.format.mime_type
