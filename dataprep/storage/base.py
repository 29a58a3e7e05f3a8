"""
Persistence interface used by the processing orchestrator.

Stores own sources and their rows, the live configuration of each source,
processing runs, output artifacts and audit events. Run state transitions
are compare-and-swap so concurrent callers cannot both move a run.
"""

from abc import ABC, abstractmethod
from collections.abc import Collection, Sequence
from typing import Any

from dataprep.core.models import (
    AuditEvent,
    DataSource,
    OutputArtifact,
    PipelineConfig,
    ProcessingRun,
    RunStatus,
    SourceRecord,
)


class PipelineStore(ABC):
    """Abstract store; see InMemoryPipelineStore and PostgresPipelineStore."""

    # =======================
    # SOURCES
    # =======================

    @abstractmethod
    def add_source(self, source: DataSource, records: Sequence[SourceRecord]) -> DataSource:
        """Register a source with its parsed rows; row_count and columns are taken from the input."""

    @abstractmethod
    def get_source(self, source_id: str) -> DataSource:
        """
        Raises:
            NotFoundError: If the source does not exist
        """

    @abstractmethod
    def list_sources(self) -> list[DataSource]:
        ...

    @abstractmethod
    def replace_records(self, source_id: str, records: Sequence[SourceRecord], columns: Sequence[str]) -> DataSource:
        """
        Replace a source's rows.

        Raises:
            NotFoundError: If the source does not exist
            ConflictError: If the source has a pending or processing run
        """

    @abstractmethod
    def get_records(self, source_id: str, limit: int | None = None) -> list[SourceRecord]:
        """Rows ordered by row_index, at most `limit` when given."""

    # =======================
    # CONFIGURATION
    # =======================

    @abstractmethod
    def save_config(self, source_id: str, config: PipelineConfig) -> None:
        ...

    @abstractmethod
    def get_config(self, source_id: str) -> PipelineConfig:
        """Live configuration of a source; an empty configuration if none was saved."""

    # =======================
    # PROCESSING RUNS
    # =======================

    @abstractmethod
    def create_run(self, run: ProcessingRun) -> ProcessingRun:
        """
        Insert a run, assigning run_id.

        Raises:
            ConflictError: If the source already has a pending or processing run
        """

    @abstractmethod
    def get_run(self, run_id: int) -> ProcessingRun:
        """
        Raises:
            NotFoundError: If the run does not exist
        """

    @abstractmethod
    def list_runs(self, source_id: str) -> list[ProcessingRun]:
        """Runs of a source, newest first."""

    @abstractmethod
    def transition_run(
        self,
        run_id: int,
        expected: Collection[RunStatus],
        new_status: RunStatus,
        **fields: Any,
    ) -> ProcessingRun | None:
        """
        Move a run to new_status if its current status is in expected.

        Args:
            run_id: Run to update
            expected: Statuses the run may currently be in
            new_status: Target status
            **fields: Other columns to set in the same update

        Returns:
            Updated run, or None if the run was not in an expected status
        """

    @abstractmethod
    def update_progress(self, run_id: int, processed_count: int, total_count: int | None = None) -> None:
        """Record progress of an active run; ignored once the run is terminal."""

    @abstractmethod
    def complete_run(self, run_id: int, artifact: OutputArtifact, processed_count: int) -> OutputArtifact | None:
        """
        Persist the artifact and mark the run completed, atomically.

        Returns:
            Stored artifact, or None if the run was no longer processing
        """

    # =======================
    # ARTIFACTS
    # =======================

    @abstractmethod
    def get_artifact(self, artifact_id: int) -> OutputArtifact:
        """
        Raises:
            NotFoundError: If the artifact does not exist
        """

    @abstractmethod
    def get_artifact_for_run(self, run_id: int) -> OutputArtifact | None:
        ...

    @abstractmethod
    def list_artifacts(self, source_id: str) -> list[OutputArtifact]:
        """Artifacts of a source, newest first."""

    @abstractmethod
    def delete_artifact(self, artifact_id: int) -> OutputArtifact:
        """
        Remove an artifact and return it.

        Raises:
            NotFoundError: If the artifact does not exist
        """

    # =======================
    # AUDIT
    # =======================

    @abstractmethod
    def record_event(self, event: AuditEvent) -> AuditEvent:
        ...

    @abstractmethod
    def list_events(self, source_id: str | None = None) -> list[AuditEvent]:
        """Audit events in insertion order, optionally for one source."""

    def close(self) -> None:
        """Release resources held by the store."""
